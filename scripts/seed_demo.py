#!/usr/bin/env python3
"""Seed demo users and an experience, and write their access tokens.

Identity is owned by an external provider, so the tokens written here are
minted locally with the API's signing key. They are only good for a local
environment.
"""

import argparse
import asyncio
import json
from datetime import time
from pathlib import Path

from sqlalchemy import select

from tripzeo.core.security import create_access_token
from tripzeo.database import async_session_maker, init_db
from tripzeo.models.experience import Experience
from tripzeo.models.user import User

TOKEN_FILE = Path(__file__).parent.parent / ".tokens.json"

DEMO_USERS = [
    {"email": "admin@tripzeo.test", "full_name": "Tripzeo Admin", "role": "admin"},
    {
        "email": "host@tripzeo.test",
        "full_name": "Demo Host",
        "role": "host",
        "bank_name": "Demo Bank",
        "account_holder": "Demo Host",
        "iban": "DE89370400440532013000",
    },
    {"email": "guest@tripzeo.test", "full_name": "Demo Guest", "role": "guest"},
    {
        "email": "partner@tripzeo.test",
        "full_name": "Demo Partner",
        "role": "partner",
        "referral_code": "PARTNER10",
        "bank_name": "Demo Bank",
        "account_holder": "Demo Partner",
        "routing_number": "110000000",
        "account_number": "000123456789",
    },
]


async def upsert_user(session, data: dict) -> User:
    result = await session.execute(select(User).where(User.email == data["email"]))
    user = result.scalar_one_or_none()
    if user is None:
        user = User(**data)
        session.add(user)
        print(f"Created {data['role']}: {data['email']}")
    else:
        for key, value in data.items():
            setattr(user, key, value)
        print(f"Updated {data['role']}: {data['email']}")
    return user


async def seed(title: str, price: int, create_tables: bool) -> None:
    if create_tables:
        await init_db()

    async with async_session_maker() as session:
        users = {}
        for data in DEMO_USERS:
            users[data["role"]] = await upsert_user(session, data)
        await session.flush()

        host = users["host"]
        result = await session.execute(
            select(Experience).where(Experience.host_id == host.id, Experience.title == title)
        )
        experience = result.scalar_one_or_none()
        if experience is None:
            experience = Experience(
                host_id=host.id,
                title=title,
                price=price,
                start_time=time(10, 0),
                end_time=time(13, 0),
                duration_minutes=180,
            )
            session.add(experience)
        await session.commit()

    tokens = {role: create_access_token(str(user.id), user.role) for role, user in users.items()}
    TOKEN_FILE.write_text(
        json.dumps({"experience_id": str(experience.id), "tokens": tokens}, indent=2)
    )

    print(f"\nExperience: {experience.title} ({experience.id}), {price} cents per attendee")
    print(f"Tokens written to {TOKEN_FILE}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed demo data")
    parser.add_argument("--title", default="Old Town Food Walk", help="Experience title")
    parser.add_argument("--price", type=int, default=10000, help="Price per attendee in cents")
    parser.add_argument("--create-tables", action="store_true", help="Create tables before seeding")
    args = parser.parse_args()

    asyncio.run(seed(args.title, args.price, args.create_tables))
