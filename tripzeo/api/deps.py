"""API dependencies for authentication and service wiring."""

from typing import Annotated
from uuid import UUID

from fastapi import Depends, Header
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tripzeo.core.exceptions import AuthenticationError, AuthorizationError
from tripzeo.core.security import verify_cron_secret, verify_token
from tripzeo.database import get_db
from tripzeo.models.user import User
from tripzeo.services.booking_service import BookingService, booking_service
from tripzeo.services.completion_service import CompletionService, completion_service
from tripzeo.services.payout_service import PayoutService, payout_service
from tripzeo.services.settings_service import SettingsService, settings_service

# Security scheme
security = HTTPBearer(auto_error=False)

__all__ = [
    "get_db",
    "get_current_user",
    "get_current_admin",
    "get_current_host",
    "require_cron_secret",
    "get_booking_service",
    "get_payout_service",
    "get_completion_service",
    "get_settings_service",
]


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    """Get the current authenticated user from JWT token."""
    if credentials is None:
        raise AuthenticationError("Missing bearer token")

    payload = verify_token(credentials.credentials)
    try:
        user_id = UUID(payload["sub"])
    except (TypeError, ValueError):
        raise AuthenticationError("Invalid token subject")

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if not user:
        raise AuthenticationError("User not found")
    if not user.is_active:
        raise AuthenticationError("User account is deactivated")

    return user


async def get_current_host(
    current_user: Annotated[User, Depends(get_current_user)],
) -> User:
    """Get current user and verify they are a host."""
    if current_user.role not in ("host", "admin"):
        raise AuthorizationError("Host access required")
    return current_user


async def get_current_admin(
    current_user: Annotated[User, Depends(get_current_user)],
) -> User:
    """Get current user and verify they are an admin."""
    if current_user.role != "admin":
        raise AuthorizationError("Admin access required")
    return current_user


async def require_cron_secret(
    authorization: Annotated[str | None, Header()] = None,
) -> None:
    """Authenticate the scheduler by its shared secret."""
    verify_cron_secret(authorization)


def get_booking_service() -> BookingService:
    return booking_service


def get_payout_service() -> PayoutService:
    return payout_service


def get_completion_service() -> CompletionService:
    return completion_service


def get_settings_service() -> SettingsService:
    return settings_service
