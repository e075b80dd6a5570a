"""User-related database models."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from tripzeo.database import Base


class User(Base):
    """User account model.

    Credentials live with the identity provider; this row only holds the
    marketplace profile, role and payout details.
    """

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    full_name: Mapped[str | None] = mapped_column(String(200))
    role: Mapped[str] = mapped_column(
        String(20), nullable=False, default="guest"
    )  # guest, host, partner, admin
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    # Referral partners share this code; bookings made with it are attributed to them
    referral_code: Mapped[str | None] = mapped_column(String(32), unique=True, index=True)

    # Payout details
    bank_name: Mapped[str | None] = mapped_column(String(100))
    account_holder: Mapped[str | None] = mapped_column(String(200))
    iban: Mapped[str | None] = mapped_column(String(64))
    routing_number: Mapped[str | None] = mapped_column(String(32))
    account_number: Mapped[str | None] = mapped_column(String(64))
    payout_account_id: Mapped[str | None] = mapped_column(String(100))  # gateway connected account

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    @property
    def has_complete_bank_info(self) -> bool:
        """Bank name and holder plus either an IBAN or routing/account pair."""
        has_basic_info = bool(self.bank_name and self.account_holder)
        has_iban = bool(self.iban)
        has_us_account = bool(self.routing_number and self.account_number)
        return has_basic_info and (has_iban or has_us_account)
