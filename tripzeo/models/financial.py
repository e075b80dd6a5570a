"""Financial and platform configuration models."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, Numeric, String, Text, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from tripzeo.database import Base
from tripzeo.domain.transaction_state import TransactionStatus

JSONType = JSON().with_variant(JSONB(), "postgresql")


class FinancialTransaction(Base):
    """Immutable ledger entry.

    Rows are appended by booking transitions and payout runs. Only ``status``
    may change afterwards (pending -> completed | reversed); see
    ``tripzeo.core.immutability``.
    """

    __tablename__ = "financial_transactions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    # Owner: host, partner, or (for refund rows) the guest
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False, index=True
    )
    booking_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("bookings.id"), index=True
    )

    type: Mapped[str] = mapped_column(String(20), nullable=False)  # commission, payout, refund
    amount: Mapped[int] = mapped_column(Integer, nullable=False)  # in cents, may be negative for offsets
    currency: Mapped[str] = mapped_column(String(3), default="USD")
    status: Mapped[str] = mapped_column(
        String(20), default=TransactionStatus.PENDING.value, nullable=False, index=True
    )

    description: Mapped[str | None] = mapped_column(Text)
    details: Mapped[dict | None] = mapped_column("metadata", JSONType)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class PlatformSetting(Base):
    """Mutable key/value rate table.

    ``version`` is bumped past the current maximum on every edit, so the
    largest version identifies the table as a whole.
    """

    __tablename__ = "platform_settings"

    key: Mapped[str] = mapped_column(String(64), primary_key=True)
    value: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    updated_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("users.id"))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
