"""Settlement recorder.

Appends ledger rows for booking transitions and payout runs. Every method
works inside the caller's unit of work and never commits: the booking status
change, the gateway call and the rows written here succeed or fail together.

Rows are never edited beyond their ``status`` and never deleted.
"""

import logging
from uuid import UUID

from sqlalchemy import and_, exists, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tripzeo.core.exceptions import ConcurrentModification, ValidationError
from tripzeo.domain.booking_state import CAPTURED_STATUSES, BookingStatus
from tripzeo.domain.ledger import validate_amount
from tripzeo.domain.transaction_state import TransactionStatus, TransactionType
from tripzeo.models.booking import Booking
from tripzeo.models.financial import FinancialTransaction

logger = logging.getLogger(__name__)

HOST_EARNINGS = "host_earnings"
PARTNER_COMMISSION = "partner_commission"
PARTNER_OFFSET = "partner_commission_offset"


def assert_positive_amount(amount: int, context: str) -> None:
    """Guard: Prevent negative or zero amounts."""
    if validate_amount(amount, context) <= 0:
        raise ValidationError(f"{context}: amount must be positive, got {amount}")


def assert_no_duplicate_ledger_entry(
    existing_entry: FinancialTransaction | None, entry_type: str, reference_id: UUID
) -> None:
    """Guard: Prevent duplicate ledger entries for the same operation."""
    if existing_entry is not None:
        raise ValidationError(
            f"Duplicate {entry_type} ledger entry for reference {reference_id}"
        )


def _commission_rows(booking_id: UUID, user_id: UUID):
    return select(FinancialTransaction).where(
        FinancialTransaction.booking_id == booking_id,
        FinancialTransaction.user_id == user_id,
        FinancialTransaction.type == TransactionType.COMMISSION.value,
    )


class SettlementService:
    """Service for ledger writes and balance queries."""

    # ==================== BOOKING ROWS ====================

    async def record_host_commission(
        self,
        db: AsyncSession,
        booking: Booking,
        reconciled: bool = False,
    ) -> FinancialTransaction:
        """Record the host's earnings for an approved booking as pending."""
        if booking.host_earnings is None:
            raise ValidationError(f"Booking {booking.booking_number} has no host earnings yet")
        validate_amount(booking.host_earnings, "Host earnings")

        existing = await db.execute(_commission_rows(booking.id, booking.host_id).limit(1))
        assert_no_duplicate_ledger_entry(existing.scalar_one_or_none(), HOST_EARNINGS, booking.id)

        entry = FinancialTransaction(
            user_id=booking.host_id,
            booking_id=booking.id,
            type=TransactionType.COMMISSION.value,
            amount=booking.host_earnings,
            currency=booking.currency,
            status=TransactionStatus.PENDING.value,
            description=f"Earnings for booking {booking.booking_number}",
            details={
                "kind": HOST_EARNINGS,
                "booking_number": booking.booking_number,
                "commission_rate": str(booking.commission_rate),
                "commission_amount": booking.commission_amount,
                "rates_version": booking.rates_version,
            },
        )
        if reconciled:
            entry.details["reconciled"] = True
        db.add(entry)
        return entry

    async def record_partner_commission(
        self,
        db: AsyncSession,
        booking: Booking,
        amount: int,
        partner_rate,
        reconciled: bool = False,
    ) -> FinancialTransaction | None:
        """Record the referring partner's commission as pending.

        Returns None for bookings without a partner or with a zero commission.
        """
        if booking.partner_id is None:
            return None
        if validate_amount(amount, "Partner commission") == 0:
            return None

        existing = await db.execute(_commission_rows(booking.id, booking.partner_id).limit(1))
        assert_no_duplicate_ledger_entry(
            existing.scalar_one_or_none(), PARTNER_COMMISSION, booking.id
        )

        entry = FinancialTransaction(
            user_id=booking.partner_id,
            booking_id=booking.id,
            type=TransactionType.COMMISSION.value,
            amount=amount,
            currency=booking.currency,
            status=TransactionStatus.PENDING.value,
            description=f"Referral commission for booking {booking.booking_number}",
            details={
                "kind": PARTNER_COMMISSION,
                "booking_number": booking.booking_number,
                "partner_rate": str(partner_rate),
            },
        )
        if reconciled:
            entry.details["reconciled"] = True
        db.add(entry)
        return entry

    async def reverse_booking_transactions(
        self,
        db: AsyncSession,
        booking: Booking,
        refund_reference: str | None = None,
    ) -> dict:
        """Undo the ledger effect of a refunded booking.

        - Pending commission rows flip to ``reversed``.
        - A partner commission that was already paid out gets a negative
          pending row, netted against the partner's next payout.
        - The refund to the guest is appended as a completed ``refund`` row.
        """
        reversed_result = await db.execute(
            update(FinancialTransaction)
            .where(
                FinancialTransaction.booking_id == booking.id,
                FinancialTransaction.type == TransactionType.COMMISSION.value,
                FinancialTransaction.status == TransactionStatus.PENDING.value,
            )
            .values(status=TransactionStatus.REVERSED.value)
            .execution_options(synchronize_session=False)
        )

        offsets = []
        if booking.partner_id is not None:
            paid = await db.execute(
                _commission_rows(booking.id, booking.partner_id).where(
                    FinancialTransaction.status == TransactionStatus.COMPLETED.value,
                    FinancialTransaction.amount > 0,
                )
            )
            for row in paid.scalars().all():
                offset = FinancialTransaction(
                    user_id=row.user_id,
                    booking_id=booking.id,
                    type=TransactionType.COMMISSION.value,
                    amount=-row.amount,
                    currency=row.currency,
                    status=TransactionStatus.PENDING.value,
                    description=f"Commission clawback for refunded booking {booking.booking_number}",
                    details={"kind": PARTNER_OFFSET, "offsets": str(row.id)},
                )
                db.add(offset)
                offsets.append(offset)

        existing_refund = await db.execute(
            select(FinancialTransaction).where(
                FinancialTransaction.booking_id == booking.id,
                FinancialTransaction.type == TransactionType.REFUND.value,
            )
        )
        assert_no_duplicate_ledger_entry(
            existing_refund.scalar_one_or_none(), TransactionType.REFUND.value, booking.id
        )
        assert_positive_amount(booking.total_amount, "Refund")

        refund = FinancialTransaction(
            user_id=booking.guest_id,
            booking_id=booking.id,
            type=TransactionType.REFUND.value,
            amount=booking.total_amount,
            currency=booking.currency,
            status=TransactionStatus.COMPLETED.value,
            description=f"Refund for booking {booking.booking_number}",
            details={"kind": "guest_refund", "gateway_refund_id": refund_reference},
        )
        db.add(refund)

        logger.info(
            f"Reversed ledger for booking {booking.booking_number}: "
            f"{reversed_result.rowcount} row(s) reversed, {len(offsets)} offset(s)"
        )
        return {"reversed": reversed_result.rowcount, "offsets": offsets, "refund": refund}

    # ==================== HOST PAYOUT ROWS ====================

    async def complete_host_transactions(self, db: AsyncSession, booking: Booking) -> int:
        """Mark the host's pending earnings for a booking as disbursed."""
        result = await db.execute(
            update(FinancialTransaction)
            .where(
                FinancialTransaction.booking_id == booking.id,
                FinancialTransaction.user_id == booking.host_id,
                FinancialTransaction.type == TransactionType.COMMISSION.value,
                FinancialTransaction.status == TransactionStatus.PENDING.value,
            )
            .values(status=TransactionStatus.COMPLETED.value)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def record_host_payout(
        self,
        db: AsyncSession,
        booking: Booking,
        reference: str,
        gateway_reference: str | None = None,
    ) -> FinancialTransaction:
        assert_positive_amount(booking.host_earnings or 0, "Payout")

        existing = await db.execute(
            select(FinancialTransaction).where(
                FinancialTransaction.booking_id == booking.id,
                FinancialTransaction.type == TransactionType.PAYOUT.value,
            )
        )
        assert_no_duplicate_ledger_entry(
            existing.scalar_one_or_none(), TransactionType.PAYOUT.value, booking.id
        )

        entry = FinancialTransaction(
            user_id=booking.host_id,
            booking_id=booking.id,
            type=TransactionType.PAYOUT.value,
            amount=booking.host_earnings,
            currency=booking.currency,
            status=TransactionStatus.COMPLETED.value,
            description=f"Payout for booking {booking.booking_number}",
            details={"payout_reference": reference, "gateway_reference": gateway_reference},
        )
        db.add(entry)
        return entry

    # ==================== PARTNER PAYOUT ROWS ====================

    async def complete_partner_transactions(
        self,
        db: AsyncSession,
        partner_id: UUID,
        transaction_ids: list[UUID],
    ) -> None:
        """Flip exactly the given pending rows to completed.

        Raises:
            ConcurrentModification: If any row was no longer pending
        """
        result = await db.execute(
            update(FinancialTransaction)
            .where(
                FinancialTransaction.id.in_(transaction_ids),
                FinancialTransaction.user_id == partner_id,
                FinancialTransaction.status == TransactionStatus.PENDING.value,
            )
            .values(status=TransactionStatus.COMPLETED.value)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != len(transaction_ids):
            raise ConcurrentModification("Partner balance", str(partner_id))

    async def record_partner_payout(
        self,
        db: AsyncSession,
        partner_id: UUID,
        amount: int,
        currency: str,
        reference: str,
        transaction_ids: list[UUID],
        gateway_reference: str | None = None,
    ) -> FinancialTransaction:
        assert_positive_amount(amount, "Payout")

        entry = FinancialTransaction(
            user_id=partner_id,
            booking_id=None,
            type=TransactionType.PAYOUT.value,
            amount=amount,
            currency=currency,
            status=TransactionStatus.COMPLETED.value,
            description=f"Referral commission payout {reference}",
            details={
                "payout_reference": reference,
                "gateway_reference": gateway_reference,
                "transaction_ids": [str(tid) for tid in transaction_ids],
            },
        )
        db.add(entry)
        return entry

    # ==================== QUERIES ====================

    async def get_pending_rows(self, db: AsyncSession, user_id: UUID) -> list[FinancialTransaction]:
        result = await db.execute(
            select(FinancialTransaction)
            .where(
                FinancialTransaction.user_id == user_id,
                FinancialTransaction.type == TransactionType.COMMISSION.value,
                FinancialTransaction.status == TransactionStatus.PENDING.value,
            )
            .order_by(FinancialTransaction.created_at)
        )
        return list(result.scalars().all())

    async def get_pending_balance(self, db: AsyncSession, user_id: UUID) -> int:
        """Live sum of the user's pending commission rows."""
        result = await db.execute(
            select(func.coalesce(func.sum(FinancialTransaction.amount), 0)).where(
                FinancialTransaction.user_id == user_id,
                FinancialTransaction.type == TransactionType.COMMISSION.value,
                FinancialTransaction.status == TransactionStatus.PENDING.value,
            )
        )
        return int(result.scalar() or 0)

    async def list_transactions(
        self,
        db: AsyncSession,
        user_id: UUID,
        limit: int = 100,
        offset: int = 0,
    ) -> list[FinancialTransaction]:
        result = await db.execute(
            select(FinancialTransaction)
            .where(FinancialTransaction.user_id == user_id)
            .order_by(FinancialTransaction.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all())

    # ==================== RECONCILIATION ====================

    async def find_unrecorded_captures(self, db: AsyncSession) -> list[Booking]:
        """Captured bookings that have no host commission row.

        Includes bookings still awaiting approval whose capture went through
        but whose approval was rolled back.
        """
        has_host_row = exists().where(
            and_(
                FinancialTransaction.booking_id == Booking.id,
                FinancialTransaction.user_id == Booking.host_id,
                FinancialTransaction.type == TransactionType.COMMISSION.value,
            )
        )
        result = await db.execute(
            select(Booking)
            .where(
                or_(
                    Booking.status.in_([status.value for status in CAPTURED_STATUSES]),
                    and_(
                        Booking.status == BookingStatus.PENDING_HOST_APPROVAL.value,
                        Booking.captured_at.is_not(None),
                    ),
                ),
                ~has_host_row,
            )
            .order_by(Booking.created_at)
        )
        return list(result.scalars().all())

    async def record_missing_commissions(
        self,
        db: AsyncSession,
        booking: Booking,
        partner_amount: int,
        partner_rate,
    ) -> list[FinancialTransaction]:
        """Write whichever commission rows a captured booking is missing."""
        created = []

        host_rows = await db.execute(_commission_rows(booking.id, booking.host_id).limit(1))
        if host_rows.scalar_one_or_none() is None:
            created.append(await self.record_host_commission(db, booking, reconciled=True))

        if booking.partner_id is not None:
            partner_rows = await db.execute(
                _commission_rows(booking.id, booking.partner_id).limit(1)
            )
            if partner_rows.scalar_one_or_none() is None:
                entry = await self.record_partner_commission(
                    db, booking, partner_amount, partner_rate, reconciled=True
                )
                if entry is not None:
                    created.append(entry)

        if created:
            logger.warning(
                f"Reconciled {len(created)} missing ledger row(s) for booking {booking.booking_number}"
            )
        return created


# Singleton instance
settlement_service = SettlementService()
