"""Payout service.

Partner payouts batch every pending commission row of one partner into a
single transfer. Host payouts release the earnings of one completed booking.
Both are all-or-nothing: the row flips, the transfer and the payout row
commit together or not at all.
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tripzeo.core.exceptions import (
    AuthorizationError,
    BelowThreshold,
    IllegalTransition,
    NotFoundError,
    ValidationError,
)
from tripzeo.domain.booking_state import BookingEvent, next_status
from tripzeo.domain.events import DomainEvent, EventDispatcher, EventName, publish
from tripzeo.domain.ledger import format_minor_units
from tripzeo.domain.transaction_state import (
    TransactionStatus,
    TransactionType,
    can_pay_out_host,
)
from tripzeo.models.booking import Booking
from tripzeo.models.experience import Experience
from tripzeo.models.financial import FinancialTransaction
from tripzeo.models.user import User
from tripzeo.services.booking_service import event_data, guarded_transition
from tripzeo.services.gateway_service import GatewayService, gateway_service
from tripzeo.services.notification_service import notification_service
from tripzeo.services.settings_service import SettingsService, settings_service
from tripzeo.services.settlement_service import SettlementService, settlement_service
from tripzeo.utils.booking_number import generate_payout_reference

logger = logging.getLogger(__name__)

# One payout run per partner at a time within this process; the guarded
# row update covers other processes. Entries live only while a run holds or
# waits for them.
_partner_locks: dict[UUID, asyncio.Lock] = {}
_partner_lock_holders: dict[UUID, int] = {}


@asynccontextmanager
async def partner_lock(partner_id: UUID) -> AsyncIterator[None]:
    lock = _partner_locks.setdefault(partner_id, asyncio.Lock())
    _partner_lock_holders[partner_id] = _partner_lock_holders.get(partner_id, 0) + 1
    try:
        async with lock:
            yield
    finally:
        _partner_lock_holders[partner_id] -= 1
        if _partner_lock_holders[partner_id] == 0:
            del _partner_lock_holders[partner_id]
            del _partner_locks[partner_id]


def _require_admin(actor: User) -> None:
    if not actor.is_admin:
        raise AuthorizationError("Only admins can release payouts")


class PayoutService:
    """Service for partner and host payouts."""

    def __init__(
        self,
        gateway: GatewayService | None = None,
        dispatcher: EventDispatcher | None = None,
        settlement: SettlementService | None = None,
        rates: SettingsService | None = None,
    ) -> None:
        self.gateway = gateway or gateway_service
        self.dispatcher = dispatcher
        self.settlement = settlement or settlement_service
        self.rates = rates or settings_service

    # ==================== PARTNERS ====================

    async def list_partner_balances(self, db: AsyncSession) -> list[dict]:
        """Partners with a non-zero pending commission balance."""
        snapshot = await self.rates.get_rate_snapshot(db)
        total = func.sum(FinancialTransaction.amount)

        result = await db.execute(
            select(
                User,
                func.count(FinancialTransaction.id),
                total,
                FinancialTransaction.currency,
            )
            .join(FinancialTransaction, FinancialTransaction.user_id == User.id)
            .where(
                User.role == "partner",
                FinancialTransaction.type == TransactionType.COMMISSION.value,
                FinancialTransaction.status == TransactionStatus.PENDING.value,
            )
            .group_by(User.id, FinancialTransaction.currency)
            .having(total != 0)
            .order_by(total.desc())
        )

        return [
            {
                "partner_id": partner.id,
                "full_name": partner.full_name,
                "email": partner.email,
                "transaction_count": count,
                "total_amount": int(amount),
                "currency": currency,
                "has_complete_bank_info": partner.has_complete_bank_info,
                "eligible": int(amount) >= snapshot.partner_payout_threshold,
            }
            for partner, count, amount, currency in result.all()
        ]

    async def payout_partner(
        self,
        db: AsyncSession,
        actor: User,
        partner_id: UUID,
    ) -> FinancialTransaction:
        """Pay out every pending commission row of one partner.

        Raises:
            BelowThreshold: If the pending balance is under the threshold
            ConcurrentModification: If a row changed while the run was in flight
            GatewayError: If the transfer fails; nothing is written
        """
        _require_admin(actor)

        async with partner_lock(partner_id):
            partner = await db.get(User, partner_id)
            if partner is None or partner.role != "partner":
                raise NotFoundError("Partner", str(partner_id))

            snapshot = await self.rates.get_rate_snapshot(db)
            rows = await self.settlement.get_pending_rows(db, partner_id)
            total = sum(row.amount for row in rows)
            if total < snapshot.partner_payout_threshold:
                raise BelowThreshold(total, snapshot.partner_payout_threshold)

            currencies = {row.currency for row in rows}
            if len(currencies) != 1:
                raise ValidationError(
                    f"Partner {partner_id} has pending commissions in several currencies"
                )
            currency = currencies.pop()
            transaction_ids = [row.id for row in rows]
            reference = generate_payout_reference("PRT")

            try:
                await self.settlement.complete_partner_transactions(
                    db, partner_id, transaction_ids
                )
                transfer = await self.gateway.transfer(
                    destination=partner.payout_account_id,
                    amount=total,
                    currency=currency,
                    reference=reference,
                )
                payout = await self.settlement.record_partner_payout(
                    db,
                    partner_id=partner_id,
                    amount=total,
                    currency=currency,
                    reference=reference,
                    transaction_ids=transaction_ids,
                    gateway_reference=transfer.reference,
                )
                await db.commit()
            except Exception:
                await db.rollback()
                raise

        logger.info(
            f"Partner payout {reference}: {format_minor_units(total, currency)} "
            f"to {partner_id} covering {len(transaction_ids)} row(s)"
        )
        await publish(
            self.dispatcher,
            [
                DomainEvent(
                    name=EventName.PARTNER_PAID_OUT,
                    recipients=(partner_id,),
                    data={
                        "amount": format_minor_units(total, currency),
                        "reference": reference,
                    },
                )
            ],
        )
        return payout

    async def get_partner_summary(
        self,
        db: AsyncSession,
        actor: User,
        partner_id: UUID | None = None,
    ) -> dict:
        """Referral code, earnings and conversions for a partner dashboard."""
        partner_id = partner_id or actor.id
        if partner_id != actor.id and not actor.is_admin:
            raise AuthorizationError("You can only view your own partner summary")

        partner = await db.get(User, partner_id)
        if partner is None or partner.role != "partner":
            raise NotFoundError("Partner", str(partner_id))

        snapshot = await self.rates.get_rate_snapshot(db)
        earned = await db.execute(
            select(
                func.coalesce(func.sum(FinancialTransaction.amount), 0),
                func.count(distinct(FinancialTransaction.booking_id)),
            ).where(
                FinancialTransaction.user_id == partner_id,
                FinancialTransaction.type == TransactionType.COMMISSION.value,
                FinancialTransaction.status != TransactionStatus.REVERSED.value,
            )
        )
        total_earnings, conversions = earned.one()

        paid = await db.scalar(
            select(func.coalesce(func.sum(FinancialTransaction.amount), 0)).where(
                FinancialTransaction.user_id == partner_id,
                FinancialTransaction.type == TransactionType.PAYOUT.value,
            )
        )
        pending = await self.settlement.get_pending_balance(db, partner_id)

        return {
            "partner_id": partner.id,
            "referral_code": partner.referral_code,
            "total_earnings": int(total_earnings),
            "pending_balance": pending,
            "paid_out": int(paid or 0),
            "conversion_count": int(conversions),
            "payout_threshold": snapshot.partner_payout_threshold,
            "eligible_for_payout": pending >= snapshot.partner_payout_threshold,
            "has_complete_bank_info": partner.has_complete_bank_info,
        }

    # ==================== HOSTS ====================

    async def payout_host(
        self,
        db: AsyncSession,
        actor: User,
        booking_id: UUID,
        payout_reference: str | None = None,
    ) -> Booking:
        """Release the host's earnings for a completed booking.

        With ``payout_reference`` the admin records a bank transfer made
        outside the platform; without it the gateway sends the transfer.
        """
        _require_admin(actor)

        booking = await db.get(Booking, booking_id)
        if booking is None:
            raise NotFoundError("Booking", str(booking_id))
        next_status(booking.status, BookingEvent.PAID_OUT)
        allowed, reason = can_pay_out_host(booking.status, booking.payout_eligible_at)
        if not allowed:
            raise IllegalTransition(booking.status, BookingEvent.PAID_OUT.value, reason)

        host = await db.get(User, booking.host_id)
        reference = payout_reference or generate_payout_reference()

        try:
            await guarded_transition(
                db,
                booking,
                BookingEvent.PAID_OUT,
                payout_reference=reference,
                paid_out_at=datetime.now(UTC),
            )
            completed = await self.settlement.complete_host_transactions(db, booking)
            if completed == 0:
                raise ValidationError(
                    f"Booking {booking.booking_number} has no pending host earnings"
                )

            gateway_reference = None
            if payout_reference is None:
                transfer = await self.gateway.transfer(
                    destination=host.payout_account_id,
                    amount=booking.host_earnings,
                    currency=booking.currency,
                    reference=reference,
                )
                gateway_reference = transfer.reference

            await self.settlement.record_host_payout(
                db, booking, reference, gateway_reference=gateway_reference
            )
            data = await event_data(
                db,
                booking,
                amount=format_minor_units(booking.host_earnings, booking.currency),
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info(f"Host payout {reference} released for booking {booking.booking_number}")
        await publish(
            self.dispatcher,
            [
                DomainEvent(
                    name=EventName.HOST_PAID_OUT,
                    recipients=(booking.host_id,),
                    booking_id=booking.id,
                    data=data,
                )
            ],
        )
        return booking

    # ==================== RECEIPTS ====================

    async def get_receipt(self, db: AsyncSession, actor: User, transaction_id: UUID) -> dict:
        """Printable receipt for one ledger row, visible to its owner and admins."""
        row = await db.get(FinancialTransaction, transaction_id)
        if row is None:
            raise NotFoundError("Transaction", str(transaction_id))
        if row.user_id != actor.id and not actor.is_admin:
            raise AuthorizationError("You can only view your own receipts")

        owner = await db.get(User, row.user_id)
        receipt = {
            "receipt_number": f"RCP-{row.id.hex[:10].upper()}",
            "transaction_id": row.id,
            "type": row.type,
            "status": row.status,
            "amount": row.amount,
            "currency": row.currency,
            "formatted_amount": format_minor_units(row.amount, row.currency),
            "description": row.description,
            "issued_to": owner.full_name or owner.email,
            "issued_at": row.created_at,
            "booking_number": None,
            "experience_title": None,
            "payout_reference": (row.details or {}).get("payout_reference"),
        }

        if row.booking_id:
            booking = await db.get(Booking, row.booking_id)
            experience = await db.get(Experience, booking.experience_id)
            receipt["booking_number"] = booking.booking_number
            receipt["experience_title"] = experience.title if experience else None

        return receipt


# Singleton instance
payout_service = PayoutService(dispatcher=notification_service)
