"""Booking lifecycle service.

Drives bookings through the state graph in ``tripzeo.domain.booking_state``.
Each transition is one unit of work:

    load -> resolve edge -> authorize -> guarded status update
         -> gateway call -> ledger rows -> commit -> publish events

Any failure before the commit rolls the whole unit back, so a booking never
shows a status whose money movement did not happen. The one exception is a
gateway capture that succeeded before the failure: it is committed on its own
as ``captured_at`` so reconciliation can finish the approval.
"""

import logging
from datetime import UTC, date, datetime
from uuid import UUID

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tripzeo.core.exceptions import (
    AuthorizationError,
    ConcurrentModification,
    GatewayPermanentError,
    IllegalTransition,
    NotFoundError,
    ValidationError,
)
from tripzeo.domain.booking_state import BookingEvent, BookingStatus, next_status
from tripzeo.domain.events import DomainEvent, EventDispatcher, EventName, publish
from tripzeo.domain.ledger import (
    compute_partner_commission,
    compute_split,
    format_minor_units,
    validate_amount,
)
from tripzeo.gateways.base import BuyerInfo, CheckoutHandle
from tripzeo.models.booking import Booking
from tripzeo.models.experience import Experience
from tripzeo.models.user import User
from tripzeo.services.gateway_service import GatewayService, gateway_service
from tripzeo.services.notification_service import notification_service
from tripzeo.services.settings_service import SettingsService, settings_service
from tripzeo.services.settlement_service import SettlementService, settlement_service
from tripzeo.utils.booking_number import generate_booking_number
from tripzeo.utils.schedule import compute_schedule_window, ensure_utc

logger = logging.getLogger(__name__)


async def guarded_transition(
    db: AsyncSession,
    booking: Booking,
    event: BookingEvent,
    **values,
) -> BookingStatus:
    """Move ``booking`` along ``event`` with a compare-and-swap update.

    The row only changes if its status is still the one this session read.
    ``values`` are written in the same statement.

    Raises:
        IllegalTransition: If the edge does not exist
        ConcurrentModification: If another writer changed the status first
    """
    current = booking.status
    target = next_status(current, event)

    result = await db.execute(
        update(Booking)
        .where(Booking.id == booking.id, Booking.status == current)
        .values(status=target.value, **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise ConcurrentModification("Booking", str(booking.id))

    await db.refresh(booking)
    logger.info(
        f"Booking {booking.booking_number} {current} -> {target.value} ({event.value})"
    )
    return target


async def event_data(db: AsyncSession, booking: Booking, **extra) -> dict:
    experience = await db.get(Experience, booking.experience_id)
    return {
        "booking_number": booking.booking_number,
        "experience_title": experience.title if experience else "",
        "booking_date": booking.booking_date.isoformat(),
        "link": f"/bookings/{booking.id}",
        **extra,
    }


class BookingService:
    """Service for booking creation and lifecycle transitions."""

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

    # ==================== QUERIES ====================

    async def get_booking(self, db: AsyncSession, booking_id: UUID) -> Booking:
        booking = await db.get(Booking, booking_id)
        if booking is None:
            raise NotFoundError("Booking", str(booking_id))
        return booking

    async def get_booking_for(self, db: AsyncSession, actor: User, booking_id: UUID) -> Booking:
        """Load a booking the actor is party to."""
        booking = await self.get_booking(db, booking_id)
        if not (
            actor.is_admin
            or actor.id in (booking.guest_id, booking.host_id, booking.partner_id)
        ):
            raise AuthorizationError("You are not a party to this booking")
        return booking

    async def list_bookings(
        self,
        db: AsyncSession,
        actor: User,
        status: BookingStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Booking]:
        """Bookings the actor made, hosts, or referred. Admins see all."""
        query = select(Booking)
        if not actor.is_admin:
            query = query.where(
                or_(
                    Booking.guest_id == actor.id,
                    Booking.host_id == actor.id,
                    Booking.partner_id == actor.id,
                )
            )
        if status is not None:
            query = query.where(Booking.status == status.value)

        result = await db.execute(
            query.order_by(Booking.created_at.desc()).limit(limit).offset(offset)
        )
        return list(result.scalars().all())

    # ==================== CREATION & CHECKOUT ====================

    async def create_booking(
        self,
        db: AsyncSession,
        actor: User,
        experience_id: UUID,
        booking_date: date,
        attendees_count: int = 1,
        referral_code: str | None = None,
    ) -> Booking:
        """Quote and create a booking in ``pending_payment``.

        The guest is charged ``base + service fee`` at the fee rate in force
        now; commission and host earnings are fixed at host approval.
        """
        experience = await db.get(Experience, experience_id)
        if experience is None or not experience.is_active:
            raise NotFoundError("Experience", str(experience_id))
        if experience.host_id == actor.id:
            raise ValidationError("Hosts cannot book their own experience")
        if attendees_count < 1:
            raise ValidationError("At least one attendee is required")
        if booking_date < datetime.now(UTC).date():
            raise ValidationError("Booking date is in the past")

        base_price = validate_amount(experience.price * attendees_count, "Base price")
        snapshot = await self.rates.get_rate_snapshot(db)
        quote = compute_split(base_price, snapshot.commission_percent, snapshot.service_fee_percent)

        partner = await self._resolve_partner(db, referral_code, actor, experience)
        scheduled_start, scheduled_end = compute_schedule_window(
            booking_date,
            experience.start_time,
            experience.end_time,
            experience.duration_minutes,
        )

        booking = Booking(
            booking_number=await generate_booking_number(db),
            experience_id=experience.id,
            guest_id=actor.id,
            host_id=experience.host_id,
            partner_id=partner.id if partner else None,
            booking_date=booking_date,
            start_time=experience.start_time,
            end_time=experience.end_time,
            duration_minutes=experience.duration_minutes,
            scheduled_start_at=scheduled_start,
            scheduled_end_at=scheduled_end,
            attendees_count=attendees_count,
            currency=experience.currency,
            base_price=quote.base_price,
            service_fee=quote.service_fee,
            total_amount=quote.total_amount,
            service_fee_rate=snapshot.service_fee_percent,
            rates_version=snapshot.version,
            status=BookingStatus.PENDING_PAYMENT.value,
        )
        db.add(booking)
        await db.commit()
        await db.refresh(booking)

        logger.info(
            f"Booking {booking.booking_number} created for {actor.id}: "
            f"{format_minor_units(booking.total_amount, booking.currency)}"
        )
        return booking

    async def _resolve_partner(
        self,
        db: AsyncSession,
        referral_code: str | None,
        actor: User,
        experience: Experience,
    ) -> User | None:
        if not referral_code:
            return None
        partner = await db.scalar(
            select(User).where(
                User.referral_code == referral_code.strip().upper(),
                User.role == "partner",
                User.is_active.is_(True),
            )
        )
        if partner is None or partner.id in (actor.id, experience.host_id):
            logger.info(f"Ignoring referral code {referral_code!r}")
            return None
        return partner

    async def initialize_checkout(
        self,
        db: AsyncSession,
        actor: User,
        booking_id: UUID,
    ) -> CheckoutHandle:
        """Open a hosted checkout that authorizes the booking total."""
        booking = await self.get_booking(db, booking_id)
        if booking.guest_id != actor.id and not actor.is_admin:
            raise AuthorizationError("Only the guest can pay for this booking")
        if booking.status != BookingStatus.PENDING_PAYMENT.value:
            raise IllegalTransition(booking.status, "checkout")

        guest = await db.get(User, booking.guest_id)
        experience = await db.get(Experience, booking.experience_id)

        handle = await self.gateway.initialize_checkout(
            booking_id=str(booking.id),
            amount=booking.total_amount,
            currency=booking.currency,
            buyer=BuyerInfo(id=str(guest.id), email=guest.email, full_name=guest.full_name),
            description=f"{experience.title} ({booking.booking_number})",
        )

        booking.checkout_token = handle.token
        await db.commit()
        return handle

    async def confirm_payment(self, db: AsyncSession, token: str) -> Booking:
        """Apply the outcome of a hosted checkout.

        Replaying the callback for a booking that already recorded the same
        authorization returns the booking unchanged.
        """
        confirmation = await self.gateway.confirm_callback(token)

        try:
            booking_id = UUID(confirmation.basket_id)
        except ValueError:
            raise GatewayPermanentError("Gateway returned an unknown basket id")
        booking = await self.get_booking(db, booking_id)
        if booking.checkout_token != token:
            raise GatewayPermanentError("Checkout token does not belong to this booking")

        if (
            confirmation.success
            and booking.payment_transaction_id == confirmation.gateway_transaction_id
        ):
            return booking

        try:
            if confirmation.success:
                await guarded_transition(
                    db,
                    booking,
                    BookingEvent.PAYMENT_SUCCEEDED,
                    payment_id=confirmation.gateway_payment_id,
                    payment_transaction_id=confirmation.gateway_transaction_id,
                )
                events = [
                    DomainEvent(
                        name=EventName.PAYMENT_AUTHORIZED,
                        recipients=(booking.host_id,),
                        booking_id=booking.id,
                        data=await event_data(db, booking),
                    )
                ]
            else:
                await guarded_transition(db, booking, BookingEvent.PAYMENT_FAILED)
                logger.warning(
                    f"Payment failed for booking {booking.booking_number}: {confirmation.error_message}"
                )
                events = [
                    DomainEvent(
                        name=EventName.PAYMENT_FAILED,
                        recipients=(booking.guest_id,),
                        booking_id=booking.id,
                        data=await event_data(db, booking),
                    )
                ]
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        await publish(self.dispatcher, events)
        return booking

    # ==================== HOST DECISION ====================

    def _assert_host_or_admin(self, actor: User, booking: Booking) -> None:
        if not (actor.is_admin or actor.id == booking.host_id):
            raise AuthorizationError("Only the host or an admin can manage this booking")

    async def approve_booking(self, db: AsyncSession, actor: User, booking_id: UUID) -> Booking:
        """Capture the held payment and record host and partner earnings.

        Commission is computed from the rates in force at approval; the
        service fee keeps the rate the guest was charged with.
        """
        booking = await self.get_booking(db, booking_id)
        next_status(booking.status, BookingEvent.HOST_APPROVED)
        self._assert_host_or_admin(actor, booking)

        snapshot = await self.rates.get_rate_snapshot(db)
        split = compute_split(
            booking.base_price, snapshot.commission_percent, booking.service_fee_rate
        )
        if split.total_amount != booking.total_amount:
            raise ValidationError(
                f"Booking {booking.booking_number} total does not match its quote"
            )
        partner_amount = (
            compute_partner_commission(booking.base_price, snapshot.partner_commission_percent)
            if booking.partner_id
            else 0
        )

        now = datetime.now(UTC)
        captured = False
        try:
            await guarded_transition(
                db,
                booking,
                BookingEvent.HOST_APPROVED,
                commission_rate=snapshot.commission_percent,
                commission_amount=split.commission_amount,
                host_earnings=split.host_earnings,
                rates_version=snapshot.version,
                confirmed_at=now,
                captured_at=now,
            )
            await self.gateway.capture(booking.payment_transaction_id)
            captured = True
            await self.settlement.record_host_commission(db, booking)
            await self.settlement.record_partner_commission(
                db, booking, partner_amount, snapshot.partner_commission_percent
            )
            data = await event_data(db, booking)
            await db.commit()
        except Exception:
            await db.rollback()
            if captured:
                await self._mark_captured(db, booking_id, now)
            raise

        await publish(
            self.dispatcher,
            [
                DomainEvent(
                    name=EventName.BOOKING_CONFIRMED,
                    recipients=(booking.guest_id,),
                    booking_id=booking.id,
                    data=data,
                )
            ],
        )
        return booking

    async def _mark_captured(self, db: AsyncSession, booking_id: UUID, captured_at: datetime) -> None:
        """Persist a capture whose unit of work was rolled back.

        The booking keeps its pre-approval status; reconciliation finishes
        the approval and a cancellation refunds instead of voiding.
        """
        try:
            await db.execute(
                update(Booking)
                .where(Booking.id == booking_id, Booking.captured_at.is_(None))
                .values(captured_at=captured_at)
                .execution_options(synchronize_session=False)
            )
            await db.commit()
        except Exception:
            await db.rollback()
            logger.exception(f"Could not record capture for booking {booking_id}")
            return
        logger.error(f"Booking {booking_id} captured at the gateway without ledger rows")

    async def reject_booking(self, db: AsyncSession, actor: User, booking_id: UUID) -> Booking:
        """Decline a request and release the guest's hold."""
        booking = await self.get_booking(db, booking_id)
        next_status(booking.status, BookingEvent.HOST_REJECTED)
        self._assert_host_or_admin(actor, booking)

        was_captured = booking.captured_at is not None
        try:
            await guarded_transition(
                db, booking, BookingEvent.HOST_REJECTED, cancelled_at=datetime.now(UTC)
            )
            money_note = await self._release_payment(db, booking, was_captured)
            data = await event_data(db, booking, money_note=money_note)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        await publish(
            self.dispatcher,
            [
                DomainEvent(
                    name=EventName.BOOKING_REJECTED,
                    recipients=(booking.guest_id,),
                    booking_id=booking.id,
                    data=data,
                )
            ],
        )
        return booking

    # ==================== CANCELLATION ====================

    def _cancel_event(self, actor: User, booking: Booking) -> BookingEvent:
        if actor.id == booking.guest_id:
            return BookingEvent.CANCELLED_BY_GUEST
        if actor.is_admin or actor.id == booking.host_id:
            return BookingEvent.CANCELLED_BY_HOST
        raise AuthorizationError("Only the guest, the host or an admin can cancel this booking")

    @staticmethod
    def _is_captured(booking: Booking) -> bool:
        return (
            booking.captured_at is not None
            or booking.status != BookingStatus.PENDING_HOST_APPROVAL.value
        )

    async def _release_payment(self, db: AsyncSession, booking: Booking, captured: bool) -> str:
        """Refund a captured charge or void a hold. Returns the guest-facing note."""
        if not captured:
            await self.gateway.void(booking.payment_transaction_id)
            return "The hold on your card has been released."

        result = await self.gateway.refund(booking.payment_id, booking.total_amount)
        await self.settlement.reverse_booking_transactions(
            db, booking, refund_reference=result.reference
        )
        return (
            f"A refund of {format_minor_units(booking.total_amount, booking.currency)} "
            "has been issued."
        )

    async def refund_booking(
        self,
        db: AsyncSession,
        actor: User,
        booking_id: UUID,
        reason: str | None = None,
    ) -> Booking:
        """Cancel a booking, voiding or refunding depending on its status.

        An uncaptured hold is voided and the ledger is untouched. A captured
        charge is refunded and the booking's commission rows are reversed,
        including a capture whose approval was rolled back.
        """
        booking = await self.get_booking(db, booking_id)
        event = self._cancel_event(actor, booking)
        next_status(booking.status, event)
        was_captured = self._is_captured(booking)

        try:
            await guarded_transition(db, booking, event, cancelled_at=datetime.now(UTC))
            money_note = await self._release_payment(db, booking, was_captured)
            data = await event_data(db, booking, money_note=money_note, reason=reason or "")
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info(
            f"Booking {booking.booking_number} cancelled by {actor.id} "
            f"({'refund' if was_captured else 'void'})"
        )
        await publish(
            self.dispatcher,
            [
                DomainEvent(
                    name=EventName.BOOKING_CANCELLED,
                    recipients=(booking.guest_id, booking.host_id),
                    booking_id=booking.id,
                    data=data,
                )
            ],
        )
        return booking

    # ==================== COMPLETION ====================

    async def complete_booking(
        self,
        db: AsyncSession,
        actor: User,
        booking_id: UUID,
        now: datetime | None = None,
    ) -> Booking:
        """Complete a confirmed booking whose scheduled end has passed."""
        booking = await self.get_booking(db, booking_id)
        self._assert_host_or_admin(actor, booking)
        return await self.complete_elapsed(db, booking, now)

    async def complete_elapsed(
        self,
        db: AsyncSession,
        booking: Booking,
        now: datetime | None = None,
    ) -> Booking:
        """Mark a booking completed and eligible for host payout."""
        now = now or datetime.now(UTC)
        next_status(booking.status, BookingEvent.SCHEDULE_ELAPSED)
        if ensure_utc(booking.scheduled_end_at) > now:
            raise IllegalTransition(
                booking.status,
                BookingEvent.SCHEDULE_ELAPSED.value,
                f"Booking {booking.booking_number} has not ended yet",
            )

        try:
            await guarded_transition(
                db,
                booking,
                BookingEvent.SCHEDULE_ELAPSED,
                completed_at=now,
                payout_eligible_at=now,
            )
            data = await event_data(db, booking)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        await publish(
            self.dispatcher,
            [
                DomainEvent(
                    name=EventName.REVIEW_REQUESTED,
                    recipients=(booking.guest_id,),
                    booking_id=booking.id,
                    data=data,
                )
            ],
        )
        return booking

    # ==================== RECONCILIATION ====================

    async def reconcile_missing_commissions(self, db: AsyncSession) -> int:
        """Create ledger rows for captured bookings that have none.

        Returns:
            Number of rows created
        """
        created = 0
        for booking in await self.settlement.find_unrecorded_captures(db):
            snapshot = await self.rates.get_rate_snapshot(db)
            booking_number = booking.booking_number
            try:
                money = {}
                if booking.commission_amount is None:
                    split = compute_split(
                        booking.base_price, snapshot.commission_percent, booking.service_fee_rate
                    )
                    money = {
                        "commission_rate": snapshot.commission_percent,
                        "commission_amount": split.commission_amount,
                        "host_earnings": split.host_earnings,
                        "rates_version": snapshot.version,
                    }

                if booking.status == BookingStatus.PENDING_HOST_APPROVAL.value:
                    # Captured, but the approval itself was rolled back
                    await guarded_transition(
                        db,
                        booking,
                        BookingEvent.HOST_APPROVED,
                        confirmed_at=booking.captured_at,
                        **money,
                    )
                elif money:
                    await db.execute(
                        update(Booking)
                        .where(Booking.id == booking.id, Booking.commission_amount.is_(None))
                        .values(**money)
                        .execution_options(synchronize_session=False)
                    )
                    await db.refresh(booking)

                partner_amount = (
                    compute_partner_commission(booking.base_price, snapshot.partner_commission_percent)
                    if booking.partner_id
                    else 0
                )
                rows = await self.settlement.record_missing_commissions(
                    db, booking, partner_amount, snapshot.partner_commission_percent
                )
                await db.commit()
                created += len(rows)
            except Exception:
                await db.rollback()
                logger.exception(f"Reconciliation failed for booking {booking_number}")
        return created


# Singleton instance
booking_service = BookingService(dispatcher=notification_service)
