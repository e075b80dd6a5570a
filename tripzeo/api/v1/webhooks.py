"""Webhook endpoints for payment gateways."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Header, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from tripzeo.api.deps import get_booking_service, get_db
from tripzeo.core.exceptions import AppException, ValidationError
from tripzeo.gateways.stripe_gateway import StripeGateway
from tripzeo.services.booking_service import BookingService

logger = logging.getLogger(__name__)

router = APIRouter()

HANDLED_EVENTS = ("checkout.session.completed", "checkout.session.expired")


@router.post("/stripe", status_code=status.HTTP_200_OK)
async def stripe_webhook(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[BookingService, Depends(get_booking_service)],
    stripe_signature: Annotated[str | None, Header(alias="Stripe-Signature")] = None,
) -> dict:
    """Handle Stripe checkout events.

    A completed session is applied exactly like the browser callback, so
    whichever arrives second is a no-op.
    """
    payload = await request.body()
    event = StripeGateway().verify_webhook(payload, stripe_signature or "")
    if event is None:
        raise ValidationError("Invalid Stripe webhook signature")

    if event["type"] not in HANDLED_EVENTS:
        return {"received": True}

    session_id = event["data"]["object"]["id"]
    try:
        await service.confirm_payment(db, session_id)
    except AppException as e:
        logger.warning(f"Stripe webhook {event['type']} for {session_id} not applied: {e.detail}")
        return {"received": True, "applied": False}

    return {"received": True, "applied": True}
