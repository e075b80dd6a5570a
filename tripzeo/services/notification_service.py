"""Notification Service.

Dispatches committed domain events to users:
- In-app notifications (database)
- Email (SendGrid)
"""

import html
import logging
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tripzeo.config import settings
from tripzeo.database import async_session_maker
from tripzeo.domain.events import DomainEvent, EventName
from tripzeo.models.notification import Notification
from tripzeo.models.user import User

logger = logging.getLogger(__name__)

# Title and message per event; formatted with the event's data.
TEMPLATES: dict[EventName, tuple[str, str]] = {
    EventName.PAYMENT_AUTHORIZED: (
        "New booking request",
        "Booking {booking_number} for {experience_title} is waiting for your approval.",
    ),
    EventName.PAYMENT_FAILED: (
        "Payment failed",
        "We could not authorize your payment for {experience_title}. Please try again.",
    ),
    EventName.BOOKING_CONFIRMED: (
        "Booking confirmed!",
        "Your booking {booking_number} for {experience_title} on {booking_date} is confirmed.",
    ),
    EventName.BOOKING_REJECTED: (
        "Booking declined",
        "The host declined booking {booking_number}. The hold on your card has been released.",
    ),
    EventName.BOOKING_CANCELLED: (
        "Booking cancelled",
        "Booking {booking_number} for {experience_title} was cancelled. {money_note}",
    ),
    EventName.REVIEW_REQUESTED: (
        "How was your trip?",
        "Your experience {experience_title} is complete. Please leave a review!",
    ),
    EventName.HOST_PAID_OUT: (
        "Payout sent",
        "Your earnings of {amount} for booking {booking_number} have been paid out.",
    ),
    EventName.PARTNER_PAID_OUT: (
        "Commission payout sent",
        "Your referral commission of {amount} has been paid out. Reference {reference}.",
    ),
}


class _SafeDict(dict):
    def __missing__(self, key: str) -> str:
        return ""


def render(event: DomainEvent) -> tuple[str, str]:
    title, message = TEMPLATES[event.name]
    return title, message.format_map(_SafeDict(event.data)).strip()


class NotificationService:
    """Event dispatcher writing in-app notifications and sending email."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        send_emails: bool = True,
    ) -> None:
        self.session_factory = session_factory or async_session_maker
        self.send_emails = send_emails
        self._http_client: httpx.AsyncClient | None = None

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Lazy-load HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=30.0)
        return self._http_client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()

    async def dispatch(self, events: Sequence[DomainEvent]) -> None:
        """Deliver each event to each of its recipients.

        One failing recipient does not stop the others.
        """
        for event in events:
            title, message = render(event)
            for user_id in event.recipients:
                try:
                    await self.notify_user(
                        user_id=user_id,
                        title=title,
                        message=message,
                        notification_type=event.name.value,
                        link=event.data.get("link"),
                        booking_id=event.booking_id,
                    )
                except Exception:
                    logger.exception(f"Failed to notify {user_id} of {event.name.value}")

    # ==================== IN-APP NOTIFICATIONS ====================

    async def create_notification(
        self,
        db: AsyncSession,
        user_id: UUID,
        title: str,
        message: str,
        notification_type: str,
        link: str | None = None,
        booking_id: UUID | None = None,
    ) -> Notification:
        notification = Notification(
            user_id=user_id,
            title=title,
            message=message,
            notification_type=notification_type,
            link=link,
            booking_id=booking_id,
        )
        db.add(notification)
        await db.flush()
        return notification

    async def notify_user(
        self,
        user_id: UUID,
        title: str,
        message: str,
        notification_type: str,
        link: str | None = None,
        booking_id: UUID | None = None,
    ) -> None:
        """Store an in-app notification and email the user."""
        async with self.session_factory() as db:
            user = await db.scalar(select(User).where(User.id == user_id))
            if not user:
                logger.warning(f"Notification target {user_id} not found")
                return

            await self.create_notification(
                db=db,
                user_id=user_id,
                title=title,
                message=message,
                notification_type=notification_type,
                link=link,
                booking_id=booking_id,
            )
            await db.commit()

        if self.send_emails and user.email:
            await self.send_email(
                to_email=user.email,
                subject=title,
                html_content=self._generate_email_html(title, message, link),
                text_content=message,
            )

    # ==================== EMAIL (SENDGRID) ====================

    async def send_email(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        text_content: str | None = None,
    ) -> bool:
        """Send an email via SendGrid.

        Returns:
            bool: True if sent successfully
        """
        if not settings.sendgrid_api_key:
            return False

        payload: dict[str, Any] = {
            "personalizations": [{"to": [{"email": to_email}]}],
            "from": {
                "email": settings.email_from_address,
                "name": settings.email_from_name,
            },
            "subject": subject,
            "content": [{"type": "text/html", "value": html_content}],
        }
        if text_content:
            payload["content"].insert(0, {"type": "text/plain", "value": text_content})

        try:
            response = await self.http_client.post(
                "https://api.sendgrid.com/v3/mail/send",
                headers={
                    "Authorization": f"Bearer {settings.sendgrid_api_key}",
                    "Content-Type": "application/json",
                },
                json=payload,
            )
        except httpx.HTTPError as e:
            logger.warning(f"SendGrid request failed for {to_email}: {e}")
            return False

        if response.status_code not in (200, 202):
            logger.warning(f"SendGrid rejected email to {to_email}: {response.status_code}")
            return False
        return True

    def _generate_email_html(self, title: str, body: str, link: str | None) -> str:
        button_html = ""
        if link:
            button_html = f"""
            <p style="margin-top: 24px;">
                <a href="{html.escape(link, quote=True)}"
                   style="background-color: #0F766E; color: white; padding: 12px 24px;
                          text-decoration: none; border-radius: 6px; display: inline-block;">
                    View booking
                </a>
            </p>
            """

        return f"""
        <!DOCTYPE html>
        <html>
        <body style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
                     max-width: 600px; margin: 0 auto; padding: 20px; color: #333;">
            <div style="background-color: #f9fafb; border-radius: 8px; padding: 24px;">
                <h1 style="color: #111827; font-size: 22px;">{html.escape(title)}</h1>
                <p style="color: #4b5563; font-size: 16px; line-height: 1.6;">{html.escape(body)}</p>
                {button_html}
            </div>
            <p style="color: #9ca3af; font-size: 12px; text-align: center;">
                &copy; {datetime.now(UTC).year} {settings.app_name}
            </p>
        </body>
        </html>
        """


# Singleton instance
notification_service = NotificationService()
