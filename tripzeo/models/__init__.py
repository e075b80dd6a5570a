"""Database models."""

from tripzeo.models.booking import Booking
from tripzeo.models.experience import Experience
from tripzeo.models.financial import FinancialTransaction, PlatformSetting
from tripzeo.models.notification import Notification
from tripzeo.models.user import User

__all__ = [
    # User
    "User",
    # Experience
    "Experience",
    # Booking
    "Booking",
    # Financial
    "FinancialTransaction",
    "PlatformSetting",
    # Notification
    "Notification",
]
