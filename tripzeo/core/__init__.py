"""Core utilities: errors, security, ledger immutability."""

from tripzeo.core.exceptions import (
    AppException,
    AuthenticationError,
    AuthorizationError,
    BelowThreshold,
    ConcurrentModification,
    GatewayError,
    GatewayPermanentError,
    GatewayRetryableError,
    IllegalTransition,
    InvalidAmount,
    NotFoundError,
    ValidationError,
)
from tripzeo.core.security import create_access_token, verify_cron_secret, verify_token

__all__ = [
    "AppException",
    "AuthenticationError",
    "AuthorizationError",
    "BelowThreshold",
    "ConcurrentModification",
    "GatewayError",
    "GatewayPermanentError",
    "GatewayRetryableError",
    "IllegalTransition",
    "InvalidAmount",
    "NotFoundError",
    "ValidationError",
    "create_access_token",
    "verify_cron_secret",
    "verify_token",
]
