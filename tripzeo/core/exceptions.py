"""Custom application exceptions.

Every exception carries a ``code`` tag that the API layer renders next to the
human readable ``detail`` so clients can branch on the error kind.
"""

from typing import Any

from fastapi import HTTPException, status


class AppException(HTTPException):
    """Base application exception."""

    code = "InternalError"

    def __init__(
        self,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail: str = "An unexpected error occurred",
        headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__(status_code=status_code, detail=detail, headers=headers)


class ValidationError(AppException):
    """Validation error exception."""

    code = "ValidationError"

    def __init__(self, detail: str = "Validation failed", errors: list[dict[str, Any]] | None = None) -> None:
        self.errors = errors
        super().__init__(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=detail)


class NotFoundError(AppException):
    """Resource not found exception."""

    code = "NotFound"

    def __init__(self, resource: str = "Resource", identifier: str | None = None) -> None:
        detail = f"{resource} not found"
        if identifier:
            detail = f"{resource} with ID '{identifier}' not found"
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class AuthenticationError(AppException):
    """Authentication failed exception."""

    code = "Unauthenticated"

    def __init__(self, detail: str = "Authentication failed") -> None:
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


class AuthorizationError(AppException):
    """Actor lacks the role required for this operation."""

    code = "Unauthorized"

    def __init__(self, detail: str = "You don't have permission to perform this action") -> None:
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


class InvalidAmount(AppException):
    """Bad monetary input (negative, non-finite, fractional minor units)."""

    code = "InvalidAmount"

    def __init__(self, detail: str = "Invalid monetary amount") -> None:
        super().__init__(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=detail)


class IllegalTransition(AppException):
    """Requested booking edge is not in the state graph."""

    code = "IllegalTransition"

    def __init__(self, current: str, event: str, detail: str | None = None) -> None:
        self.current = current
        self.event = event
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail or f"Cannot apply '{event}' to a booking in status '{current}'",
        )


class ConcurrentModification(AppException):
    """Guarded status update matched no rows: another writer got there first."""

    code = "ConcurrentModification"

    def __init__(self, resource: str, identifier: str) -> None:
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"{resource} '{identifier}' was modified concurrently. Refresh and try again.",
        )


class GatewayError(AppException):
    """Payment provider call failed."""

    code = "GatewayError"
    retryable = False

    def __init__(
        self,
        detail: str = "Payment processing failed",
        status_code: int = status.HTTP_402_PAYMENT_REQUIRED,
    ) -> None:
        super().__init__(status_code=status_code, detail=detail)


class GatewayRetryableError(GatewayError):
    """Timeout or transient provider failure; the same call may be retried."""

    code = "GatewayError.Retryable"
    retryable = True

    def __init__(self, detail: str = "Payment provider did not respond in time") -> None:
        super().__init__(detail=detail, status_code=status.HTTP_503_SERVICE_UNAVAILABLE)


class GatewayPermanentError(GatewayError):
    """Decline or malformed provider response."""

    code = "GatewayError.Permanent"

    def __init__(self, detail: str = "Payment was declined") -> None:
        super().__init__(detail=detail, status_code=status.HTTP_402_PAYMENT_REQUIRED)


class BelowThreshold(AppException):
    """Payout requested while the aggregated balance is under the minimum."""

    code = "BelowThreshold"

    def __init__(self, balance: int, threshold: int) -> None:
        self.balance = balance
        self.threshold = threshold
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Pending balance {balance} is below the payout threshold of {threshold}",
        )
