"""Bearer token verification for tokens issued by the identity provider."""

import hmac
from typing import Any

from jose import JWTError, jwt

from tripzeo.config import settings
from tripzeo.core.exceptions import AuthenticationError


def verify_token(token: str) -> dict[str, Any]:
    """Verify and decode a JWT access token."""
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError as e:
        raise AuthenticationError(f"Token validation failed: {str(e)}")
    if not payload.get("sub"):
        raise AuthenticationError("Invalid token payload")
    return payload


def create_access_token(user_id: str, role: str) -> str:
    """Mint a token the way the identity provider does (tests and scripts)."""
    return jwt.encode(
        {"sub": user_id, "role": role},
        settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
    )


def verify_cron_secret(authorization: str | None) -> None:
    """Check the scheduler's shared-secret bearer header."""
    expected = f"Bearer {settings.cron_secret}"
    if not authorization or not hmac.compare_digest(authorization, expected):
        raise AuthenticationError("Invalid scheduler credentials")
