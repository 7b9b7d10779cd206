"""JWT token creation and verification.

Learn: JWT (JSON Web Token) provides stateless authentication.
The token's "sub" claim is the user's uid, the same id used as the
document key under users/{uid}. Tokens are short-lived access tokens;
issuing them is the identity provider's job, create_access_token exists
for development and tests.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from medrelay.config import settings


class TokenError(Exception):
    """Raised when token creation/verification fails."""


def create_access_token(
    user_id: str,
    expires_minutes: Optional[int] = None,
) -> str:
    """Create a JWT access token for a uid."""
    now = datetime.now(timezone.utc)
    expires = now + timedelta(
        minutes=expires_minutes or settings.access_token_expire_minutes
    )
    payload = {
        "sub": user_id,
        "type": "access",
        "exp": expires,
        "iat": now,
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def verify_token(token: str) -> dict:
    """Verify and decode a JWT token.

    Returns the payload dict on success.
    Raises TokenError on failure.
    """
    try:
        payload = jwt.decode(
            token, settings.jwt_secret, algorithms=[settings.jwt_algorithm]
        )
    except jwt.ExpiredSignatureError:
        raise TokenError("Token has expired")
    except jwt.InvalidTokenError as e:
        raise TokenError(f"Invalid token: {e}")
    if payload.get("type", "access") != "access":
        raise TokenError("Invalid token: not an access token")
    if not payload.get("sub"):
        raise TokenError("Invalid token: missing subject")
    return payload
