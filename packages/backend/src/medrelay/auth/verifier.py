"""Identity verifier — token in, subject id out.

Learn: Sessions depend on the IdentityVerifier protocol, not on JWT.
Swapping in another identity provider (Firebase, Auth0, an internal
token service) means writing one class with an async verify().
"""

from typing import Protocol

from medrelay.auth.jwt import TokenError, verify_token
from medrelay.errors import RelayError


class InvalidToken(RelayError):
    """Bad, expired or otherwise unverifiable token."""

    message = "Invalid token"


class IdentityVerifier(Protocol):
    async def verify(self, token: str) -> str:
        """Return the subject id for a token or raise InvalidToken."""
        ...


class JwtIdentityVerifier:
    """Verifies locally signed JWT access tokens."""

    async def verify(self, token: str) -> str:
        if not isinstance(token, str) or not token:
            raise InvalidToken("Token required")
        try:
            payload = verify_token(token)
        except TokenError as e:
            raise InvalidToken(str(e))
        uid = payload["sub"]
        # The subject id becomes a document id, so it must be one path segment
        if not isinstance(uid, str) or not uid or "/" in uid:
            raise InvalidToken("Invalid token: bad subject")
        return uid
