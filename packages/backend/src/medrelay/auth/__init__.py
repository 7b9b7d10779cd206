"""Identity verification.

Learn: The relay never sees passwords. A client proves who it is by
sending a signed token in a "verify" request; the verifier turns that
token into a subject id (the user's uid) or rejects it.
"""

from medrelay.auth.jwt import TokenError, create_access_token, verify_token
from medrelay.auth.verifier import IdentityVerifier, InvalidToken, JwtIdentityVerifier

__all__ = [
    "IdentityVerifier",
    "InvalidToken",
    "JwtIdentityVerifier",
    "TokenError",
    "create_access_token",
    "verify_token",
]
