"""
auth/tokens.py -- Session JWTs and password reset tokens.

Security design decisions:
  JWT: python-jose with HS256. Tokens carry the account id as the "sub" claim
       plus "iat" and "exp". Verification is stateless -- there is no session
       table -- so a token stays valid until it expires.

  Verification raises rather than returning None. An expired token and a
       forged or garbled one are different diagnostics for the client
       ("log in again" vs "this is not a token we issued"), so verify_session()
       raises TokenExpired or TokenInvalid and the route layer maps both to 401
       with distinct error codes.

  Reset tokens: secrets.token_urlsafe(48) gives 48 random bytes as exactly 64
       URL-safe characters (384 bits of entropy). Collisions are not checked
       here; the UNIQUE index on reset_tokens.token is the backstop.

The signing secret and expiry window are constructor arguments, built from
Settings in the API lifespan.

Layer rule: no imports from api/ or vault/.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone

from jose import ExpiredSignatureError, JWTError, jwt

from auth.models import Principal
from core.errors import TokenExpired, TokenInvalid

logger = logging.getLogger("secretvault.auth")

_ALGORITHM = "HS256"

DEFAULT_EXPIRE_SECONDS = 3600
RESET_TOKEN_LENGTH = 64


class TokenIssuer:
    """Issues and verifies bearer session tokens; mints reset tokens.

    Usage:
        issuer = TokenIssuer(settings.secret_key, settings.token_expire_seconds)
        token, expires_at = issuer.issue_session(account_id)
        principal = issuer.verify_session(token)
    """

    def __init__(self, secret_key: str, expire_seconds: int = DEFAULT_EXPIRE_SECONDS) -> None:
        if not secret_key:
            raise ValueError("TokenIssuer requires a signing secret.")
        self._secret_key = secret_key
        self.expire_seconds = expire_seconds

    def issue_session(self, account_id: str) -> tuple[str, datetime]:
        """Return (token, expires_at) for account_id."""
        now = datetime.now(timezone.utc)
        expires_at = now + timedelta(seconds=self.expire_seconds)
        payload = {
            "sub": account_id,
            "iat": int(now.timestamp()),
            "exp": int(expires_at.timestamp()),
        }
        return jwt.encode(payload, self._secret_key, algorithm=_ALGORITHM), expires_at

    def verify_session(self, token: str) -> Principal:
        """Verify a session token and return the Principal it identifies.

        Raises TokenExpired if the signature checks out but exp has passed.
        Every other failure -- bad signature, wrong algorithm, garbage input,
        missing sub -- collapses into TokenInvalid.
        """
        try:
            payload = jwt.decode(token, self._secret_key, algorithms=[_ALGORITHM])
        except ExpiredSignatureError as exc:
            raise TokenExpired() from exc
        except JWTError as exc:
            raise TokenInvalid() from exc
        except Exception as exc:
            # jose can surface non-JWTError exceptions for some malformed inputs
            raise TokenInvalid() from exc

        sub = payload.get("sub")
        exp = payload.get("exp")
        if not isinstance(sub, str) or not sub or exp is None:
            raise TokenInvalid()
        return Principal(account_id=sub, expires_at=datetime.fromtimestamp(int(exp), tz=timezone.utc))

    @staticmethod
    def issue_reset_token() -> str:
        """Return a fresh 64-character URL-safe reset token."""
        return secrets.token_urlsafe(48)
