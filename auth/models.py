"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Mirrors the approach
in vault/models.py -- dataclasses own domain shape; stores and services do
the work.

Layer rule: no imports from api/ or vault/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass
class Account:
    """A registered vault owner.

    email is stored lower-cased and trimmed; the UNIQUE index on it is what
    makes registration fail for a second account with the same address.

    hashed_password never leaves auth/ -- API response models are built from
    AccountSummary, which does not carry it.

    id is None before the record is written to the database.
    """

    name: str
    email: str
    hashed_password: str
    id: str | None = None
    created_at: str | None = None
    updated_at: str | None = None

    def summary(self) -> AccountSummary:
        return AccountSummary(id=self.id or "", name=self.name, email=self.email, created_at=self.created_at or "")


@dataclass(frozen=True)
class AccountSummary:
    """The public face of an Account: everything except the credential hash."""

    id: str
    name: str
    email: str
    created_at: str = ""


@dataclass
class ResetToken:
    """A one-time password reset token bound to an account.

    Lookups only consider a token whose expires_at is strictly in the future.
    Consuming a token extends expires_at rather than deleting the row unless
    single-use mode is switched on (see AuthLifecycle.reset_password).
    """

    token: str
    account_id: str
    expires_at: datetime
    created_at: str | None = None


@dataclass(frozen=True)
class Principal:
    """The authenticated caller of a request.

    Only TokenIssuer.verify_session() constructs these; route handlers receive
    one through the get_principal dependency and pass principal.account_id to
    the vault engine.
    """

    account_id: str
    expires_at: datetime


@dataclass(frozen=True)
class AuthResult:
    """Returned by register and login: the account plus a fresh session token."""

    account: AccountSummary
    token: str
    expires_at: datetime
