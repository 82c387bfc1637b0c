"""
auth/lifecycle.py -- Account registration, login and password reset.

AuthLifecycle orchestrates CryptoSuite, TokenIssuer, AccountStore and a
Mailer. It raises core.errors kinds and never swallows them; the API layer
decides how each one is presented.

Account states are {unregistered, active}: register moves an email from the
first to the second, nothing moves it back.

Timing equalization: login() runs bcrypt against a dummy hash when the email
is unknown, so the AccountNotFound and InvalidCredential paths cost the same.
The error kinds still differ -- callers that face anonymous clients should
present them identically.

Reset tokens: reset_password() extends the consumed token's expiry by
RESET_TOKEN_MINUTES instead of invalidating it, so a token can be replayed
inside that rolling window. single_use=True expires it on first use instead.

Layer rule: no imports from api/ or vault/.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy.exc import IntegrityError

from auth.crypto import CryptoSuite
from auth.mail import Mailer
from auth.models import Account, AccountSummary, AuthResult, Principal, ResetToken
from auth.store import AccountStore
from auth.tokens import TokenIssuer
from core.config import RESET_TOKEN_MINUTES
from core.errors import (
    AccountNotFound,
    DeliveryError,
    DuplicateEmail,
    InvalidCredential,
    TokenNotFound,
    ValidationError,
)

logger = logging.getLogger("secretvault.auth")


class AuthLifecycle:
    def __init__(
        self,
        store: AccountStore,
        crypto: CryptoSuite,
        tokens: TokenIssuer,
        mailer: Mailer,
        single_use: bool = False,
    ) -> None:
        self.store = store
        self.crypto = crypto
        self.tokens = tokens
        self.mailer = mailer
        self.single_use = single_use
        # Computed once so the first unknown-email login is not measurably faster.
        self._dummy_hash = crypto.hash_credential("secretvault_timing_dummy")

    def register(self, name: str, email: str, password: str) -> AuthResult:
        """Create an account and sign the caller in.

        Raises DuplicateEmail if the email is taken -- including when a
        concurrent request wins the race and the UNIQUE index rejects ours.
        """
        name = name.strip()
        if not name or not email.strip() or not password:
            raise ValidationError("Name, email and password are required.")
        if self.store.get_by_email(email) is not None:
            raise DuplicateEmail()

        hashed = self.crypto.hash_credential(password)
        try:
            account_id = self.store.create_account(Account(name=name, email=email, hashed_password=hashed))
        except IntegrityError as exc:
            raise DuplicateEmail() from exc

        account = self.store.get_by_id(account_id)
        if account is None:
            raise AccountNotFound("Account not found after registration.")
        logger.info("Account registered: %s", account.id)
        return self._signed_in(account)

    def login(self, email: str, password: str) -> AuthResult:
        account = self.store.get_by_email(email)
        if account is None:
            self.crypto.verify_credential(password, self._dummy_hash)
            raise AccountNotFound()
        if not self.crypto.verify_credential(password, account.hashed_password):
            logger.info("Failed login for account %s", account.id)
            raise InvalidCredential()
        return self._signed_in(account)

    def forgot_password(self, email: str) -> None:
        """Mint a reset token for email and mail it.

        Raises AccountNotFound for unknown emails and DeliveryError if the
        mailer fails. The token row is written before the mail goes out, so a
        failed delivery leaves an unused token behind until it expires.
        """
        account = self.store.get_by_email(email)
        if account is None:
            raise AccountNotFound()

        token = self.tokens.issue_reset_token()
        expires_at = datetime.now(timezone.utc) + timedelta(minutes=RESET_TOKEN_MINUTES)
        self.store.create_reset_token(ResetToken(token=token, account_id=account.id, expires_at=expires_at))
        try:
            self.mailer.send(account.email, token)
        except DeliveryError:
            logger.warning("Reset mail for account %s was not delivered", account.id)
            raise
        logger.info("Password reset mailed for account %s", account.id)

    def reset_password(self, reset_token: str, new_password: str) -> None:
        """Replace the account password if reset_token is known and unexpired.

        Raises TokenNotFound for unknown and expired tokens alike.
        """
        if not new_password:
            raise ValidationError("Password is required.")
        reset = self.store.get_usable_reset_token(reset_token)
        if reset is None:
            raise TokenNotFound()

        hashed = self.crypto.hash_credential(new_password)
        if not self.store.update_password(reset.account_id, hashed):
            raise AccountNotFound()

        now = datetime.now(timezone.utc)
        new_expiry = now if self.single_use else now + timedelta(minutes=RESET_TOKEN_MINUTES)
        self.store.set_reset_token_expiry(reset_token, new_expiry)
        logger.info("Password reset for account %s", reset.account_id)

    def current_account(self, principal: Principal) -> AccountSummary:
        account = self.store.get_by_id(principal.account_id)
        if account is None:
            raise AccountNotFound()
        return account.summary()

    def _signed_in(self, account: Account) -> AuthResult:
        token, expires_at = self.tokens.issue_session(account.id)
        return AuthResult(account=account.summary(), token=token, expires_at=expires_at)
