"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper (same as vault/store.py).
AccountStore is the repository; _row_to_account / _row_to_reset_token are the
mappers. Service and route code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  Email uniqueness is enforced by the UNIQUE index on accounts.email, not by
  the read-before-insert in AuthLifecycle.register(). Emails are normalised
  (trimmed, lower-cased) on the way in, so the index is effectively
  case-insensitive. create_account() lets IntegrityError escape; the caller
  turns it into DuplicateEmail.

  reset_tokens.token is UNIQUE too -- it is the only collision check reset
  tokens get.

Timestamps:
  created_at / updated_at are fixed-width ISO 8601 strings (microsecond
  precision, +00:00) so they sort correctly as text. expires_at is a DateTime
  column holding naive UTC, because it is compared in SQL.

DB path: secretvault.db at the repo root unless DATABASE_URL says otherwise.

Layer rule: no imports from api/ or vault/.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, MetaData, String, Table, Text, create_engine, event, select, text
from sqlalchemy.engine import Engine

from auth.models import Account, ResetToken

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_accounts = Table(
    "accounts",
    _metadata,
    Column("id", String(32), primary_key=True),
    Column("name", String(255), nullable=False),
    Column("email", String(320), nullable=False, unique=True),  # stored lower-cased
    Column("hashed_password", Text, nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_reset_tokens = Table(
    "reset_tokens",
    _metadata,
    Column("token", String(64), primary_key=True),
    Column("account_id", String(32), nullable=False, index=True),
    Column("expires_at", DateTime, nullable=False),  # naive UTC
    Column("created_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def register_casefold(dbapi_conn, connection_record) -> None:
    """Expose str.casefold to SQL as casefold(x).

    SQLite's lower() and LIKE only fold ASCII letters; accented and other
    non-ASCII text needs the Python folding to compare case-insensitively.
    """
    dbapi_conn.create_function("casefold", 1, _casefold, deterministic=True)


def _casefold(value):
    return value.casefold() if isinstance(value, str) else value


def make_engine(db_url: str) -> Engine:
    """Create an Engine with the SQLite tweaks every store needs."""
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        # FastAPI runs sync handlers in a threadpool; the same pooled
        # connection may be used from more than one thread.
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", set_wal_mode)
        event.listen(engine, "connect", register_casefold)
    return engine


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def new_id() -> str:
    return uuid.uuid4().hex


def normalize_email(email: str) -> str:
    return email.strip().lower()


def _to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _from_naive_utc(value: datetime) -> datetime:
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class AccountStore:
    """Repository for Account and ResetToken entities.

    Usage:
        store = AccountStore("sqlite:///:memory:")
        account_id = store.create_account(Account(name="Ada", email="ada@example.com", hashed_password=h))
        store.get_by_email("ADA@example.com")
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        self.engine: Engine = make_engine(db_url)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def create_account(self, account: Account) -> str:
        """Insert a new account and return its id.

        Raises sqlalchemy.exc.IntegrityError if the email is already taken.
        """
        account_id = new_id()
        stamp = now_iso()
        with self.engine.connect() as conn:
            conn.execute(
                _accounts.insert().values(
                    id=account_id,
                    name=account.name,
                    email=normalize_email(account.email),
                    hashed_password=account.hashed_password,
                    created_at=stamp,
                    updated_at=stamp,
                )
            )
            conn.commit()
        return account_id

    def get_by_email(self, email: str) -> Account | None:
        """Case-insensitive lookup by email. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.email == normalize_email(email))).fetchone()
        return _row_to_account(row) if row is not None else None

    def get_by_id(self, account_id: str) -> Account | None:
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.id == account_id)).fetchone()
        return _row_to_account(row) if row is not None else None

    def update_password(self, account_id: str, hashed_password: str) -> bool:
        """Overwrite the credential hash. Returns False if account_id was not found."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _accounts.update()
                .where(_accounts.c.id == account_id)
                .values(hashed_password=hashed_password, updated_at=now_iso())
            )
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Reset tokens
    # ------------------------------------------------------------------

    def create_reset_token(self, reset: ResetToken) -> None:
        """Insert a reset token. Raises IntegrityError on a (vanishingly unlikely) duplicate."""
        with self.engine.connect() as conn:
            conn.execute(
                _reset_tokens.insert().values(
                    token=reset.token,
                    account_id=reset.account_id,
                    expires_at=_to_naive_utc(reset.expires_at),
                    created_at=now_iso(),
                )
            )
            conn.commit()

    def get_usable_reset_token(self, token: str, now: datetime | None = None) -> ResetToken | None:
        """Return the token only if it exists AND expires strictly after now.

        An expired token is indistinguishable from an unknown one here.
        """
        cutoff = _to_naive_utc(now or datetime.now(timezone.utc))
        with self.engine.connect() as conn:
            row = conn.execute(
                _reset_tokens.select().where((_reset_tokens.c.token == token) & (_reset_tokens.c.expires_at > cutoff))
            ).fetchone()
        return _row_to_reset_token(row) if row is not None else None

    def set_reset_token_expiry(self, token: str, expires_at: datetime) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(
                _reset_tokens.update()
                .where(_reset_tokens.c.token == token)
                .values(expires_at=_to_naive_utc(expires_at))
            )
            conn.commit()
        return result.rowcount > 0

    def list_reset_tokens(self, account_id: str) -> list[ResetToken]:
        """All tokens ever issued to an account, newest first (expired ones included)."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                select(_reset_tokens)
                .where(_reset_tokens.c.account_id == account_id)
                .order_by(_reset_tokens.c.created_at.desc())
            ).fetchall()
        return [_row_to_reset_token(r) for r in rows]

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except Exception:
            return False

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_account(row) -> Account:
    return Account(
        id=row.id,
        name=row.name,
        email=row.email,
        hashed_password=row.hashed_password,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_reset_token(row) -> ResetToken:
    return ResetToken(
        token=row.token,
        account_id=row.account_id,
        expires_at=_from_naive_utc(row.expires_at),
        created_at=row.created_at,
    )
