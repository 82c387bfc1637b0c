"""
vault/models.py -- Domain dataclasses for vault entries and listing queries.

These are pure data containers. Encryption, ownership and query planning live
in vault/engine.py and vault/store.py.

VaultEntry.secret always holds the ciphertext envelope as stored. The
plaintext only ever appears on a RevealedEntry, which pairs an entry with the
SecretResult of decrypting it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Generic, Optional, TypeVar

from auth.crypto import SecretResult

T = TypeVar("T")

MAX_PAGE_LIMIT = 100


class SortOrder(str, Enum):
    asc = "asc"
    desc = "desc"


@dataclass
class VaultEntry:
    """One stored credential.

    owner_id is fixed at creation; VaultStore.update_entry() refuses to
    change it. tags are deduplicated in first-seen order.

    id is None before the record is written to the database.
    """

    owner_id: str
    site_name: str
    username: str
    secret: str  # "nonce:tag:ciphertext" envelope
    email: Optional[str] = None
    phone: Optional[str] = None
    notes: Optional[str] = None
    url: Optional[str] = None
    avatar_url: Optional[str] = None
    category: Optional[str] = None
    tags: list[str] = field(default_factory=list)
    favorite: bool = False
    last_used_at: Optional[str] = None
    id: Optional[str] = None
    created_at: str = ""  # ISO 8601, set by store on insert
    updated_at: str = ""


@dataclass
class VaultDraft:
    """Caller input for VaultEngine.create(). secret is plaintext here."""

    site_name: str
    username: str
    secret: str
    email: Optional[str] = None
    phone: Optional[str] = None
    notes: Optional[str] = None
    url: Optional[str] = None
    avatar_url: Optional[str] = None
    category: Optional[str] = None
    tags: list[str] = field(default_factory=list)
    favorite: bool = False
    last_used_at: Optional[str] = None


@dataclass(frozen=True)
class RevealedEntry:
    """An entry together with the outcome of decrypting its secret."""

    entry: VaultEntry
    secret: SecretResult

    @property
    def password(self) -> str:
        return self.secret.value


@dataclass
class VaultQuery:
    """Everything list() needs besides the owner.

    sort_by is free text on purpose: unknown fields fall back to createdAt
    rather than failing (see vault/store.SORT_FIELDS).
    """

    page: int = 1
    limit: int = 10
    search: Optional[str] = None
    sort_by: str = "createdAt"
    sort_order: SortOrder = SortOrder.desc
    category: Optional[str] = None
    favorite: Optional[bool] = None
    tags: Optional[list[str]] = None


@dataclass
class Page(Generic[T]):
    results: list[T]
    total: int
    page: int
    limit: int
    total_pages: int
