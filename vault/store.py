"""
vault/store.py -- SQLAlchemy-backed persistence layer for vault entries.

Uses SQLAlchemy Core (not ORM) so the dataclasses in vault/models.py remain
the authoritative domain representation. Swapping SQLite for PostgreSQL is a
connection string change.

Pattern: Repository + Data Mapper. VaultStore is the repository; _row_to_entry
is the mapper. The engine layer never touches SQL directly.

Tags live in two places:
  vault_entries.tags      -- JSON array, the shape handed back to callers
  vault_entry_tags        -- one (entry_id, tag) row per tag, used by search
                             and tag filtering so neither has to pattern-match
                             inside a JSON string
Both are written in the same transaction (engine.begin()).

Listing query:
  list_page() returns the requested page AND the total match count from a
  single statement: a COUNT(*) subquery LEFT OUTER JOINed to the sorted,
  offset/limited page subquery. The outer join keeps the count row even when
  the page is past the end and comes back empty.

Security: all values are bound parameters. Sort columns come from the
SORT_FIELDS allow-list, never from raw input. Search terms have LIKE
wildcards escaped before they reach the pattern, and both sides of the
comparison are casefolded so matching ignores case beyond ASCII.
"""

from __future__ import annotations

import json
import math
from typing import Optional

from sqlalchemy import (
    Column,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    and_,
    delete,
    exists,
    func,
    or_,
    select,
    true,
)
from sqlalchemy.engine import Engine

from auth.store import make_engine, new_id, now_iso
from vault.models import Page, SortOrder, VaultEntry

# Accepted sortBy values -> column name. camelCase is the public spelling;
# snake_case is accepted so Python callers can pass field names directly.
SORT_FIELDS: dict[str, str] = {
    "createdAt": "created_at",
    "updatedAt": "updated_at",
    "siteName": "site_name",
    "username": "username",
    "category": "category",
    "favorite": "favorite",
    "email": "email",
    "created_at": "created_at",
    "updated_at": "updated_at",
    "site_name": "site_name",
}
DEFAULT_SORT = "created_at"

# Fields update_entry() will write. owner_id and the timestamps are absent on purpose.
UPDATABLE_FIELDS = frozenset(
    {
        "site_name",
        "username",
        "secret",
        "email",
        "phone",
        "notes",
        "url",
        "avatar_url",
        "category",
        "tags",
        "favorite",
        "last_used_at",
    }
)

_LIKE_ESCAPE = "\\"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_entries = Table(
    "vault_entries",
    metadata,
    Column("id", String(32), primary_key=True),
    Column("owner_id", String(32), nullable=False, index=True),
    Column("site_name", String(255), nullable=False),
    Column("username", String(255), nullable=False),
    Column("secret", Text, nullable=False),  # ciphertext envelope, never plaintext
    Column("email", String(320)),
    Column("phone", String(50)),
    Column("notes", Text),
    Column("url", Text),
    Column("avatar_url", Text),
    Column("category", String(100)),
    Column("tags", Text, nullable=False, server_default="[]"),  # JSON array serialized as text
    Column("favorite", Integer, nullable=False, server_default="0"),  # boolean stored as 0/1
    Column("last_used_at", String(32)),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_entry_tags = Table(
    "vault_entry_tags",
    metadata,
    Column("entry_id", String(32), primary_key=True),
    Column("tag", String(255), primary_key=True, index=True),
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def dedupe_tags(tags: Optional[list[str]]) -> list[str]:
    """Strip, drop blanks and deduplicate while keeping first-seen order."""
    seen: set[str] = set()
    result: list[str] = []
    for tag in tags or []:
        cleaned = str(tag).strip()
        if cleaned and cleaned not in seen:
            seen.add(cleaned)
            result.append(cleaned)
    return result


def escape_like(term: str) -> str:
    """Escape LIKE metacharacters so term matches literally."""
    return term.replace(_LIKE_ESCAPE, _LIKE_ESCAPE * 2).replace("%", _LIKE_ESCAPE + "%").replace("_", _LIKE_ESCAPE + "_")


def resolve_sort_column(sort_by: Optional[str]) -> str:
    """Map a public sortBy value to a column name. Unknown values fall back to created_at."""
    return SORT_FIELDS.get(sort_by or "", DEFAULT_SORT)


def _match_condition(
    owner_id: str,
    search: Optional[str],
    category: Optional[str],
    favorite: Optional[bool],
    tags: Optional[list[str]],
    fold=func.casefold,
):
    """Build the WHERE clause for list_page(). Always scoped to owner_id.

    fold is the SQL function used to compare case-insensitively; the term is
    folded in Python with str.casefold to match.
    """
    clauses = [_entries.c.owner_id == owner_id]

    term = (search or "").strip()
    if term:
        pattern = f"%{escape_like(term.casefold())}%"

        def _hit(col):
            return fold(col).like(pattern, escape=_LIKE_ESCAPE)

        tag_hit = exists().where(
            and_(_entry_tags.c.entry_id == _entries.c.id, _hit(_entry_tags.c.tag))
        )
        clauses.append(
            or_(
                _hit(_entries.c.site_name),
                _hit(_entries.c.username),
                _hit(_entries.c.email),
                _hit(_entries.c.notes),
                tag_hit,
            )
        )

    if category and category.strip():
        clauses.append(_entries.c.category == category.strip())

    if favorite is not None:
        clauses.append(_entries.c.favorite == (1 if favorite else 0))

    wanted = dedupe_tags(tags)
    if wanted:
        # Intersection, not containment: any one matching tag is enough.
        clauses.append(exists().where(and_(_entry_tags.c.entry_id == _entries.c.id, _entry_tags.c.tag.in_(wanted))))

    return and_(*clauses)


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class VaultStore:
    """Repository for VaultEntry records.

    Usage:
        store = VaultStore("sqlite:///:memory:")
        entry_id = store.create_entry(entry)
        store.get_entry(entry_id)
        store.list_page(owner_id, page=1, limit=10)
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        self.engine: Engine = make_engine(db_url)
        # casefold() is registered on SQLite connections only; elsewhere lower() folds Unicode.
        self._fold = func.casefold if self.engine.dialect.name == "sqlite" else func.lower
        metadata.create_all(self.engine)

    def create_entry(self, entry: VaultEntry) -> str:
        """Insert a new entry plus its tag index rows; return the new id."""
        entry_id = new_id()
        stamp = now_iso()
        tags = dedupe_tags(entry.tags)
        with self.engine.begin() as conn:
            conn.execute(
                _entries.insert().values(
                    id=entry_id,
                    owner_id=entry.owner_id,
                    site_name=entry.site_name,
                    username=entry.username,
                    secret=entry.secret,
                    email=entry.email,
                    phone=entry.phone,
                    notes=entry.notes,
                    url=entry.url,
                    avatar_url=entry.avatar_url,
                    category=entry.category,
                    tags=json.dumps(tags),
                    favorite=1 if entry.favorite else 0,
                    last_used_at=entry.last_used_at,
                    created_at=stamp,
                    updated_at=stamp,
                )
            )
            if tags:
                conn.execute(_entry_tags.insert(), [{"entry_id": entry_id, "tag": t} for t in tags])
        return entry_id

    def get_entry(self, entry_id: str) -> Optional[VaultEntry]:
        """Fetch an entry by id regardless of owner. Returns None if not found.

        Ownership is checked by the caller so that "exists but not yours" and
        "does not exist" stay distinguishable.
        """
        with self.engine.connect() as conn:
            row = conn.execute(_entries.select().where(_entries.c.id == entry_id)).fetchone()
        return _row_to_entry(row) if row is not None else None

    def update_entry(self, entry_id: str, owner_id: str, **fields) -> bool:
        """Replace the given fields on an entry owned by owner_id.

        Accepts any subset of UPDATABLE_FIELDS. tags must be a list[str]; it is
        deduplicated, re-serialized, and the tag index rebuilt in the same
        transaction. Raises ValueError for fields outside UPDATABLE_FIELDS.

        Returns True if a row was updated, False if no such entry for owner_id.
        """
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields not updatable: {sorted(unknown)!r}")
        values = dict(fields)
        tags = None
        if "tags" in values:
            tags = dedupe_tags(values["tags"])
            values["tags"] = json.dumps(tags)
        if "favorite" in values:
            values["favorite"] = 1 if values["favorite"] else 0
        values["updated_at"] = now_iso()

        with self.engine.begin() as conn:
            result = conn.execute(
                _entries.update().where((_entries.c.id == entry_id) & (_entries.c.owner_id == owner_id)).values(**values)
            )
            if result.rowcount > 0 and tags is not None:
                conn.execute(delete(_entry_tags).where(_entry_tags.c.entry_id == entry_id))
                if tags:
                    conn.execute(_entry_tags.insert(), [{"entry_id": entry_id, "tag": t} for t in tags])
        return result.rowcount > 0

    def delete_entry(self, entry_id: str, owner_id: str) -> bool:
        """Permanently delete an entry and its tag rows. Returns False if not found for owner_id."""
        with self.engine.begin() as conn:
            result = conn.execute(
                delete(_entries).where((_entries.c.id == entry_id) & (_entries.c.owner_id == owner_id))
            )
            if result.rowcount > 0:
                conn.execute(delete(_entry_tags).where(_entry_tags.c.entry_id == entry_id))
        return result.rowcount > 0

    def list_page(
        self,
        owner_id: str,
        page: int,
        limit: int,
        search: Optional[str] = None,
        sort_by: Optional[str] = None,
        sort_order: SortOrder = SortOrder.desc,
        category: Optional[str] = None,
        favorite: Optional[bool] = None,
        tags: Optional[list[str]] = None,
    ) -> Page[VaultEntry]:
        """Return one page of owner_id's entries and the total match count.

        One round trip: see the module docstring for the query shape. Ties on
        the sort column are broken by id so consecutive pages never overlap.
        """
        skip = (page - 1) * limit
        condition = _match_condition(owner_id, search, category, favorite, tags, fold=self._fold)
        sort_col = resolve_sort_column(sort_by)
        descending = sort_order == SortOrder.desc

        def _ordered(col):
            return col.desc() if descending else col.asc()

        counted = select(func.count().label("total")).select_from(_entries).where(condition).subquery("counted")
        page_rows = (
            select(_entries)
            .where(condition)
            .order_by(_ordered(_entries.c[sort_col]), _ordered(_entries.c.id))
            .limit(limit)
            .offset(skip)
            .subquery("page_rows")
        )
        stmt = (
            select(counted.c.total, page_rows)
            .select_from(counted.outerjoin(page_rows, true()))
            .order_by(_ordered(page_rows.c[sort_col]), _ordered(page_rows.c.id))
        )

        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()

        total = int(rows[0].total) if rows else 0
        results = [_row_to_entry(r) for r in rows if r.id is not None]
        return Page(
            results=results,
            total=total,
            page=page,
            limit=limit,
            total_pages=math.ceil(total / limit) if limit else 0,
        )

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_entry(row) -> VaultEntry:
    return VaultEntry(
        id=row.id,
        owner_id=row.owner_id,
        site_name=row.site_name,
        username=row.username,
        secret=row.secret,
        email=row.email,
        phone=row.phone,
        notes=row.notes,
        url=row.url,
        avatar_url=row.avatar_url,
        category=row.category,
        tags=json.loads(row.tags) if row.tags else [],
        favorite=bool(row.favorite),
        last_used_at=row.last_used_at,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
