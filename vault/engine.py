"""
vault/engine.py -- Owner-scoped CRUD and listing for vault entries.

VaultEngine sits between the API layer and VaultStore. It owns three rules:

  Encryption: secrets are encrypted with CryptoSuite before they reach the
      store and decrypted on the way out. The store never sees plaintext.

  Ownership: every single-entry operation looks the entry up by id alone,
      raises NotFound if it does not exist, and only then compares owner_id,
      raising Forbidden on a mismatch. The caller's identity comes from a
      verified Principal; the engine still checks it against the record.

  Partial failure: reads go through CryptoSuite.decrypt_tolerant(), so a
      corrupt envelope yields a RevealedEntry whose password is
      "[DECRYPTION_FAILED]" rather than an error for the whole request.

create() returns the plaintext the caller submitted (a successful SecretResult)
so its response has the same shape as find_by_id(), update() and list().

update() writes and then reads back in two steps. A concurrent delete landing
between them surfaces as NotFound.

Layer rule: vault/ may import from core/ and auth/ (CryptoSuite, SecretResult).
It does NOT import from api/.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import asdict
from typing import Any, Mapping

from auth.crypto import CryptoSuite, SecretResult
from core.errors import Forbidden, NotFound, ValidationError
from vault.models import MAX_PAGE_LIMIT, Page, RevealedEntry, VaultDraft, VaultEntry, VaultQuery
from vault.store import UPDATABLE_FIELDS, VaultStore

logger = logging.getLogger("secretvault.vault")


def _is_identifier(value: str) -> bool:
    try:
        uuid.UUID(value)
    except (ValueError, AttributeError, TypeError):
        return False
    return True


def _require_ids(owner_id: str, entry_id: str) -> None:
    if not entry_id or not entry_id.strip():
        raise ValidationError("Vault ID is required.")
    if not owner_id or not owner_id.strip():
        raise ValidationError("User ID is required.")


def _require_owner(owner_id: str) -> None:
    if not owner_id or not owner_id.strip():
        raise ValidationError("User ID is required.")
    if not _is_identifier(owner_id):
        raise ValidationError("Invalid user ID format.")


class VaultEngine:
    def __init__(self, store: VaultStore, crypto: CryptoSuite) -> None:
        self.store = store
        self.crypto = crypto

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create(self, owner_id: str, draft: VaultDraft) -> RevealedEntry:
        _require_owner(owner_id)
        if not draft.secret:
            raise ValidationError("Password is required.")
        if not draft.site_name.strip() or not draft.username.strip():
            raise ValidationError("Site name and username are required.")

        fields = asdict(draft)
        plain = fields.pop("secret")
        entry = VaultEntry(owner_id=owner_id, secret=self.crypto.encrypt_secret(plain), **fields)
        entry_id = self.store.create_entry(entry)

        stored = self.store.get_entry(entry_id)
        if stored is None:
            raise NotFound("Vault entry not found after create.")
        logger.info("Vault entry %s created for owner %s", entry_id, owner_id)
        return RevealedEntry(entry=stored, secret=SecretResult.success(plain))

    # ------------------------------------------------------------------
    # Single-entry reads and writes
    # ------------------------------------------------------------------

    def _owned_entry(self, owner_id: str, entry_id: str) -> VaultEntry:
        """Fetch entry_id and confirm owner_id owns it.

        Existence is checked before ownership: NotFound for a missing id,
        Forbidden for someone else's entry.
        """
        _require_ids(owner_id, entry_id)
        entry = self.store.get_entry(entry_id)
        if entry is None:
            raise NotFound("Vault entry not found.")
        if entry.owner_id != owner_id:
            logger.warning("Owner %s denied access to vault entry %s", owner_id, entry_id)
            raise Forbidden()
        return entry

    def _reveal(self, entry: VaultEntry) -> RevealedEntry:
        return RevealedEntry(entry=entry, secret=self.crypto.decrypt_tolerant(entry.secret, record_id=entry.id))

    def find_by_id(self, owner_id: str, entry_id: str) -> RevealedEntry:
        return self._reveal(self._owned_entry(owner_id, entry_id))

    def update(self, owner_id: str, entry_id: str, patch: Mapping[str, Any]) -> RevealedEntry:
        """Replace only the fields present in patch.

        patch keys are VaultEntry field names. owner_id, id and timestamps
        cannot be patched. A "secret" value is plaintext and is re-encrypted
        before it is written.
        """
        self._owned_entry(owner_id, entry_id)

        changes = dict(patch)
        if not changes:
            raise ValidationError("No fields to update.")
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"Fields cannot be updated: {', '.join(sorted(unknown))}.")
        if "secret" in changes:
            if not changes["secret"]:
                raise ValidationError("Password cannot be empty.")
            changes["secret"] = self.crypto.encrypt_secret(changes["secret"])
        for required in ("site_name", "username"):
            if required in changes and not (changes[required] or "").strip():
                raise ValidationError(f"{required} cannot be empty.")

        self.store.update_entry(entry_id, owner_id, **changes)

        updated = self.store.get_entry(entry_id)
        if updated is None:
            raise NotFound("Vault entry not found after update.")
        return self._reveal(updated)

    def delete(self, owner_id: str, entry_id: str) -> None:
        self._owned_entry(owner_id, entry_id)
        if not self.store.delete_entry(entry_id, owner_id):
            raise NotFound("Vault entry not found.")
        logger.info("Vault entry %s deleted by owner %s", entry_id, owner_id)

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    def list(self, owner_id: str, query: VaultQuery) -> Page[RevealedEntry]:
        """Return one page of owner_id's entries, decrypted record by record.

        page and limit are validated strictly; an unknown sort_by is not an
        error and falls back to createdAt inside the store.
        """
        _require_owner(owner_id)
        if query.page < 1:
            raise ValidationError("page must be a positive integer.")
        if query.limit < 1:
            raise ValidationError("limit must be a positive integer.")
        if query.limit > MAX_PAGE_LIMIT:
            raise ValidationError(f"limit cannot exceed {MAX_PAGE_LIMIT}.")

        logger.info("Listing vault entries for owner %s, page %d, limit %d", owner_id, query.page, query.limit)
        found = self.store.list_page(
            owner_id,
            page=query.page,
            limit=query.limit,
            search=query.search,
            sort_by=query.sort_by,
            sort_order=query.sort_order,
            category=query.category,
            favorite=query.favorite,
            tags=query.tags,
        )
        return Page(
            results=[self._reveal(e) for e in found.results],
            total=found.total,
            page=found.page,
            limit=found.limit,
            total_pages=found.total_pages,
        )
