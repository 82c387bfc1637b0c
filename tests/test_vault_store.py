"""
tests/test_vault_store.py -- Unit tests for vault/store.py.

The store is tested with opaque secret strings: it must persist whatever
envelope it is given and never interpret it.
"""

from __future__ import annotations

import uuid

import pytest

from vault.models import SortOrder, VaultEntry
from vault.store import DEFAULT_SORT, VaultStore, dedupe_tags, escape_like, resolve_sort_column


def _entry(owner_id: str, site_name: str = "example.com", **kwargs) -> VaultEntry:
    kwargs.setdefault("username", "ada")
    kwargs.setdefault("secret", "envelope")
    return VaultEntry(owner_id=owner_id, site_name=site_name, **kwargs)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def test_dedupe_tags_keeps_first_seen_order() -> None:
    assert dedupe_tags(["work", " home ", "work", "", "  ", "home"]) == ["work", "home"]
    assert dedupe_tags(None) == []


def test_escape_like() -> None:
    assert escape_like("50%_off\\") == "50\\%\\_off\\\\"


@pytest.mark.parametrize(
    "sort_by,expected",
    [
        ("siteName", "site_name"),
        ("updatedAt", "updated_at"),
        ("site_name", "site_name"),
        ("secret", DEFAULT_SORT),
        ("owner_id; DROP TABLE vault_entries", DEFAULT_SORT),
        (None, DEFAULT_SORT),
    ],
)
def test_resolve_sort_column(sort_by, expected: str) -> None:
    assert resolve_sort_column(sort_by) == expected


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------


class TestCrud:
    def test_create_and_get(self, vault_store: VaultStore, owner_id: str) -> None:
        entry_id = vault_store.create_entry(
            _entry(owner_id, tags=["work", "work", "email"], favorite=True, category="Work")
        )
        stored = vault_store.get_entry(entry_id)
        assert stored is not None
        assert len(entry_id) == 32
        assert stored.owner_id == owner_id
        assert stored.secret == "envelope"
        assert stored.tags == ["work", "email"]
        assert stored.favorite is True
        assert stored.created_at == stored.updated_at

    def test_get_missing(self, vault_store: VaultStore) -> None:
        assert vault_store.get_entry(uuid.uuid4().hex) is None

    def test_update_given_fields_only(self, vault_store: VaultStore, owner_id: str) -> None:
        entry_id = vault_store.create_entry(_entry(owner_id, notes="keep me"))
        before = vault_store.get_entry(entry_id)

        assert vault_store.update_entry(entry_id, owner_id, site_name="new.example", tags=["a", "b", "a"])

        after = vault_store.get_entry(entry_id)
        assert after.site_name == "new.example"
        assert after.tags == ["a", "b"]
        assert after.notes == "keep me"
        assert after.created_at == before.created_at
        assert after.updated_at >= before.updated_at

    def test_update_wrong_owner_touches_nothing(
        self, vault_store: VaultStore, owner_id: str, other_owner_id: str
    ) -> None:
        entry_id = vault_store.create_entry(_entry(owner_id))
        assert vault_store.update_entry(entry_id, other_owner_id, site_name="hijacked") is False
        assert vault_store.get_entry(entry_id).site_name == "example.com"

    def test_update_rejects_owner_change(self, vault_store: VaultStore, owner_id: str) -> None:
        entry_id = vault_store.create_entry(_entry(owner_id))
        with pytest.raises(ValueError):
            vault_store.update_entry(entry_id, owner_id, owner_id=uuid.uuid4().hex)

    def test_delete(self, vault_store: VaultStore, owner_id: str, other_owner_id: str) -> None:
        entry_id = vault_store.create_entry(_entry(owner_id, tags=["x"]))
        assert vault_store.delete_entry(entry_id, other_owner_id) is False
        assert vault_store.delete_entry(entry_id, owner_id) is True
        assert vault_store.get_entry(entry_id) is None
        assert vault_store.delete_entry(entry_id, owner_id) is False


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------


class TestListPage:
    def test_page_past_end_still_reports_total(self, vault_store: VaultStore, owner_id: str) -> None:
        for i in range(3):
            vault_store.create_entry(_entry(owner_id, site_name=f"site{i}"))
        page = vault_store.list_page(owner_id, page=5, limit=2)
        assert page.results == []
        assert page.total == 3
        assert page.total_pages == 2

    def test_no_entries(self, vault_store: VaultStore, owner_id: str) -> None:
        page = vault_store.list_page(owner_id, page=1, limit=10)
        assert page.results == []
        assert page.total == 0
        assert page.total_pages == 0

    def test_scoped_to_owner(self, vault_store: VaultStore, owner_id: str, other_owner_id: str) -> None:
        vault_store.create_entry(_entry(owner_id, site_name="mine"))
        vault_store.create_entry(_entry(other_owner_id, site_name="theirs"))
        page = vault_store.list_page(owner_id, page=1, limit=10)
        assert [e.site_name for e in page.results] == ["mine"]
        assert page.total == 1

    def test_search_wildcards_match_literally(self, vault_store: VaultStore, owner_id: str) -> None:
        vault_store.create_entry(_entry(owner_id, site_name="100% cotton"))
        vault_store.create_entry(_entry(owner_id, site_name="100 cotton"))
        vault_store.create_entry(_entry(owner_id, site_name="snake_case"))
        vault_store.create_entry(_entry(owner_id, site_name="snakeXcase"))

        assert [e.site_name for e in vault_store.list_page(owner_id, 1, 10, search="100%").results] == ["100% cotton"]
        assert [e.site_name for e in vault_store.list_page(owner_id, 1, 10, search="e_c").results] == ["snake_case"]

    def test_search_ignores_case_beyond_ascii(self, vault_store: VaultStore, owner_id: str) -> None:
        vault_store.create_entry(_entry(owner_id, site_name="CAF\u00c9 Rewards"))
        vault_store.create_entry(_entry(owner_id, site_name="Stra\u00dfe", tags=["\u00c5LAND"]))
        vault_store.create_entry(_entry(owner_id, site_name="cafe"))

        def hits(term: str) -> list[str]:
            return [e.site_name for e in vault_store.list_page(owner_id, 1, 10, search=term).results]

        assert hits("caf\u00e9") == ["CAF\u00c9 Rewards"]
        assert hits("STRASSE") == ["Stra\u00dfe"]
        assert hits("\u00e5land") == ["Stra\u00dfe"]

    def test_sort_ascending_by_site_name(self, vault_store: VaultStore, owner_id: str) -> None:
        for name in ("charlie", "alpha", "bravo"):
            vault_store.create_entry(_entry(owner_id, site_name=name))
        page = vault_store.list_page(owner_id, 1, 10, sort_by="siteName", sort_order=SortOrder.asc)
        assert [e.site_name for e in page.results] == ["alpha", "bravo", "charlie"]

    def test_tags_filter_rebuilt_after_update(self, vault_store: VaultStore, owner_id: str) -> None:
        entry_id = vault_store.create_entry(_entry(owner_id, tags=["old"]))
        vault_store.update_entry(entry_id, owner_id, tags=["new"])
        assert vault_store.list_page(owner_id, 1, 10, tags=["old"]).total == 0
        assert vault_store.list_page(owner_id, 1, 10, tags=["new"]).total == 1
