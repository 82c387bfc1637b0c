"""
api/routes/v1/vault.py -- Vault entry routes for the SecretVault REST API.

Routes (in registration order to avoid FastAPI path capture conflicts):
  POST   /vault                    -- create entry
  GET    /vault                    -- paginated search / filter / sort
  GET    /vault/generate-password  -- random password suggestion
  GET    /vault/{entry_id}         -- single entry
  PATCH  /vault/{entry_id}         -- partial update (PUT accepted as an alias)
  DELETE /vault/{entry_id}         -- delete

Every route requires a bearer token. The router-level dependency rejects
unauthenticated requests before any handler runs; handlers that need the
caller's id declare get_principal again (FastAPI caches it per request).
Ownership is NOT checked here -- VaultEngine checks it against the record.

Pagination: page >= 1 and 1 <= limit <= 100 are enforced by Query() bounds,
so violations are 422s before the engine is reached. sort_by is free text;
unknown values quietly sort by createdAt.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from api.limiter import VAULT_READ_LIMIT, VAULT_WRITE_LIMIT, limiter
from api.models import (
    GeneratedPasswordResponse,
    MessageResponse,
    VaultEntryCreate,
    VaultEntryPatch,
    VaultEntryResponse,
    VaultPageResponse,
)
from auth.crypto import DEFAULT_PASSWORD_LENGTH, PASSWORD_MAX_LENGTH, PASSWORD_MIN_LENGTH, CryptoSuite
from auth.dependencies import get_principal
from auth.models import Principal
from vault.engine import VaultEngine
from vault.models import MAX_PAGE_LIMIT, SortOrder, VaultDraft, VaultQuery

router = APIRouter(dependencies=[Depends(get_principal)])

VAULT_DELETED_MESSAGE = "Vault entry deleted successfully."


def _engine(request: Request) -> VaultEngine:
    return request.app.state.vault


# ---------------------------------------------------------------------------
# POST /vault -- create
# ---------------------------------------------------------------------------


@limiter.limit(VAULT_WRITE_LIMIT)
@router.post("/vault", response_model=VaultEntryResponse, status_code=201)
def create_entry(
    request: Request,
    body: VaultEntryCreate,
    principal: Principal = Depends(get_principal),
) -> VaultEntryResponse:
    """Store a new credential. The response echoes the password in plaintext."""
    draft = VaultDraft(
        site_name=body.site_name,
        username=body.username,
        secret=body.password,
        email=body.email,
        phone=body.phone,
        notes=body.notes,
        url=body.url,
        avatar_url=body.avatar_url,
        category=body.category,
        tags=body.tags,
        favorite=body.favorite,
        last_used_at=body.last_used_at.isoformat() if body.last_used_at else None,
    )
    return VaultEntryResponse.from_revealed(_engine(request).create(principal.account_id, draft))


# ---------------------------------------------------------------------------
# GET /vault -- list
# ---------------------------------------------------------------------------


@limiter.limit(VAULT_READ_LIMIT)
@router.get("/vault", response_model=VaultPageResponse)
def list_entries(
    request: Request,
    principal: Principal = Depends(get_principal),
    page: int = Query(1, ge=1, description="1-based page number"),
    limit: int = Query(10, ge=1, le=MAX_PAGE_LIMIT, description="Items per page (max 100)"),
    search: Optional[str] = Query(None, max_length=200),
    sort_by: str = Query("createdAt"),
    sort_order: SortOrder = Query(SortOrder.desc),
    category: Optional[str] = Query(None, max_length=100),
    favorite: Optional[bool] = Query(None),
    tags: Optional[list[str]] = Query(None),
) -> VaultPageResponse:
    """Search, filter, sort and paginate the caller's entries.

    search matches site name, username, email, notes or any tag
    (case-insensitive substring). tags may be repeated (?tags=a&tags=b); an
    entry matches if it has ANY of them.
    """
    query = VaultQuery(
        page=page,
        limit=limit,
        search=search.strip() if search else None,
        sort_by=sort_by,
        sort_order=sort_order,
        category=category.strip() if category else None,
        favorite=favorite,
        tags=[t.strip() for t in tags if t and t.strip()] if tags else None,
    )
    return VaultPageResponse.from_page(_engine(request).list(principal.account_id, query))


# ---------------------------------------------------------------------------
# GET /vault/generate-password (must be before /vault/{entry_id})
# ---------------------------------------------------------------------------


@router.get("/vault/generate-password", response_model=GeneratedPasswordResponse)
def generate_password(
    length: int = Query(DEFAULT_PASSWORD_LENGTH, ge=PASSWORD_MIN_LENGTH, le=PASSWORD_MAX_LENGTH),
) -> GeneratedPasswordResponse:
    """Suggest a random password containing every character class."""
    password = CryptoSuite.generate_password(length)
    return GeneratedPasswordResponse(password=password, length=len(password))


# ---------------------------------------------------------------------------
# /vault/{entry_id}
# ---------------------------------------------------------------------------


@limiter.limit(VAULT_READ_LIMIT)
@router.get("/vault/{entry_id}", response_model=VaultEntryResponse)
def get_entry(
    request: Request,
    entry_id: str,
    principal: Principal = Depends(get_principal),
) -> VaultEntryResponse:
    """404 if the entry does not exist, 403 if it belongs to another account."""
    return VaultEntryResponse.from_revealed(_engine(request).find_by_id(principal.account_id, entry_id))


@limiter.limit(VAULT_WRITE_LIMIT)
@router.api_route("/vault/{entry_id}", methods=["PATCH", "PUT"], response_model=VaultEntryResponse)
def update_entry(
    request: Request,
    entry_id: str,
    body: VaultEntryPatch,
    principal: Principal = Depends(get_principal),
) -> VaultEntryResponse:
    """Apply the fields present in the body; omitted fields keep their values."""
    revealed = _engine(request).update(principal.account_id, entry_id, body.to_changes())
    return VaultEntryResponse.from_revealed(revealed)


@limiter.limit(VAULT_WRITE_LIMIT)
@router.delete("/vault/{entry_id}", response_model=MessageResponse)
def delete_entry(
    request: Request,
    entry_id: str,
    principal: Principal = Depends(get_principal),
) -> MessageResponse:
    _engine(request).delete(principal.account_id, entry_id)
    return MessageResponse(message=VAULT_DELETED_MESSAGE)
