"""
API request and response models for SecretVault REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
vault/models.py, which own the internal domain representation. Route handlers
map between the two.

Naming: the wire format calls the secret "password" (that is what users store);
the domain calls it "secret" because at rest it is an envelope, not a password.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from auth.models import AccountSummary, AuthResult
from vault.models import Page, RevealedEntry

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# Deliberately loose: the mailer is the real test of an address.
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"

_MAX_TAGS = 50

# Every free-text vault field except password.
_TRIMMED_ENTRY_FIELDS = ("site_name", "username", "email", "phone", "notes", "url", "avatar_url", "category")


def _normalize_tags(values: Optional[list]) -> Optional[list[str]]:
    """Strip, drop blanks and deduplicate tags while preserving order."""
    if values is None:
        return None
    seen: set[str] = set()
    result: list[str] = []
    for v in values:
        tag = str(v).strip()
        if tag and tag not in seen:
            seen.add(tag)
            result.append(tag)
    return result


def _strip(value):
    """Trim text fields. Passwords and vault secrets never pass through here."""
    return value.strip() if isinstance(value, str) else value


# ---------------------------------------------------------------------------
# Shared envelopes
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Auth -- requests
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    name: str = Field(min_length=2, max_length=100)
    email: str = Field(pattern=EMAIL_PATTERN, max_length=320)
    # bcrypt reads 72 bytes at most; 128 chars keeps inputs near that.
    password: str = Field(min_length=6, max_length=128)

    @field_validator("name", "email", mode="before")
    @classmethod
    def strip_text(cls, value):
        return _strip(value)


class LoginRequest(BaseModel):
    email: str = Field(pattern=EMAIL_PATTERN, max_length=320)
    password: str = Field(min_length=1, max_length=128)

    @field_validator("email", mode="before")
    @classmethod
    def strip_text(cls, value):
        return _strip(value)


class ForgotPasswordRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(pattern=EMAIL_PATTERN, max_length=320)


class ResetPasswordRequest(BaseModel):
    reset_token: str = Field(min_length=1, max_length=128)
    password: str = Field(min_length=6, max_length=128)

    @field_validator("reset_token", mode="before")
    @classmethod
    def strip_text(cls, value):
        return _strip(value)


# ---------------------------------------------------------------------------
# Auth -- responses
# ---------------------------------------------------------------------------


class AuthResponse(BaseModel):
    """Returned by register and login. Never carries the credential hash."""

    model_config = ConfigDict(frozen=True)

    account_id: str
    name: str
    email: str
    token: str
    token_type: str = "bearer"
    expires_at: datetime

    @classmethod
    def from_result(cls, result: AuthResult) -> "AuthResponse":
        return cls(
            account_id=result.account.id,
            name=result.account.name,
            email=result.account.email,
            token=result.token,
            expires_at=result.expires_at,
        )


class MeResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    account_id: str
    name: str
    email: str
    created_at: str

    @classmethod
    def from_summary(cls, summary: AccountSummary) -> "MeResponse":
        return cls(account_id=summary.id, name=summary.name, email=summary.email, created_at=summary.created_at)


# ---------------------------------------------------------------------------
# Vault -- requests
# ---------------------------------------------------------------------------


class VaultEntryCreate(BaseModel):
    """Request body for POST /api/v1/vault. password is plaintext on the wire (TLS assumed)."""

    site_name: str = Field(min_length=1, max_length=255)
    username: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=1024)
    email: Optional[str] = Field(default=None, pattern=EMAIL_PATTERN, max_length=320)
    phone: Optional[str] = Field(default=None, max_length=50)
    notes: Optional[str] = Field(default=None, max_length=5000)
    url: Optional[str] = Field(default=None, max_length=2048)
    avatar_url: Optional[str] = Field(default=None, max_length=2048)
    category: Optional[str] = Field(default=None, max_length=100)
    tags: list[str] = Field(default_factory=list, max_length=_MAX_TAGS)
    favorite: bool = False
    last_used_at: Optional[datetime] = None

    @field_validator(*_TRIMMED_ENTRY_FIELDS, mode="before")
    @classmethod
    def strip_text(cls, value):
        return _strip(value)

    @field_validator("tags", mode="before")
    @classmethod
    def normalize_tags(cls, values: list) -> list[str]:
        return _normalize_tags(values) or []


class VaultEntryPatch(BaseModel):
    """Request body for PATCH/PUT /api/v1/vault/{entry_id}.

    Only fields present in the body are applied (model_fields_set). Nullable
    metadata can be cleared with an explicit null; the required fields cannot.
    """

    model_config = ConfigDict(extra="forbid")

    site_name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    username: Optional[str] = Field(default=None, min_length=1, max_length=255)
    password: Optional[str] = Field(default=None, min_length=1, max_length=1024)
    email: Optional[str] = Field(default=None, pattern=EMAIL_PATTERN, max_length=320)
    phone: Optional[str] = Field(default=None, max_length=50)
    notes: Optional[str] = Field(default=None, max_length=5000)
    url: Optional[str] = Field(default=None, max_length=2048)
    avatar_url: Optional[str] = Field(default=None, max_length=2048)
    category: Optional[str] = Field(default=None, max_length=100)
    tags: Optional[list[str]] = Field(default=None, max_length=_MAX_TAGS)
    favorite: Optional[bool] = None
    last_used_at: Optional[datetime] = None

    @field_validator(*_TRIMMED_ENTRY_FIELDS, mode="before")
    @classmethod
    def strip_text(cls, value):
        return _strip(value)

    @field_validator("tags", mode="before")
    @classmethod
    def normalize_tags(cls, values: Optional[list]) -> Optional[list[str]]:
        return _normalize_tags(values)

    @model_validator(mode="after")
    def reject_null_required(self) -> "VaultEntryPatch":
        for name in ("site_name", "username", "password", "favorite", "tags"):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self

    def to_changes(self) -> dict:
        """Map the provided fields onto VaultEntry field names."""
        changes = self.model_dump(exclude_unset=True)
        if "password" in changes:
            changes["secret"] = changes.pop("password")
        if changes.get("last_used_at") is not None:
            changes["last_used_at"] = changes["last_used_at"].isoformat()
        return changes


# ---------------------------------------------------------------------------
# Vault -- responses
# ---------------------------------------------------------------------------


class VaultEntryResponse(BaseModel):
    """One vault entry with its secret decrypted.

    decryption_failed is True when the stored envelope could not be opened;
    password then holds the "[DECRYPTION_FAILED]" sentinel.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    owner_id: str
    site_name: str
    username: str
    password: str
    decryption_failed: bool = False
    email: Optional[str] = None
    phone: Optional[str] = None
    notes: Optional[str] = None
    url: Optional[str] = None
    avatar_url: Optional[str] = None
    category: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    favorite: bool = False
    last_used_at: Optional[str] = None
    created_at: str
    updated_at: str

    @classmethod
    def from_revealed(cls, revealed: RevealedEntry) -> "VaultEntryResponse":
        """Factory Method: the domain -> wire mapping lives next to the wire model."""
        e = revealed.entry
        return cls(
            id=e.id,
            owner_id=e.owner_id,
            site_name=e.site_name,
            username=e.username,
            password=revealed.password,
            decryption_failed=not revealed.secret.ok,
            email=e.email,
            phone=e.phone,
            notes=e.notes,
            url=e.url,
            avatar_url=e.avatar_url,
            category=e.category,
            tags=e.tags,
            favorite=e.favorite,
            last_used_at=e.last_used_at,
            created_at=e.created_at,
            updated_at=e.updated_at,
        )


class VaultPageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    results: list[VaultEntryResponse]
    total: int
    page: int
    limit: int
    total_pages: int

    @classmethod
    def from_page(cls, page: Page[RevealedEntry]) -> "VaultPageResponse":
        return cls(
            results=[VaultEntryResponse.from_revealed(r) for r in page.results],
            total=page.total,
            page=page.page,
            limit=page.limit,
            total_pages=page.total_pages,
        )


class GeneratedPasswordResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    password: str
    length: int
