"""
core/errors.py -- Error kinds raised by the SecretVault core.

Every kind carries a stable machine-readable code and the HTTP status the API
layer maps it to. AuthLifecycle and VaultEngine raise these and never swallow
them; api/main.py has one exception handler that turns any VaultServiceError
into the shared ErrorResponse envelope.

Keeping the status code on the exception (rather than a lookup table in the
API layer) means a new kind cannot be added without deciding how it surfaces.

Layer rule: core/ is the kernel. No imports from api/, auth/, or vault/.
"""

from __future__ import annotations


class VaultServiceError(Exception):
    """Base class for every error kind the core raises on purpose."""

    code: str = "error"
    status_code: int = 500
    default_message: str = "Request failed."

    def __init__(self, message: str | None = None, detail: str | None = None) -> None:
        self.message = message or self.default_message
        self.detail = detail
        super().__init__(self.message)


class ValidationError(VaultServiceError):
    """Malformed or missing input -- the caller's fault."""

    code = "validation_error"
    status_code = 400
    default_message = "Invalid input."


class NotFound(VaultServiceError):
    code = "not_found"
    status_code = 404
    default_message = "Not found."


class AccountNotFound(NotFound):
    default_message = "Account not found."


class Forbidden(VaultServiceError):
    """The record exists but belongs to someone else."""

    code = "forbidden"
    status_code = 403
    default_message = "You do not have permission to access this vault entry."


class DuplicateEmail(VaultServiceError):
    code = "duplicate_email"
    status_code = 409
    default_message = "An account with that email is already registered."


class InvalidCredential(VaultServiceError):
    code = "invalid_credential"
    status_code = 401
    default_message = "Invalid email or password."


class TokenExpired(VaultServiceError):
    code = "token_expired"
    status_code = 401
    default_message = "Token has expired."


class TokenInvalid(VaultServiceError):
    code = "token_invalid"
    status_code = 401
    default_message = "Invalid token."


class TokenNotFound(VaultServiceError):
    """Reset token unknown or past its expiry (the two are not distinguished)."""

    code = "token_not_found"
    status_code = 400
    default_message = "Reset token not found."


class CryptoError(VaultServiceError):
    code = "crypto_error"
    status_code = 500
    default_message = "Cryptographic operation failed."


class DeliveryError(VaultServiceError):
    code = "delivery_failed"
    status_code = 502
    default_message = "Could not deliver email."
