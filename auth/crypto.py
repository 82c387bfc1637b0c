"""
auth/crypto.py -- Credential hashing and secret encryption for SecretVault.

Security design decisions:
  Passwords: bcrypt, used directly (no passlib wrapper). The cost factor makes
       brute force expensive; 12 rounds keeps a single verification well under
       100ms on commodity hardware. Account passwords are hashed, never
       encrypted -- nothing in the service ever needs them back.

  Vault secrets: AES-256-GCM via cryptography's AESGCM. Unlike account
       passwords these must be recoverable, so they are encrypted with a
       server-held key. GCM gives confidentiality and integrity in one pass:
       a flipped byte anywhere in the envelope fails authentication instead
       of decrypting to garbage.

  Envelope format: "<nonce>:<tag>:<ciphertext>", each segment lowercase hex.
       A fresh 96-bit nonce is drawn for every call. Decryption accepts any
       nonce length GCM supports, so envelopes written with the legacy 16-byte
       IV still open.

  Tolerant decrypt: decrypt_tolerant() returns a SecretResult instead of
       raising. Listing code uses it so one corrupt record renders as
       "[DECRYPTION_FAILED]" instead of failing the whole page. Only the entry
       id is logged on failure -- never the envelope or any plaintext.

Key material is injected through the constructor (built from Settings in the
API lifespan). Nothing here reads the environment.

Layer rule: no imports from api/ or vault/.
"""

from __future__ import annotations

import logging
import secrets
import string
from dataclasses import dataclass

import bcrypt
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from core.config import ENCRYPTION_KEY_BYTES
from core.errors import CryptoError, ValidationError

logger = logging.getLogger("secretvault.crypto")

DECRYPTION_FAILED = "[DECRYPTION_FAILED]"

NONCE_SIZE = 12  # 96-bit nonce
TAG_SIZE = 16  # GCM auth tag
DEFAULT_BCRYPT_ROUNDS = 12

PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_LENGTH = 128
DEFAULT_PASSWORD_LENGTH = 20
_SYMBOLS = "!@#$%^&*()-_=+[]{};:,.?"
_PASSWORD_CLASSES = (string.ascii_lowercase, string.ascii_uppercase, string.digits, _SYMBOLS)


@dataclass(frozen=True)
class SecretResult:
    """Outcome of decrypting one stored secret.

    ok=False means the envelope could not be opened; value then yields the
    DECRYPTION_FAILED sentinel so callers can render the record anyway.
    """

    ok: bool
    plaintext: str | None = None

    @classmethod
    def success(cls, plaintext: str) -> SecretResult:
        return cls(ok=True, plaintext=plaintext)

    @classmethod
    def failure(cls) -> SecretResult:
        return cls(ok=False)

    @property
    def value(self) -> str:
        return self.plaintext if self.ok and self.plaintext is not None else DECRYPTION_FAILED


class CryptoSuite:
    """bcrypt hashing plus AES-256-GCM envelopes, bound to one key.

    Usage:
        suite = CryptoSuite(settings.encryption_key_bytes)
        envelope = suite.encrypt_secret("hunter2")
        suite.decrypt_secret(envelope)          # "hunter2"
    """

    def __init__(self, key: bytes | None, bcrypt_rounds: int = DEFAULT_BCRYPT_ROUNDS) -> None:
        self._key = key
        self._rounds = bcrypt_rounds

    # ------------------------------------------------------------------
    # Credential hashing (one-way)
    # ------------------------------------------------------------------

    def hash_credential(self, plain: str) -> str:
        """Return a salted bcrypt hash of plain.

        bcrypt only looks at the first 72 bytes. The API layer caps password
        length at 128 characters; the truncation is accepted.
        """
        return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=self._rounds)).decode("utf-8")

    def verify_credential(self, plain: str, hashed: str) -> bool:
        """Return True if plain matches hashed. Any internal error counts as a mismatch."""
        try:
            return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
        except Exception:
            return False

    # ------------------------------------------------------------------
    # Secret encryption (reversible)
    # ------------------------------------------------------------------

    def _cipher(self) -> AESGCM:
        if not self._key or len(self._key) != ENCRYPTION_KEY_BYTES:
            raise CryptoError("Encryption key is missing or not 32 bytes.")
        return AESGCM(self._key)

    def encrypt_secret(self, plain: str) -> str:
        """Encrypt plain and return a "nonce:tag:ciphertext" hex envelope."""
        cipher = self._cipher()
        nonce = secrets.token_bytes(NONCE_SIZE)
        sealed = cipher.encrypt(nonce, plain.encode("utf-8"), None)
        ciphertext, tag = sealed[:-TAG_SIZE], sealed[-TAG_SIZE:]
        return f"{nonce.hex()}:{tag.hex()}:{ciphertext.hex()}"

    def decrypt_secret(self, envelope: str) -> str:
        """Open an envelope produced by encrypt_secret().

        Raises CryptoError on a wrong segment count, bad hex, a tag of the
        wrong size, or an authentication failure (tampered or corrupt data,
        or a different key).
        """
        cipher = self._cipher()
        parts = envelope.split(":")
        if len(parts) != 3:
            raise CryptoError("Invalid encrypted data format.")
        try:
            nonce, tag, ciphertext = (bytes.fromhex(p) for p in parts)
        except ValueError as exc:
            raise CryptoError("Invalid encrypted data format.") from exc
        if len(tag) != TAG_SIZE or not nonce:
            raise CryptoError("Invalid encrypted data format.")
        try:
            plain = cipher.decrypt(nonce, ciphertext + tag, None)
        except (InvalidTag, ValueError) as exc:
            raise CryptoError("Decryption failed.") from exc
        try:
            return plain.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise CryptoError("Decryption failed.") from exc

    def decrypt_tolerant(self, envelope: str | None, record_id: str | None = None) -> SecretResult:
        """Decrypt without raising. Empty envelopes decrypt to ""."""
        if not envelope:
            return SecretResult.success("")
        try:
            return SecretResult.success(self.decrypt_secret(envelope))
        except CryptoError as exc:
            logger.error("Secret decryption failed for entry %s: %s", record_id or "?", exc.message)
            return SecretResult.failure()

    # ------------------------------------------------------------------
    # Password generation
    # ------------------------------------------------------------------

    @staticmethod
    def generate_password(length: int = DEFAULT_PASSWORD_LENGTH) -> str:
        """Return a random password with at least one lowercase, uppercase, digit and symbol.

        One character is drawn from each class, the rest from the union, and
        the result is shuffled with the CSPRNG so the class positions leak
        nothing.
        """
        if not PASSWORD_MIN_LENGTH <= length <= PASSWORD_MAX_LENGTH:
            raise ValidationError(
                f"Password length must be between {PASSWORD_MIN_LENGTH} and {PASSWORD_MAX_LENGTH}."
            )
        rng = secrets.SystemRandom()
        alphabet = "".join(_PASSWORD_CLASSES)
        chars = [rng.choice(cls) for cls in _PASSWORD_CLASSES]
        chars += [rng.choice(alphabet) for _ in range(length - len(chars))]
        rng.shuffle(chars)
        return "".join(chars)
