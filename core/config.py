"""
core/config.py -- SecretVault settings, read once from the environment.

This is the only module that looks at environment variables or .env. Everything
else receives values from get_settings(), or better, through a constructor
argument wired up in the API lifespan.

How it is put together:
  Settings is a pydantic-settings BaseSettings. Each field is filled from the
      env var of the same name, upper-cased (token_expire_seconds ->
      TOKEN_EXPIRE_SECONDS), then from .env, then from the default below.

  get_settings() is wrapped in lru_cache, so the process builds Settings once
      and the key material stays fixed after startup.

  Two after-validators police the keys. With DEBUG=true a missing key is
      generated and a warning logged; without it startup fails.

Security notes:
  SECRET_KEY shorter than 32 chars is rejected outright. JWT signing relies on
  key entropy -- a short key weakens every session token.

  ENCRYPTION_KEY must be exactly 64 hex characters (32 raw bytes, AES-256).
  A malformed key is fatal even in dev mode: silently replacing a configured
  key would make every stored secret undecryptable.

  Settings only validates and holds key material. CryptoSuite and TokenIssuer
  receive it through their constructors (see api/main.py lifespan), so tests
  can build them with throwaway keys.

Layer rule: core/ is the kernel. This module may not import from api/,
auth/, or vault/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("secretvault.config")

# Fixed by policy, deliberately not configurable.
RESET_TOKEN_MINUTES = 15

ENCRYPTION_KEY_BYTES = 32

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'secretvault.db'}"


def parse_encryption_key(value: str) -> bytes:
    """Decode a hex-encoded AES-256 key. Raises ValueError if malformed."""
    try:
        raw = bytes.fromhex(value.strip())
    except ValueError as exc:
        raise ValueError("ENCRYPTION_KEY must be hex-encoded.") from exc
    if len(raw) != ENCRYPTION_KEY_BYTES:
        raise ValueError(
            f"ENCRYPTION_KEY must be {ENCRYPTION_KEY_BYTES * 2} hex characters ({ENCRYPTION_KEY_BYTES} bytes)."
        )
    return raw


class Settings(BaseSettings):
    """Every tunable of the service. Defaults suit local development.

    Only the two keys lack usable defaults; see the validators.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    database_url: str = _DEFAULT_DB_URL

    # ------------------------------------------------------------------
    # Keys -- empty string is the "not configured" sentinel
    # ------------------------------------------------------------------

    secret_key: str = ""
    encryption_key: str = ""

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    token_expire_seconds: int = 3600
    bcrypt_rounds: int = 12
    # Off by default: a consumed reset token keeps working for another
    # RESET_TOKEN_MINUTES. Turn on to expire it at first use.
    single_use_reset_tokens: bool = False
    reset_url: str = "http://localhost:5001/reset-password"

    # ------------------------------------------------------------------
    # Mail (empty smtp_host = keep reset mails in memory, dev only)
    # ------------------------------------------------------------------

    smtp_host: str = ""
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    smtp_from: str = "no-reply@secretvault.local"
    smtp_use_tls: bool = True

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"
    rate_limit_enabled: bool = True
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost", "testserver"]
    cors_origins: list[str] = ["http://localhost", "http://localhost:3000", "http://127.0.0.1"]

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """SECRET_KEY signs session tokens.

        Missing: generated under DEBUG (every token dies with the process),
        fatal otherwise. Shorter than 32 characters: fatal in every mode.
        """
        if not self.secret_key and self.debug:
            self.secret_key = secrets.token_urlsafe(48)
            logger.warning("SECRET_KEY not set; generated a throwaway one. Sessions end at restart.")
        elif not self.secret_key:
            raise ValueError("SECRET_KEY is not set. Export SECRET_KEY (32+ characters), or set DEBUG=true for local runs.")
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        return self

    @model_validator(mode="after")
    def validate_encryption_key(self) -> "Settings":
        """Enforce ENCRYPTION_KEY policy.

        Missing key: generated in dev mode (stored secrets will be unreadable
        after restart), fatal in production mode. A key that is present but
        not 32 hex-encoded bytes is fatal in every mode.
        """
        if not self.encryption_key:
            if self.debug:
                self.encryption_key = secrets.token_hex(ENCRYPTION_KEY_BYTES)
                logger.warning(
                    "WARNING: Using auto-generated ENCRYPTION_KEY. Stored secrets will not decrypt after restart."
                )
            else:
                raise ValueError(
                    "ENCRYPTION_KEY is required in production mode. "
                    "Generate one with `python main.py genkey` and set it in your environment."
                )
        parse_encryption_key(self.encryption_key)
        return self

    @property
    def encryption_key_bytes(self) -> bytes:
        return parse_encryption_key(self.encryption_key)


@lru_cache
def get_settings() -> Settings:
    """Cached Settings. Tests that change env vars call get_settings.cache_clear()."""
    return Settings()
