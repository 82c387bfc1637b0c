"""
tests/conftest.py -- Shared test fixtures for SecretVault.

This module provides:
  - _memory_url(): named shared-memory SQLite URL, unique per call
  - component fixtures (crypto, tokens, stores, lifecycle, engine) for unit tests
  - _patch_lifespan(): wires test components into app.state, bypassing real startup
  - api_client: TestClient over the real app with isolated in-memory stores

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process.

DEBUG and RATE_LIMIT_ENABLED must be set before any api/auth/core import:
get_settings() is called at import time by api.main and api.limiter.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: Set before any project import so get_settings() generates keys in
# dev mode and the limiter is built disabled.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.crypto import CryptoSuite
from auth.lifecycle import AuthLifecycle
from auth.mail import MemoryMailer
from auth.store import AccountStore
from auth.tokens import TokenIssuer
from vault.engine import VaultEngine
from vault.store import VaultStore

TEST_KEY = bytes(range(32))
TEST_SECRET = "test-signing-secret-" + "x" * 32
# bcrypt's minimum cost; the suite hashes hundreds of passwords.
TEST_BCRYPT_ROUNDS = 4


def _memory_url(name: str) -> str:
    return f"sqlite:///file:test_{name}_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"


# ---------------------------------------------------------------------------
# Component fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def crypto() -> CryptoSuite:
    return CryptoSuite(TEST_KEY, bcrypt_rounds=TEST_BCRYPT_ROUNDS)


@pytest.fixture
def tokens() -> TokenIssuer:
    return TokenIssuer(TEST_SECRET, expire_seconds=3600)


@pytest.fixture
def account_store() -> Generator[AccountStore, None, None]:
    store = AccountStore(_memory_url("accounts"))
    yield store
    store.close()


@pytest.fixture
def vault_store() -> Generator[VaultStore, None, None]:
    store = VaultStore(_memory_url("vault"))
    yield store
    store.close()


@pytest.fixture
def mailer() -> MemoryMailer:
    return MemoryMailer()


@pytest.fixture
def lifecycle(account_store, crypto, tokens, mailer) -> AuthLifecycle:
    return AuthLifecycle(account_store, crypto, tokens, mailer)


@pytest.fixture
def engine(vault_store, crypto) -> VaultEngine:
    return VaultEngine(vault_store, crypto)


@pytest.fixture
def owner_id() -> str:
    return uuid.uuid4().hex


@pytest.fixture
def other_owner_id() -> str:
    return uuid.uuid4().hex


# ---------------------------------------------------------------------------
# API client
# ---------------------------------------------------------------------------


def _patch_lifespan(account_store: AccountStore, vault_store: VaultStore, mailer: MemoryMailer):
    """Return an async context manager that replaces the real lifespan.

    Wires test components into app.state so TestClient routes see isolated
    in-memory DBs, a fixed key and an in-memory mailer.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        crypto = CryptoSuite(TEST_KEY, bcrypt_rounds=TEST_BCRYPT_ROUNDS)
        tokens = TokenIssuer(TEST_SECRET, expire_seconds=3600)
        app.state.crypto = crypto
        app.state.tokens = tokens
        app.state.account_store = account_store
        app.state.vault_store = vault_store
        app.state.mailer = mailer
        app.state.auth = AuthLifecycle(account_store, crypto, tokens, mailer)
        app.state.vault = VaultEngine(vault_store, crypto)
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client() -> Generator[tuple[TestClient, MemoryMailer], None, None]:
    """Yield (client, mailer) for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so tests
    hit real route handlers and middleware but use isolated stores. mailer is
    the MemoryMailer the app sends reset tokens to.
    """
    db_url = _memory_url("api")
    account_store = AccountStore(db_url)
    vault_store = VaultStore(db_url)
    mailer = MemoryMailer()

    app.router.lifespan_context = _patch_lifespan(account_store, vault_store, mailer)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, mailer

    vault_store.close()
    account_store.close()
