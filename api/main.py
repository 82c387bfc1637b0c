"""
api/main.py -- FastAPI application entry point for SecretVault.

Run with:  uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

Lifespan builds every core component from Settings and hangs it on app.state:
  app.state.account_store / vault_store  -- SQLAlchemy repositories
  app.state.crypto                       -- CryptoSuite (bcrypt + AES-GCM key)
  app.state.tokens                       -- TokenIssuer (JWT signing secret)
  app.state.mailer                       -- SmtpMailer, or MemoryMailer without SMTP_HOST
  app.state.auth                         -- AuthLifecycle
  app.state.vault                        -- VaultEngine
Key material is read once here and injected; nothing below reads the
environment. Tests replace the lifespan and wire their own components.

Error handling: every core error kind (core.errors.VaultServiceError) is
turned into the same ErrorResponse envelope by one handler, using the kind's
own code and status. Anything unexpected is logged with its traceback and
answered with a generic 500.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.vault import router as vault_router
from auth.crypto import CryptoSuite
from auth.lifecycle import AuthLifecycle
from auth.mail import MemoryMailer, SmtpMailer
from auth.store import AccountStore
from auth.tokens import TokenIssuer
from core.config import Settings, get_settings
from core.errors import VaultServiceError
from vault.engine import VaultEngine
from vault.store import VaultStore

VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("secretvault.api")

_settings = get_settings()


def _build_mailer(settings: Settings):
    if settings.smtp_host:
        return SmtpMailer(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            from_email=settings.smtp_from,
            reset_url=settings.reset_url,
            use_tls=settings.smtp_use_tls,
        )
    logger.warning("SMTP_HOST not set -- password reset mails are kept in memory and never delivered")
    return MemoryMailer()


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build core components on startup; dispose database engines on shutdown.

    Settings validation has already run by the time we get here (get_settings()
    is called at import), so a missing or malformed key has aborted startup
    before any component exists.
    """
    settings = get_settings()
    logger.info("SecretVault API starting up")

    crypto = CryptoSuite(settings.encryption_key_bytes, bcrypt_rounds=settings.bcrypt_rounds)
    tokens = TokenIssuer(settings.secret_key, settings.token_expire_seconds)
    app.state.crypto = crypto
    app.state.tokens = tokens

    app.state.account_store = AccountStore(settings.database_url)
    app.state.vault_store = VaultStore(settings.database_url)
    logger.info("Stores initialized")

    app.state.mailer = _build_mailer(settings)
    app.state.auth = AuthLifecycle(
        app.state.account_store,
        crypto,
        tokens,
        app.state.mailer,
        single_use=settings.single_use_reset_tokens,
    )
    app.state.vault = VaultEngine(app.state.vault_store, crypto)

    yield

    app.state.vault_store.close()
    app.state.account_store.close()
    logger.info("SecretVault API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="SecretVault API",
    description="Per-user credential vault with encryption at rest.",
    version=VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
# ---------------------------------------------------------------------------

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=_settings.allowed_hosts,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_methods=["GET", "POST", "PATCH", "PUT", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPIMiddleware reads the limiter from app.state.
app.state.limiter = limiter


@app.middleware("http")
async def access_log(request: Request, call_next):
    """One line per request. Never logs headers or bodies: both carry secrets."""
    began = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - began) * 1000
    client = request.client.host if request.client else "-"
    logger.info("%s %s -> %d in %.1fms (%s)", request.method, request.url.path, response.status_code, elapsed_ms, client)
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(vault_router, prefix="/api/v1", tags=["Vault"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# Every failure leaves the API as {"error": {"code", "message", "detail"}}.
# Clients branch on error.code; the status code only says which class of
# failure it was.
# ---------------------------------------------------------------------------


def _error(
    status_code: int,
    code: str,
    message: str,
    detail: str | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    body = ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail))
    return JSONResponse(status_code=status_code, content=body.model_dump(), headers=headers)


@app.exception_handler(VaultServiceError)
async def service_error_handler(request: Request, exc: VaultServiceError) -> JSONResponse:
    """Map a core error kind to its own status and code."""
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.message)
    return _error(exc.status_code, exc.code, exc.message, exc.detail)


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    logger.warning("Rate limit hit on %s from %s", request.url.path, request.client.host if request.client else "?")
    wait = int(getattr(exc, "retry_after", 60))
    return _error(
        429,
        "rate_limited",
        "Too many requests, slow down.",
        detail=str(exc),
        headers={"Retry-After": str(wait)},
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Body, path or query parameters failed the request model: 422."""
    return _error(422, "validation_error", "Request validation failed.", detail=str(exc.errors()))


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Envelope for HTTPException.

    get_principal raises with a ready-made {"code", "message"} detail, which
    becomes the error object as-is.
    """
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)
    return _error(exc.status_code, f"http_{exc.status_code}", str(exc.detail), headers=exc.headers)


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last resort. The traceback is logged; the client only sees internal_error."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py (not in a router) so it is always reachable.
# No rate limit and no auth -- load balancers must not be throttled.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return liveness, version and a database check."""
    store: AccountStore = request.app.state.account_store
    database = "ok" if store.ping() else "error"
    return HealthResponse(version=VERSION, components={"app": "ok", "database": database})
