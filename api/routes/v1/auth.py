"""
api/routes/v1/auth.py -- Account and session REST endpoints.

Routes:
  POST /api/v1/auth/register         -- create account; returns session token
  POST /api/v1/auth/login            -- password login; returns session token
  POST /api/v1/auth/forgot-password  -- mail a reset token (generic reply)
  POST /api/v1/auth/reset-password   -- set a new password with a reset token
  GET  /api/v1/auth/me               -- current account (requires auth)

Security:
  Register, login, forgot and reset are rate-limited (see api/limiter.py).
  Cache-Control: no-store on every response that carries a token.
  forgot-password answers the same way for known and unknown emails. The
  AccountNotFound raised by AuthLifecycle is logged and dropped here so an
  anonymous caller cannot learn which addresses have accounts. A mail
  delivery failure is NOT hidden -- it surfaces as 502.

Handlers are sync `def`: bcrypt and SQLite are blocking, so FastAPI runs them
in its threadpool instead of on the event loop.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request, Response

from api.limiter import FORGOT_PASSWORD_LIMIT, REGISTER_LIMIT, RESET_PASSWORD_LIMIT, limiter, login_limit
from api.models import (
    AuthResponse,
    ForgotPasswordRequest,
    LoginRequest,
    MeResponse,
    MessageResponse,
    RegisterRequest,
    ResetPasswordRequest,
)
from auth.dependencies import get_principal
from auth.lifecycle import AuthLifecycle
from auth.models import Principal
from core.errors import AccountNotFound

logger = logging.getLogger("secretvault.api")

router = APIRouter()

FORGOT_PASSWORD_MESSAGE = "If an account exists for that email, a reset link has been sent."
PASSWORD_UPDATED_MESSAGE = "Password updated successfully."


def _lifecycle(request: Request) -> AuthLifecycle:
    return request.app.state.auth


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@limiter.limit(REGISTER_LIMIT)
@router.post("/auth/register", response_model=AuthResponse, status_code=201)
def register(request: Request, response: Response, body: RegisterRequest) -> AuthResponse:
    """Create an account and return a session token.

    409 duplicate_email if the address is already registered.
    """
    result = _lifecycle(request).register(body.name, body.email, body.password)
    response.headers["Cache-Control"] = "no-store"
    return AuthResponse.from_result(result)


@limiter.limit(login_limit)
@router.post("/auth/login", response_model=AuthResponse)
def login(request: Request, response: Response, body: LoginRequest) -> AuthResponse:
    """Authenticate with email and password; return a session token.

    404 not_found for an unknown email, 401 invalid_credential for a wrong
    password. The lifecycle equalizes timing between the two.
    """
    result = _lifecycle(request).login(body.email, body.password)
    response.headers["Cache-Control"] = "no-store"
    return AuthResponse.from_result(result)


@limiter.limit(FORGOT_PASSWORD_LIMIT)
@router.post("/auth/forgot-password", response_model=MessageResponse)
def forgot_password(request: Request, body: ForgotPasswordRequest) -> MessageResponse:
    """Mail a reset token; the reply text is identical for known and unknown emails.

    Delivery runs inside the request so a mailer failure can come back as
    502 delivery_failed. The cost is timing: a known address waits on SMTP
    while an unknown one returns at once, so response latency can reveal
    which addresses hold accounts. The 5/minute limit on this route bounds
    how fast addresses can be tested that way.
    """
    try:
        _lifecycle(request).forgot_password(body.email)
    except AccountNotFound:
        logger.info("Password reset requested for unknown email")
    return MessageResponse(message=FORGOT_PASSWORD_MESSAGE)


@limiter.limit(RESET_PASSWORD_LIMIT)
@router.post("/auth/reset-password", response_model=MessageResponse)
def reset_password(request: Request, body: ResetPasswordRequest) -> MessageResponse:
    """400 token_not_found for unknown and expired tokens alike."""
    _lifecycle(request).reset_password(body.reset_token, body.password)
    return MessageResponse(message=PASSWORD_UPDATED_MESSAGE)


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/me", response_model=MeResponse)
def me(request: Request, principal: Principal = Depends(get_principal)) -> MeResponse:
    """Return the account behind the bearer token."""
    return MeResponse.from_summary(_lifecycle(request).current_account(principal))
