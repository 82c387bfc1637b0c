"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Clients authenticate with an "Authorization: Bearer <token>" header carrying
a session JWT issued by register or login. get_principal() verifies it through
the TokenIssuer stored on app.state and returns a Principal -- the only way a
route obtains the caller's account id.

Failures are HTTP 401 with distinct error codes:
  unauthorized   -- no bearer header at all, or a non-Bearer scheme
  token_expired  -- signature valid, exp in the past
  token_invalid  -- anything else

Layer rule: no imports from api/ or vault/.
  auth/dependencies.py may import from fastapi (for HTTPException/Request)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

import logging

from fastapi import HTTPException, Request

from auth.models import Principal
from auth.tokens import TokenIssuer
from core.errors import TokenExpired, TokenInvalid

logger = logging.getLogger("secretvault.auth")


def _bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    scheme, _, token = auth_header.partition(" ")
    if scheme != "Bearer" or not token.strip():
        return None
    return token.strip()


def get_principal(request: Request) -> Principal:
    """Require a valid bearer token. Raises HTTP 401 otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(principal: Principal = Depends(get_principal)): ...
    """
    token = _bearer_token(request)
    if token is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
            headers={"WWW-Authenticate": "Bearer"},
        )

    tokens: TokenIssuer = request.app.state.tokens
    try:
        return tokens.verify_session(token)
    except TokenExpired as exc:
        logger.info("Rejected expired token on %s", request.url.path)
        raise HTTPException(
            status_code=401,
            detail={"code": exc.code, "message": exc.message},
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc
    except TokenInvalid as exc:
        logger.warning("Rejected invalid token on %s", request.url.path)
        raise HTTPException(
            status_code=401,
            detail={"code": exc.code, "message": exc.message},
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc
