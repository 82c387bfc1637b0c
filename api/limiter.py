"""
api/limiter.py -- Shared slowapi rate limiter and the per-route limits.

Import `limiter` in api/main.py (to mount as middleware) and in the route
modules (to apply per-route limits with @limiter.limit()). A single shared
instance keeps one in-memory counter store for every route.

The credential endpoints are the brute-force surface, so they carry the
tightest limits. The login limit comes from Settings (LOGIN_RATE_LIMIT); the
rest are fixed. RATE_LIMIT_ENABLED=false switches limiting off entirely -- the
test suite does this so a module's worth of logins from one TestClient does
not trip the counter.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

REGISTER_LIMIT = "5/minute"
FORGOT_PASSWORD_LIMIT = "5/minute"
RESET_PASSWORD_LIMIT = "10/minute"
VAULT_WRITE_LIMIT = "60/minute"
VAULT_READ_LIMIT = "120/minute"


def login_limit() -> str:
    return get_settings().login_rate_limit


limiter = Limiter(
    key_func=get_remote_address,
    storage_uri="memory://",
    enabled=get_settings().rate_limit_enabled,
)
