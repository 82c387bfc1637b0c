"""
asgi.py -- ASGI entry point for SecretVault.

api/main.py assembles the whole application (routers, middleware, lifespan);
this module only re-exports it under the name servers look for.

Run with:  uvicorn asgi:app --reload
"""

from api.main import app

__all__ = ["app"]
