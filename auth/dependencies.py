"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

The Auth binding lives on app.state.auth (set in the app lifespan). These
helpers fetch it and run the session-side operations:

current_user() is the soft variant (returns None when anonymous).
require_user() raises Unauthenticated (401) when anonymous.
require_role(role) builds a dependency that also raises Forbidden (403)
when the session role differs. require_admin is require_role("admin").

The raised AuthError is rendered by the app-level exception handler, so a
route protected this way never runs for a failing request.

Layer rule: no imports from api/ or profiles/.
  auth/dependencies.py may import from fastapi (for Depends/Request)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable

from fastapi import Request

from auth.models import AuthUser
from auth.providers import Auth


def get_auth(request: Request) -> Auth:
    """Return the Auth binding the app was started with."""
    return request.app.state.auth


async def current_user(request: Request) -> AuthUser | None:
    """Return the session user, or None. Never raises."""
    return await get_auth(request).user(request)


async def require_user(request: Request) -> AuthUser:
    """Require an authenticated session.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(user: AuthUser = Depends(require_user)): ...
    """
    return await get_auth(request).require_user(request)


def require_role(role: str, redirect_to: str | None = None) -> Callable[[Request], Awaitable[AuthUser]]:
    """Build a dependency that requires an authenticated session holding role.

    With redirect_to set, failures redirect there instead of returning 401/403.
    """

    async def dependency(request: Request) -> AuthUser:
        return await get_auth(request).require_user(request, role, redirect_to)

    return dependency


require_admin = require_role("admin")
