"""
api/routes/v1/auth.py -- Authentication REST endpoints.

Routes:
  POST   /api/v1/auth/signup    -- create account + profile; redirect or 201
  POST   /api/v1/auth/login     -- verify credentials, then commit the session; redirect or 201
  POST   /api/v1/auth/logout    -- blank the session keys; redirect or 204
  DELETE /api/v1/auth/session   -- drop the session cookie entirely; redirect or 204
  GET    /api/v1/auth/me        -- current session user (null when anonymous)
  GET    /api/v1/auth/admin     -- session user, admin role required

Session ownership:
  Auth.login() only verifies credentials. This module is the caller that
  turns a successful login into a session with create_auth_session(),
  copying id / username / role / token. role comes from the local account
  when the backend reports one, else from the user's profile, else
  DEFAULT_ROLE.

Security:
  POST /login is rate-limited (LOGIN_RATE_LIMIT per client IP).
  next= values must be relative paths (open-redirect guard, _safe_next()).
  Cache-Control: no-store on credential responses.
"""

import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.exc import SQLAlchemyError

from api.limiter import limiter, login_rate_limit
from api.models import LoginRequest, SignupRequest
from auth import errors
from auth.dependencies import current_user, get_auth, require_admin
from auth.models import AuthUser
from auth.responses import error_response, redirect_response, success_response
from profiles.controllers import UserController
from profiles.models import UserProfile

logger = logging.getLogger("authbridge.api.auth")

# Auth policy:
# - POST   /api/v1/auth/signup:   public
# - POST   /api/v1/auth/login:    public, rate-limited
# - POST   /api/v1/auth/logout:   public -- blanking an anonymous session is harmless
# - DELETE /api/v1/auth/session:  public
# - GET    /api/v1/auth/me:       public -- returns user=null when anonymous
# - GET    /api/v1/auth/admin:    requires admin role (require_admin)
router = APIRouter()


def _safe_next(next_url: Optional[str]) -> Optional[str]:
    """Validate a post-action redirect target. Only accept relative paths.

    Rejects absolute URLs and protocol-relative "//host" forms, which would
    send the browser off-site. Returns None when there is nothing safe to
    redirect to, so the caller answers with JSON instead.
    """
    if next_url and next_url.startswith("/") and not next_url.startswith("//"):
        return next_url
    return None


def _body(resp: Response) -> dict:
    return json.loads(resp.body)


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/signup", status_code=201)
async def signup(request: Request, body: SignupRequest) -> Response:
    """Create an account, then its profile. No session is created.

    The existence check runs first so a duplicate email is reported before
    the provider is asked to register it.
    """
    email = body.email.strip()
    if not email:
        return error_response(errors.VALIDATION_EMAIL, "Email field cannot be empty", 400)
    if not body.password.strip() or body.password != body.confirm:
        return error_response(errors.VALIDATION_PASSWORD, "Password fields cannot be empty and must match", 400)

    auth = get_auth(request)
    user = AuthUser(username=email, password=body.password)
    if await auth.exists(user):
        return error_response(errors.EMAIL_EXISTS, "An account with that email already exists.", 400)

    resp = await auth.create_account(user)
    if resp.status_code != 201:
        return resp
    identity = _body(resp)["user"]

    users: UserController = request.app.state.users
    profile = UserProfile(
        id=identity["uid"],
        username=identity["email"],
        role=identity.get("role") or request.app.state.settings.default_role,
        preferences={"theme": "dark"},
    )
    try:
        await run_in_threadpool(users.create, profile)
    except SQLAlchemyError:
        logger.exception("signup/general: could not create profile for uid=%s", profile.id)
        return error_response(errors.SIGNUP_GENERAL, "There was a problem creating the account", 500)

    if next_url := _safe_next(body.next):
        return redirect_response(next_url)
    return success_response(201, user=identity)


@router.post("/auth/login")
@limiter.limit(login_rate_limit)
async def login(request: Request, body: LoginRequest) -> Response:
    """Verify credentials and commit the session.

    Failed logins are relayed unchanged from the provider (401
    auth/invalid-credentials, 500 login/general, ...) and never set a cookie.
    """
    auth = get_auth(request)
    resp = await auth.login(AuthUser(username=body.email.strip(), password=body.password))
    if resp.status_code != 200:
        return resp
    payload = _body(resp)
    identity = payload["user"]

    role = identity.get("role")
    if not role:
        users: UserController = request.app.state.users
        try:
            profile = await run_in_threadpool(users.get, identity["uid"])
        except SQLAlchemyError:
            logger.exception("login/general: could not load profile for uid=%s", identity["uid"])
            return error_response(errors.LOGIN_GENERAL, "There was a problem logging in", 500)
        role = profile.role if profile else request.app.state.settings.default_role

    session_data = {
        "id": identity["uid"],
        "username": identity["email"],
        "role": role,
        "token": payload["idToken"],
    }
    logger.info("Login succeeded for uid=%s", identity["uid"])
    result = await request.app.state.sessions.create_auth_session(session_data, _safe_next(body.next))
    result.headers["Cache-Control"] = "no-store"
    return result


@router.post("/auth/logout")
async def logout(request: Request, next_url: Optional[str] = Query(default=None, alias="next")) -> Response:
    """Blank id / username / role / token in the session."""
    return await get_auth(request).logout(request, _safe_next(next_url))


@router.delete("/auth/session")
async def invalidate_session(
    request: Request, next_url: Optional[str] = Query(default=None, alias="next")
) -> Response:
    """Delete the session cookie outright."""
    return await request.app.state.sessions.invalidate_auth_session(request, _safe_next(next_url))


@router.get("/auth/me")
async def me(user: Optional[AuthUser] = Depends(current_user)) -> Response:
    """Return the session user, or user=null when nobody is logged in."""
    return success_response(200, user=user.public_dict() if user else None)


# ---------------------------------------------------------------------------
# Role-protected endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/admin")
async def admin(user: AuthUser = Depends(require_admin)) -> Response:
    """Example admin-only resource. 401 when anonymous, 403 for other roles."""
    return success_response(200, user=user.public_dict())
