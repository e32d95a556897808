"""
auth/providers.py -- The Auth contract and its provider bindings.

Auth[User] is a capability interface (typing.Protocol), not a base class.
Each binding composes a session manager with one identity backend:

  IdentityAuth -- token-issuing identity provider over HTTP (auth.identity)
  LocalAuth    -- SQL credential store, bcrypt hashes, JWT id tokens (auth.store)

Both answer every operation with an envelope or redirect (auth.responses) and
never let a backend fault escape, with one deliberate exception: the
require_user() guard raises AuthError, whose to_response() renders the
redirect or the auth/unauthenticated / auth/forbidden envelope.

Session ownership is asymmetric:
  login()          verifies credentials and returns the id token; it does NOT
                   write a session. The caller commits one with
                   create_auth_session().
  logout()         blanks SESSION_KEYS through destroy_auth_session().
  user() /
  require_user()   read the session only; they never call the backend.

A session counts as authenticated when any SESSION_KEYS entry is non-blank.

Layer rule: no imports from api/ or profiles/.
"""

from __future__ import annotations

import logging
from typing import Protocol, TypeVar

import httpx
from fastapi import Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import Response
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth import errors
from auth.errors import Forbidden, IdentityError, Unauthenticated
from auth.identity import IdentityClient
from auth.models import SESSION_KEYS, Account, AuthUser
from auth.responses import error_response, redirect_response, success_response
from auth.session import AuthSession, Session
from auth.store import AccountStore
from auth.tokens import authenticate_account, create_id_token, hash_password
from core.config import Settings

logger = logging.getLogger("authbridge.auth")

UserT = TypeVar("UserT", bound=AuthUser, contravariant=True)


class Auth(Protocol[UserT]):
    """What route handlers may call. Implemented once per identity backend."""

    async def create_account(self, user: UserT, redirect_to: str | None = None) -> Response: ...

    async def login(self, user: UserT, redirect_to: str | None = None) -> Response: ...

    async def logout(self, request: Request, redirect_to: str | None = None) -> Response: ...

    async def exists(self, user: UserT) -> bool: ...

    async def require_user(
        self, request: Request, role: str | None = None, redirect_to: str | None = None
    ) -> AuthUser: ...

    async def user(self, request: Request) -> AuthUser | None: ...


# ---------------------------------------------------------------------------
# Session-side helpers shared by every binding
# ---------------------------------------------------------------------------


def session_user(session: Session) -> AuthUser | None:
    """Build the denormalized AuthUser held in a session, or None if anonymous.

    Blank values (left behind by destroy_auth_session) count as absent.
    """
    if not any(session.get(key) for key in SESSION_KEYS):
        return None
    return AuthUser(
        id=session.get("id") or None,
        username=session.get("username") or None,
        name=session.get("name") or None,
        role=session.get("role") or None,
    )


def enforce(user: AuthUser | None, role: str | None = None, redirect_to: str | None = None) -> AuthUser:
    """Pass user through if it satisfies the requirement, else raise.

    Raises Unauthenticated when user is None, Forbidden when role is given
    and differs from user.role. With redirect_to set, either error renders
    as a redirect instead of an envelope.
    """
    if user is None:
        raise Unauthenticated(redirect_to=redirect_to)
    if role and user.role != role:
        logger.info("Role check failed: required=%s actual=%s", role, user.role)
        raise Forbidden(redirect_to=redirect_to)
    return user


def validate_credentials(user: AuthUser) -> Response | None:
    """Return a 400 validation envelope if username or password is blank."""
    if not user.username or not user.username.strip():
        return error_response(errors.VALIDATION_EMAIL, "Email field cannot be empty", 400)
    if not user.password or not user.password.strip():
        return error_response(errors.VALIDATION_PASSWORD, "Password field cannot be empty", 400)
    return None


# ---------------------------------------------------------------------------
# Identity provider binding
# ---------------------------------------------------------------------------


class IdentityAuth:
    """Auth[AuthUser] backed by a token-issuing identity provider.

    Usage:
        auth = IdentityAuth(settings, CookieSessionManager(settings))
        resp = await auth.login(AuthUser(username="test@example.com", password="test123"))
    """

    def __init__(self, settings: Settings, sessions: AuthSession, client: IdentityClient | None = None) -> None:
        self.sessions = sessions
        self.client = client or IdentityClient(settings)

    async def create_account(self, user: AuthUser, redirect_to: str | None = None) -> Response:
        if (invalid := validate_credentials(user)) is not None:
            return invalid
        try:
            record = await self.client.sign_up(user.username, user.password)
        except IdentityError as exc:
            logger.info("Account creation rejected: code=%s", exc.code)
            return exc.to_response(errors.SIGNUP_GENERAL)
        if redirect_to:
            return redirect_response(redirect_to)
        return success_response(201, user=record.user_payload(), idToken=record.id_token)

    async def login(self, user: AuthUser, redirect_to: str | None = None) -> Response:
        if (invalid := validate_credentials(user)) is not None:
            return invalid
        try:
            record = await self.client.sign_in(user.username, user.password)
        except IdentityError as exc:
            logger.info("Login rejected: code=%s", exc.code)
            return exc.to_response(errors.LOGIN_GENERAL)
        if redirect_to:
            return redirect_response(redirect_to)
        resp = success_response(
            200,
            idToken=record.id_token,
            expiresIn=record.expires_in,
            user=record.user_payload(),
        )
        resp.headers["Cache-Control"] = "no-store"
        return resp

    async def logout(self, request: Request, redirect_to: str | None = None) -> Response:
        return await self.sessions.destroy_auth_session(request, SESSION_KEYS, redirect_to)

    async def exists(self, user: AuthUser) -> bool:
        """Ask the provider whether user.username is registered.

        Provider faults are logged and reported as False; create_account()
        will surface the real error if the caller goes on to register.
        """
        if not user.username or not user.username.strip():
            return False
        try:
            return await self.client.is_registered(user.username)
        except IdentityError as exc:
            logger.warning("Existence check failed: %s", exc.message)
            return False

    async def require_user(
        self, request: Request, role: str | None = None, redirect_to: str | None = None
    ) -> AuthUser:
        return enforce(await self.user(request), role, redirect_to)

    async def user(self, request: Request) -> AuthUser | None:
        return session_user(await self.sessions.get_auth_session(request))

    async def aclose(self) -> None:
        await self.client.aclose()


# ---------------------------------------------------------------------------
# Database-credential binding
# ---------------------------------------------------------------------------


class LocalAuth:
    """Auth[AuthUser] backed by the local AccountStore.

    Accounts are created with user.role, or DEFAULT_ROLE when none is given.
    The id token is a JWT signed with SECRET_KEY (see auth.tokens).

    bcrypt and SQLAlchemy calls block; they run through run_in_threadpool.
    """

    def __init__(self, settings: Settings, sessions: AuthSession, store: AccountStore | None = None) -> None:
        self.settings = settings
        self.sessions = sessions
        self.store = store or AccountStore(settings.database_url)

    def _payload(self, account: Account) -> dict:
        user = {"uid": str(account.id), "email": account.username, "role": account.role}
        if account.name:
            user["displayName"] = account.name
        return user

    def _register(self, user: AuthUser) -> Account:
        account = Account(
            username=user.username,
            role=user.role or self.settings.default_role,
            name=user.name,
            hashed_password=hash_password(user.password),
        )
        account.id = self.store.create_account(account)
        return account

    def _verify(self, username: str, password: str) -> Account | None:
        account = authenticate_account(self.store, username, password)
        if account is not None:
            self.store.update_last_login(account.id)
        return account

    async def create_account(self, user: AuthUser, redirect_to: str | None = None) -> Response:
        if (invalid := validate_credentials(user)) is not None:
            return invalid
        try:
            account = await run_in_threadpool(self._register, user)
        except IntegrityError:
            return error_response(errors.EMAIL_EXISTS, "An account with that email already exists.", 400)
        except SQLAlchemyError as exc:
            logger.exception("Account store failure during create_account")
            return error_response(errors.SIGNUP_GENERAL, f"Could not create the account: {exc}", 500)
        logger.info("Created local account id=%s", account.id)
        if redirect_to:
            return redirect_response(redirect_to)
        return success_response(
            201, user=self._payload(account), idToken=create_id_token(self.settings, account)
        )

    async def login(self, user: AuthUser, redirect_to: str | None = None) -> Response:
        if (invalid := validate_credentials(user)) is not None:
            return invalid
        try:
            account = await run_in_threadpool(self._verify, user.username, user.password)
        except SQLAlchemyError as exc:
            logger.exception("Account store failure during login")
            return error_response(errors.LOGIN_GENERAL, f"There was a problem logging in: {exc}", 500)
        if account is None:
            return error_response(errors.INVALID_CREDENTIALS, "Invalid username or password.", 401)
        if redirect_to:
            return redirect_response(redirect_to)
        resp = success_response(
            200,
            idToken=create_id_token(self.settings, account),
            expiresIn=self.settings.session_max_age,
            user=self._payload(account),
        )
        resp.headers["Cache-Control"] = "no-store"
        return resp

    async def logout(self, request: Request, redirect_to: str | None = None) -> Response:
        return await self.sessions.destroy_auth_session(request, SESSION_KEYS, redirect_to)

    async def exists(self, user: AuthUser) -> bool:
        if not user.username or not user.username.strip():
            return False
        try:
            return await run_in_threadpool(self.store.exists, user.username)
        except SQLAlchemyError:
            logger.exception("Account store failure during exists")
            return False

    async def require_user(
        self, request: Request, role: str | None = None, redirect_to: str | None = None
    ) -> AuthUser:
        return enforce(await self.user(request), role, redirect_to)

    async def user(self, request: Request) -> AuthUser | None:
        return session_user(await self.sessions.get_auth_session(request))

    async def aclose(self) -> None:
        self.store.close()


def build_auth(
    settings: Settings, sessions: AuthSession, http: httpx.AsyncClient | None = None
) -> IdentityAuth | LocalAuth:
    """Construct the binding selected by AUTH_BACKEND.

    http is the shared client the identity binding should use; the caller
    keeps ownership of it. The local binding ignores it.
    """
    if settings.auth_backend == "local":
        return LocalAuth(settings, sessions)
    return IdentityAuth(settings, sessions, IdentityClient(settings, http=http))
