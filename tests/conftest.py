"""
tests/conftest.py -- Shared test fixtures for authbridge.

This module provides:
  - FakeIdentityToolkit: in-memory stand-in for the Identity Toolkit REST API,
    served to IdentityClient through httpx.MockTransport (no network, no emulator)
  - settings / sessions / identity_auth / local_auth: core objects built from
    an explicit Settings instance
  - make_request / carry_cookie: build Starlette requests with or without a
    session cookie taken from a previous response
  - app_client / local_app_client: TestClient over the real FastAPI app with a
    patched lifespan, follow_redirects=False so Location headers are visible

Design: Named shared-memory SQLite URIs (not plain :memory:) are used because
TestClient runs the app on a separate thread. The named URI format
(file:name?mode=memory&cache=shared&uri=true) shares one in-memory instance
across all connections in the process; a uuid suffix isolates each test.

The DEBUG env var must be set before any app import so get_settings() can
auto-generate SECRET_KEY instead of raising ValueError.
"""

from __future__ import annotations

import json
import os
import uuid
from collections.abc import Callable, Generator
from contextlib import asynccontextmanager

# CRITICAL: Set DEBUG before any core/api import.
os.environ.setdefault("DEBUG", "true")

import httpx
import pytest
from fastapi.responses import Response
from fastapi.testclient import TestClient
from starlette.requests import Request

from api.limiter import limiter
from api.main import app
from auth.identity import IdentityClient
from auth.models import Account
from auth.providers import IdentityAuth, LocalAuth
from auth.session import CookieSessionManager
from auth.store import AccountStore
from auth.tokens import hash_password
from core.config import Settings
from profiles.controllers import UserController
from profiles.store import SQLDocumentStore

TEST_EMAIL = "test@example.com"
TEST_PASSWORD = "test123"

# ---------------------------------------------------------------------------
# Fake identity provider
# ---------------------------------------------------------------------------


class FakeIdentityToolkit:
    """Minimal Identity Toolkit: signUp, signInWithPassword, createAuthUri.

    offline=True makes every call fail at the transport level.
    broken=True makes every call answer 500 with an unclassified message.
    null_body=True makes every call answer 200 with a JSON null body.
    """

    def __init__(self) -> None:
        self.accounts: dict[str, dict] = {}
        self.requests: list[httpx.Request] = []
        self.offline = False
        self.broken = False
        self.null_body = False

    def add_account(self, email: str, password: str) -> str:
        uid = uuid.uuid4().hex[:28]
        self.accounts[email] = {"uid": uid, "password": password}
        return uid

    @staticmethod
    def _error(message: str, status: int = 400) -> httpx.Response:
        return httpx.Response(status, json={"error": {"code": status, "message": message, "errors": []}})

    def _token_response(self, email: str, **extra) -> httpx.Response:
        uid = self.accounts[email]["uid"]
        return httpx.Response(
            200,
            json={
                "kind": "identitytoolkit#Response",
                "localId": uid,
                "email": email,
                "idToken": f"id-token-{uid}",
                "refreshToken": f"refresh-{uid}",
                "expiresIn": "3600",
                **extra,
            },
        )

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.offline:
            raise httpx.ConnectError("identity provider offline", request=request)
        if self.broken:
            return self._error("INTERNAL_ERROR", status=500)
        if self.null_body:
            return httpx.Response(200, content=b"null", headers={"content-type": "application/json"})

        operation = request.url.path.rsplit(":", 1)[-1]
        body = json.loads(request.content or b"{}")

        if operation == "signUp":
            email, password = body.get("email"), body.get("password")
            if not email:
                return self._error("MISSING_EMAIL")
            if email in self.accounts:
                return self._error("EMAIL_EXISTS")
            if not password or len(password) < 6:
                return self._error("WEAK_PASSWORD : Password should be at least 6 characters")
            self.add_account(email, password)
            return self._token_response(email)

        if operation == "signInWithPassword":
            email, password = body.get("email"), body.get("password")
            account = self.accounts.get(email)
            if account is None:
                return self._error("EMAIL_NOT_FOUND")
            if account["password"] != password:
                return self._error("INVALID_PASSWORD")
            return self._token_response(email, registered=True)

        if operation == "createAuthUri":
            registered = body.get("identifier") in self.accounts
            return httpx.Response(200, json={"kind": "identitytoolkit#CreateAuthUriResponse", "registered": registered})

        return self._error("OPERATION_NOT_ALLOWED", status=404)


# ---------------------------------------------------------------------------
# Core fixtures
# ---------------------------------------------------------------------------


def _memory_url(prefix: str) -> str:
    return f"sqlite:///file:{prefix}_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"


@pytest.fixture
def settings() -> Settings:
    return Settings(
        debug=True,
        secret_key="test-secret-key-for-authbridge-0123456789",
        auth_backend="identity",
        identity_api_key="test-api-key",
        database_url=_memory_url("authbridge"),
        session_max_age=3600,
    )


@pytest.fixture
def toolkit() -> FakeIdentityToolkit:
    fake = FakeIdentityToolkit()
    fake.add_account(TEST_EMAIL, TEST_PASSWORD)
    return fake


@pytest.fixture
def sessions(settings: Settings) -> CookieSessionManager:
    return CookieSessionManager(settings)


@pytest.fixture
def identity_client(settings: Settings, toolkit: FakeIdentityToolkit) -> IdentityClient:
    return IdentityClient(settings, http=httpx.AsyncClient(transport=httpx.MockTransport(toolkit)))


@pytest.fixture
def identity_auth(settings: Settings, sessions: CookieSessionManager, identity_client: IdentityClient) -> IdentityAuth:
    return IdentityAuth(settings, sessions, identity_client)


@pytest.fixture
def account_store() -> Generator[AccountStore, None, None]:
    store = AccountStore(_memory_url("accounts"))
    store.create_account(Account(username=TEST_EMAIL, role="admin", hashed_password=hash_password(TEST_PASSWORD)))
    yield store
    store.close()


@pytest.fixture
def local_auth(settings: Settings, sessions: CookieSessionManager, account_store: AccountStore) -> LocalAuth:
    return LocalAuth(settings, sessions, account_store)


@pytest.fixture(params=["identity", "local"])
def any_auth(request: pytest.FixtureRequest):
    """Run a test once per provider binding."""
    return request.getfixturevalue(f"{request.param}_auth")


# ---------------------------------------------------------------------------
# Request helpers
# ---------------------------------------------------------------------------


def _request(cookie_header: str | None = None) -> Request:
    headers = [(b"cookie", cookie_header.encode("latin-1"))] if cookie_header else []
    return Request({"type": "http", "method": "GET", "path": "/", "headers": headers, "query_string": b""})


@pytest.fixture
def make_request() -> Callable[..., Request]:
    """Build a bare request, optionally with a raw Cookie header."""
    return _request


@pytest.fixture
def carry_cookie() -> Callable[[Response], Request]:
    """Build a request carrying the session cookie a response just set."""

    def _carry(response: Response) -> Request:
        set_cookie = response.headers["set-cookie"]
        return _request(set_cookie.split(";", 1)[0])

    return _carry


# ---------------------------------------------------------------------------
# App fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(settings: Settings, toolkit: FakeIdentityToolkit | None = None, store: AccountStore | None = None):
    """Return a lifespan that wires test doubles into app.state.

    toolkit given -> IdentityAuth over the fake provider.
    store given   -> LocalAuth over that account store.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.settings = settings
        app.state.sessions = CookieSessionManager(settings)
        if store is not None:
            app.state.auth = LocalAuth(settings, app.state.sessions, store)
        else:
            http = httpx.AsyncClient(transport=httpx.MockTransport(toolkit))
            app.state.auth = IdentityAuth(settings, app.state.sessions, IdentityClient(settings, http=http))
        app.state.profile_db = SQLDocumentStore(settings.database_url)
        app.state.users = UserController(app.state.profile_db)
        yield
        app.state.profile_db.close()

    return test_lifespan


@pytest.fixture
def app_client(settings: Settings, toolkit: FakeIdentityToolkit) -> Generator[TestClient, None, None]:
    """TestClient over the real app with IdentityAuth backed by the fake toolkit."""
    limiter.enabled = False
    app.router.lifespan_context = _patch_lifespan(settings, toolkit=toolkit)
    with TestClient(app, follow_redirects=False, raise_server_exceptions=True) as client:
        yield client


@pytest.fixture
def local_app_client(settings: Settings, account_store: AccountStore) -> Generator[TestClient, None, None]:
    """TestClient over the real app with LocalAuth backed by an in-memory store."""
    limiter.enabled = False
    local_settings = settings.model_copy(update={"auth_backend": "local"})
    app.router.lifespan_context = _patch_lifespan(local_settings, store=account_store)
    with TestClient(app, follow_redirects=False, raise_server_exceptions=True) as client:
        yield client
