"""
auth/session.py -- Cookie-backed session manager (the AuthSession contract).

A session is a flat str -> str mapping that lives entirely in one signed
cookie. Nothing is stored server-side; every commit re-emits the whole
mapping as a Set-Cookie header, so a request never observes a partial write.

Cookie codec:
  JSON object -> itsdangerous URLSafeTimedSerializer (HMAC-SHA1 over the
  payload + timestamp, keyed by SECRET_KEY with a fixed salt). A cookie that
  fails signature verification, is older than SESSION_MAX_AGE, or does not
  decode to an object reads as an empty session -- never as an error.

Soft vs hard logout:
  destroy_auth_session() blanks the named keys and recommits, leaving a
  cookie whose values are "". invalidate_auth_session() deletes the cookie.
  Readers (auth.providers) treat blank values as absent, so both end in the
  anonymous state.

Layer rule: no imports from api/ or profiles/.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping
from dataclasses import asdict, is_dataclass
from typing import Any, Protocol

from fastapi import Request
from fastapi.responses import Response
from itsdangerous import BadSignature, URLSafeTimedSerializer

from auth.errors import SESSION_CREATE, SESSION_DESTROY
from auth.responses import error_response, redirect_response, success_response
from core.config import Settings

logger = logging.getLogger("authbridge.session")

SESSION_SALT = "authbridge-session-v1"


class Session:
    """In-memory view of one request's session.

    Values are always strings. Non-string values are JSON-encoded on set();
    load() reverses that for callers that stored structured data. Which keys
    were encoded is not recorded, so read string values with get().
    """

    def __init__(self, data: Mapping[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(data or {})

    def get(self, key: str, default: str | None = None) -> str | None:
        return self._data.get(key, default)

    def load(self, key: str, default: Any = None) -> Any:
        """Return the JSON-decoded value for key.

        Only meaningful for keys written from a non-string value. A stored
        string that is itself valid JSON ("123", "true", "null") is decoded
        too; a string that is not valid JSON comes back unchanged.
        """
        raw = self._data.get(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except ValueError:
            return raw

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value if isinstance(value, str) else json.dumps(value)

    def has(self, key: str) -> bool:
        return key in self._data

    def unset(self, key: str) -> None:
        self._data.pop(key, None)

    @property
    def data(self) -> dict[str, str]:
        return dict(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"Session(keys={sorted(self._data)!r})"


class AuthSession(Protocol):
    """Capability interface for session managers used by Auth bindings."""

    async def get_auth_session(self, request: Request) -> Session: ...

    async def create_auth_session(self, data: Any, redirect_to: str | None = None) -> Response: ...

    async def destroy_auth_session(
        self, request: Request, keys: str | Iterable[str], redirect_to: str | None = None
    ) -> Response: ...


class CookieSessionManager:
    """AuthSession over a signed, self-contained cookie.

    Usage:
        sessions = CookieSessionManager(get_settings())
        return await sessions.create_auth_session({"id": uid, "role": "admin"}, redirect_to="/")
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._serializer = URLSafeTimedSerializer(secret_key=settings.secret_key, salt=SESSION_SALT)

    @property
    def cookie_name(self) -> str:
        return self._settings.session_cookie_name

    # ------------------------------------------------------------------
    # Codec
    # ------------------------------------------------------------------

    def encode(self, session: Session) -> str:
        raw = json.dumps(session.data, separators=(",", ":"), sort_keys=True)
        return self._serializer.dumps(raw)

    def decode(self, value: str | None) -> Session:
        if not value:
            return Session()
        try:
            raw = self._serializer.loads(value, max_age=self._settings.session_max_age)
            data = json.loads(raw)
        except (BadSignature, ValueError, TypeError):
            # BadTimeSignature / SignatureExpired are BadSignature subclasses
            logger.debug("Discarding unreadable session cookie")
            return Session()
        if not isinstance(data, dict):
            return Session()
        return Session({str(k): v for k, v in data.items() if isinstance(v, str)})

    async def commit_session(self, session: Session) -> str:
        """Serialize and sign the whole session. Raises on codec failure."""
        return self.encode(session)

    def _set_cookie(self, response: Response, value: str) -> Response:
        """Write the session cookie.

        httponly: JS cannot read the cookie.
        samesite="lax": not sent on cross-site POST.
        max_age: matches the signature max age so both expire together.
        """
        response.set_cookie(
            self.cookie_name,
            value=value,
            max_age=self._settings.session_max_age,
            path="/",
            httponly=True,
            samesite="lax",
            secure=self._settings.secure_cookies,
        )
        return response

    # ------------------------------------------------------------------
    # AuthSession contract
    # ------------------------------------------------------------------

    async def get_auth_session(self, request: Request) -> Session:
        """Return the session addressed by the request's cookie (empty if none)."""
        return self.decode(request.cookies.get(self.cookie_name))

    async def create_auth_session(self, data: Any, redirect_to: str | None = None) -> Response:
        """Write every field of data into a fresh session and commit it.

        data may be a mapping or a dataclass. None values are skipped so
        optional AuthUser fields do not land in the cookie as "null".
        Returns a redirect to redirect_to, or a 201 success envelope.
        Commit failures become a 500 session/create envelope.
        """
        try:
            fields = asdict(data) if is_dataclass(data) else dict(data)
            fields.pop("password", None)
            session = Session()
            for key, value in fields.items():
                if value is not None:
                    session.set(key, value)
            cookie = await self.commit_session(session)
        except Exception as exc:
            logger.warning("Could not create user session: %s", exc)
            return error_response(SESSION_CREATE, f"Could not create user session: {exc}", 500)

        if redirect_to:
            return self._set_cookie(redirect_response(redirect_to), cookie)
        return self._set_cookie(success_response(201), cookie)

    async def destroy_auth_session(
        self, request: Request, keys: str | Iterable[str], redirect_to: str | None = None
    ) -> Response:
        """Blank the named key(s) in the current session and recommit.

        Blanking is idempotent: destroying the same keys twice leaves the same
        cookie contents. Returns a redirect or a 204, both carrying Set-Cookie.
        """
        session = await self.get_auth_session(request)
        for key in [keys] if isinstance(keys, str) else keys:
            session.set(key, "")
        try:
            cookie = await self.commit_session(session)
        except Exception as exc:
            logger.warning("Could not destroy user session: %s", exc)
            return error_response(SESSION_DESTROY, f"Could not destroy user session: {exc}", 500)

        if redirect_to:
            return self._set_cookie(redirect_response(redirect_to), cookie)
        return self._set_cookie(success_response(204), cookie)

    async def invalidate_auth_session(self, request: Request, redirect_to: str | None = None) -> Response:
        """Drop the session cookie entirely (hard logout)."""
        response = redirect_response(redirect_to) if redirect_to else success_response(204)
        response.delete_cookie(
            self.cookie_name,
            path="/",
            httponly=True,
            samesite="lax",
            secure=self._settings.secure_cookies,
        )
        return response
