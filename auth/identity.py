"""
auth/identity.py -- Async client for a token-issuing identity provider.

Speaks the Identity Toolkit REST protocol (Firebase Auth, and the local Auth
emulator when IDENTITY_EMULATOR_HOST is set):

  POST {base}/accounts:signUp?key=...             register email/password -> uid + idToken
  POST {base}/accounts:signInWithPassword?key=... verify email/password   -> uid + idToken
  POST {base}/accounts:createAuthUri?key=...      existence query         -> {"registered": bool}

Failure handling:
  Provider errors arrive as HTTP 400 with {"error": {"message": "EMAIL_EXISTS"}}.
  Some messages carry a suffix ("WEAK_PASSWORD : Password should be at least
  6 characters"), so only the leading token is matched. Known messages map to
  auth/* codes via _ERROR_CODES; anything else -- and every transport fault --
  raises IdentityError with code=None, which the bindings report as
  login/general or signup/general.

The client never retries. The shared httpx.AsyncClient is owned by whoever
constructed this object (the app lifespan), unless none was passed in.

Layer rule: no imports from api/ or profiles/.
"""

from __future__ import annotations

import logging

import httpx

from auth import errors
from auth.errors import IdentityError
from auth.models import IdentityRecord
from core.config import Settings

logger = logging.getLogger("authbridge.identity")

# provider message -> (code, status)
_ERROR_CODES: dict[str, tuple[str, int]] = {
    "EMAIL_EXISTS": (errors.EMAIL_EXISTS, 400),
    "WEAK_PASSWORD": (errors.WEAK_PASSWORD, 400),
    "INVALID_EMAIL": (errors.INVALID_EMAIL, 400),
    "MISSING_EMAIL": (errors.INVALID_EMAIL, 400),
    "MISSING_PASSWORD": (errors.INVALID_PASSWORD, 400),
    "EMAIL_NOT_FOUND": (errors.INVALID_CREDENTIALS, 401),
    "INVALID_PASSWORD": (errors.INVALID_CREDENTIALS, 401),
    "INVALID_LOGIN_CREDENTIALS": (errors.INVALID_CREDENTIALS, 401),
    "USER_DISABLED": (errors.USER_DISABLED, 403),
    "TOO_MANY_ATTEMPTS_TRY_LATER": (errors.TOO_MANY_REQUESTS, 429),
}

_MESSAGES: dict[str, str] = {
    errors.EMAIL_EXISTS: "An account with that email already exists.",
    errors.WEAK_PASSWORD: "The password is too weak.",
    errors.INVALID_EMAIL: "The email address is invalid.",
    errors.INVALID_PASSWORD: "A password is required.",
    errors.INVALID_CREDENTIALS: "Invalid username or password.",
    errors.USER_DISABLED: "This account has been disabled.",
    errors.TOO_MANY_REQUESTS: "Too many attempts. Try again later.",
}

# createAuthUri requires a continue URI even though nothing is ever redirected to it.
_CONTINUE_URI = "http://localhost/"


def _provider_error(response: httpx.Response) -> IdentityError:
    """Translate a non-2xx Identity Toolkit response into an IdentityError."""
    try:
        message = response.json()["error"]["message"]
    except (ValueError, KeyError, TypeError):
        message = ""
    token = str(message).split(":")[0].strip()
    if token in _ERROR_CODES:
        code, status = _ERROR_CODES[token]
        return IdentityError(_MESSAGES[code], code=code, status_code=status)
    logger.warning("Unclassified identity provider error: status=%d message=%r", response.status_code, message)
    return IdentityError(f"Identity provider error ({response.status_code}).")


class IdentityClient:
    """Narrow async surface over the identity provider.

    Usage:
        client = IdentityClient(settings)
        record = await client.sign_in("test@example.com", "test123")
        await client.aclose()
    """

    def __init__(self, settings: Settings, http: httpx.AsyncClient | None = None) -> None:
        self._base_url = settings.identity_endpoint
        self._api_key = settings.identity_api_key
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(timeout=settings.identity_timeout)

    async def _post(self, operation: str, body: dict) -> dict:
        url = f"{self._base_url}/accounts:{operation}"
        try:
            response = await self._http.post(url, params={"key": self._api_key}, json=body)
        except httpx.HTTPError as exc:
            logger.error("Unable to reach identity provider for %s: %s", operation, exc)
            raise IdentityError("Unable to contact identity provider.") from exc
        if response.status_code >= 400:
            raise _provider_error(response)
        try:
            data = response.json()
        except ValueError as exc:
            raise IdentityError("Malformed identity provider response.") from exc
        if not isinstance(data, dict):
            logger.warning("Identity provider answered %s with a non-object body", operation)
            raise IdentityError("Malformed identity provider response.")
        return data

    @staticmethod
    def _record(data: dict, email: str) -> IdentityRecord:
        try:
            return IdentityRecord(
                uid=data["localId"],
                email=data.get("email") or email,
                id_token=data["idToken"],
                refresh_token=data.get("refreshToken"),
                expires_in=int(data["expiresIn"]) if data.get("expiresIn") else None,
                display_name=data.get("displayName") or None,
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise IdentityError("Incomplete identity provider response.") from exc

    async def sign_up(self, email: str, password: str) -> IdentityRecord:
        """Register a new email/password account and return its identity."""
        data = await self._post("signUp", {"email": email, "password": password, "returnSecureToken": True})
        logger.info("Registered identity uid=%s", data.get("localId"))
        return self._record(data, email)

    async def sign_in(self, email: str, password: str) -> IdentityRecord:
        """Verify email/password and return the identity with a fresh id token."""
        data = await self._post(
            "signInWithPassword", {"email": email, "password": password, "returnSecureToken": True}
        )
        return self._record(data, email)

    async def is_registered(self, email: str) -> bool:
        """Return True if an account exists for email."""
        data = await self._post("createAuthUri", {"identifier": email, "continueUri": _CONTINUE_URI})
        return bool(data.get("registered", False))

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()
