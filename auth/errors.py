"""
auth/errors.py -- Error taxonomy shared by the session manager and provider bindings.

Codes (kind -> typical status):
  validation/*               400  malformed or missing input, caught before any backend call
  auth/invalid-credentials   401  backend rejected username/password
  auth/unauthenticated       401  require_user() found no session (or redirect)
  auth/forbidden             403  require_user() found a session with the wrong role (or redirect)
  session/create|destroy     500  session commit failed
  login/general              500  unclassified backend/network fault during login
  signup/general             500  unclassified backend/network fault during account creation

Operations convert failures to an envelope at their own boundary. The one
exception is the require_user() guard: it has nothing sensible to return on
failure, so it raises an AuthError that already knows its response. The app
registers a single exception handler that returns exc.to_response().

Layer rule: no imports from api/ or profiles/.
"""

from __future__ import annotations

from fastapi.responses import Response

from auth.responses import error_response, redirect_response

VALIDATION_EMAIL = "validation/invalid-email"
VALIDATION_PASSWORD = "validation/invalid-password"
VALIDATION_REQUEST = "validation/request"

INVALID_CREDENTIALS = "auth/invalid-credentials"
EMAIL_EXISTS = "auth/email-already-exists"
WEAK_PASSWORD = "auth/weak-password"
INVALID_EMAIL = "auth/invalid-email"
INVALID_PASSWORD = "auth/invalid-password"
USER_DISABLED = "auth/user-disabled"
TOO_MANY_REQUESTS = "auth/too-many-requests"
UNAUTHENTICATED = "auth/unauthenticated"
FORBIDDEN = "auth/forbidden"

SESSION_CREATE = "session/create"
SESSION_DESTROY = "session/destroy"

LOGIN_GENERAL = "login/general"
SIGNUP_GENERAL = "signup/general"


class AuthError(Exception):
    """A guard failure that carries its own HTTP rendering.

    redirect_to set -> to_response() is a 302 to that location (browser flow).
    redirect_to None -> to_response() is an error envelope (API flow).
    """

    code: str = UNAUTHENTICATED
    status_code: int = 401
    default_message: str = "Authentication required."

    def __init__(self, message: str | None = None, redirect_to: str | None = None) -> None:
        self.message = message or self.default_message
        self.redirect_to = redirect_to
        super().__init__(self.message)

    def to_response(self) -> Response:
        if self.redirect_to:
            return redirect_response(self.redirect_to)
        return error_response(self.code, self.message, self.status_code)


class Unauthenticated(AuthError):
    code = UNAUTHENTICATED
    status_code = 401
    default_message = "Authentication required."


class Forbidden(AuthError):
    code = FORBIDDEN
    status_code = 403
    default_message = "You do not have access to this resource."


class IdentityError(Exception):
    """A failure reported by (or while reaching) an identity backend.

    code is None when the failure could not be classified -- network faults,
    unexpected provider messages. Bindings substitute login/general or
    signup/general in that case.
    """

    def __init__(self, message: str, code: str | None = None, status_code: int = 500) -> None:
        self.message = message
        self.code = code
        self.status_code = status_code
        super().__init__(message)

    def to_response(self, fallback_code: str) -> Response:
        if self.code is None:
            return error_response(fallback_code, self.message, 500)
        return error_response(self.code, self.message, self.status_code)
