"""
auth/responses.py -- JSON envelopes and redirects returned by every auth/session operation.

Every operation in auth/ answers with one of three shapes:

  success envelope   {"status": "success", ...payload}            2xx
  error envelope     {"status": "error" | "validationFailure",
                      "errorCode": str, "errorMessage": str}       non-2xx
  redirect           302 with Location                             (browser flows)

Route handlers relay these unchanged, so a client can parse any auth
response without knowing which provider produced it.

Layer rule: no imports from api/ or profiles/.
"""

from __future__ import annotations

from typing import Literal

from fastapi.responses import JSONResponse, RedirectResponse, Response
from pydantic import BaseModel


class ErrorEnvelope(BaseModel):
    """Wire shape of every error body. Field names match the JS clients."""

    status: Literal["error", "validationFailure"] = "error"
    errorCode: str
    errorMessage: str


def success_response(status_code: int = 200, headers: dict | None = None, **payload) -> Response:
    """Return a success envelope with payload fields merged in at the top level.

    A 204 carries no body (HTTP forbids content on 204), only its headers.
    """
    if status_code == 204:
        return Response(status_code=204, headers=headers)
    return JSONResponse(status_code=status_code, content={"status": "success", **payload}, headers=headers)


def error_response(code: str, message: str, status_code: int) -> JSONResponse:
    """Return an error envelope. validation/* codes are reported as validationFailure."""
    status = "validationFailure" if code.startswith("validation/") else "error"
    envelope = ErrorEnvelope(status=status, errorCode=code, errorMessage=message)
    resp = JSONResponse(status_code=status_code, content=envelope.model_dump())
    resp.headers["Cache-Control"] = "no-store"
    return resp


def redirect_response(url: str, headers: dict | None = None) -> RedirectResponse:
    return RedirectResponse(url, status_code=302, headers=headers)
