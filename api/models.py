"""
API request and response models for authbridge REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Credential fields default to "" rather than being required: blank input is
reported by the routes as a validation/* envelope with a specific code, not
as a generic request-validation failure.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login."""

    email: str = Field(default="", max_length=255)
    password: str = Field(default="", max_length=255)
    next: Optional[str] = Field(default=None, max_length=2048, description="Relative path to redirect to.")


class SignupRequest(LoginRequest):
    """Request body for POST /api/v1/auth/signup."""

    confirm: str = Field(default="", max_length=255)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    backend: str
