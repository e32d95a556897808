"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for authbridge happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() at the
application edge and pass the Settings object into component constructors.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. Only the
      app assembly (api/main.py) and the CLI call it; the session manager,
      identity client and providers receive Settings explicitly so tests can
      build them with any configuration.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY). Type coercion and validation are built in.

  @model_validator(mode="after"): Cross-field validation once all fields are
      resolved. Dev mode generates a secret key with a warning, production mode
      refuses to start without one.

Security notes:
  SECRET_KEY shorter than 32 chars is rejected outright. Both the session
  cookie signature and the local JWT id tokens rely on its entropy.

Layer rule: core/ is the kernel. This module may not import from api/,
auth/, or profiles/.
"""

import logging
import secrets
from functools import lru_cache
from typing import Literal

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("authbridge.config")

IDENTITY_TOOLKIT_URL = "https://identitytoolkit.googleapis.com/v1"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev key or raises, so callers never see "".
    secret_key: str = ""

    # ------------------------------------------------------------------
    # Session cookie
    # ------------------------------------------------------------------

    secure_cookies: bool = False
    session_cookie_name: str = "__session"
    session_max_age: int = 3600

    # ------------------------------------------------------------------
    # Identity backend
    # ------------------------------------------------------------------

    # "identity" -> token-issuing identity provider over HTTP
    # "local"    -> SQL credential store (bcrypt + JWT)
    auth_backend: Literal["identity", "local"] = "identity"

    identity_api_key: str = ""
    identity_base_url: str = IDENTITY_TOOLKIT_URL
    # host:port of a local Auth emulator, e.g. "localhost:9099"
    identity_emulator_host: str = ""
    identity_timeout: float = 10.0

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    database_url: str = "sqlite:///authbridge.db"

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    default_role: str = "guest"
    login_rate_limit: str = "10/minute"

    @property
    def identity_endpoint(self) -> str:
        """Base URL for Identity Toolkit calls, honouring the emulator host."""
        if self.identity_emulator_host:
            return f"http://{self.identity_emulator_host}/identitytoolkit.googleapis.com/v1"
        return self.identity_base_url.rstrip("/")

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce the SECRET_KEY policy.

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Sessions will not survive restart -- acceptable for local dev.

        Production mode (DEBUG=false or not set): refuse to start if
            SECRET_KEY is missing.

        Both modes: reject keys shorter than 32 characters.
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning("WARNING: Using auto-generated SECRET_KEY. Sessions will not persist across restarts.")
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        return self

    @model_validator(mode="after")
    def validate_identity_backend(self) -> "Settings":
        """Require an API key for the hosted identity provider outside dev mode.

        The emulator accepts any key, so an emulator host or DEBUG=true lifts
        the requirement.
        """
        if self.auth_backend == "identity" and not self.identity_api_key:
            if self.identity_emulator_host or self.debug:
                self.identity_api_key = "emulator"
            else:
                raise ValueError("IDENTITY_API_KEY is required when AUTH_BACKEND=identity.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
