"""
auth/tokens.py -- Password hashing and id-token utilities for the local binding.

Security design decisions:
  Passwords: bcrypt directly (no passlib wrapper). Bcrypt's cost factor makes
       brute-force expensive. The _DUMMY_HASH constant enables timing
       equalization in authenticate_account() so response time does not
       reveal whether a username exists.

  id tokens: python-jose with HS256. LocalAuth hands one out on login so its
       payload has the same shape as the identity provider's (idToken + user).
       Tokens carry uid, username, role and expiry. decode_id_token() returns
       None on any failure.

  Keys: every function that signs takes the Settings object explicitly.
       Nothing here reads configuration at import time.

Layer rule: no imports from api/ or profiles/.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import bcrypt
from jose import JWTError, jwt

if TYPE_CHECKING:
    from auth.models import Account
    from auth.store import AccountStore
    from core.config import Settings

logger = logging.getLogger("authbridge.auth")

_ALGORITHM = "HS256"
_ISSUER = "authbridge"

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt only looks at the first 72 bytes; longer inputs are rejected by
    bcrypt 4.x, so they are truncated here first.
    """
    return bcrypt.hashpw(plain.encode("utf-8")[:72], bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8")[:72], hashed.encode("utf-8"))
    except ValueError:
        return False


# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones.
_DUMMY_HASH: str = hash_password("authbridge_timing_dummy")


# ---------------------------------------------------------------------------
# id tokens
# ---------------------------------------------------------------------------


def create_id_token(settings: Settings, account: Account) -> str:
    """Encode a signed JWT for account, valid for SESSION_MAX_AGE seconds."""
    expire = datetime.now(timezone.utc) + timedelta(seconds=settings.session_max_age)
    payload = {
        "iss": _ISSUER,
        "sub": str(account.id),
        "username": account.username,
        "role": account.role,
        "exp": expire,
    }
    return jwt.encode(payload, settings.secret_key, algorithm=_ALGORITHM)


def decode_id_token(settings: Settings, token: str) -> dict | None:
    """Decode and verify a JWT. Returns the payload dict or None on any failure."""
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[_ALGORITHM], issuer=_ISSUER)
    except JWTError:
        return None
    if "sub" not in payload or "role" not in payload:
        return None
    return payload


# ---------------------------------------------------------------------------
# Account authentication (constant-time)
# ---------------------------------------------------------------------------


def authenticate_account(store: AccountStore, username: str, password: str) -> Account | None:
    """Authenticate a username/password login with timing equalization.

    Always runs bcrypt whether or not the account exists:
    - Unknown username: bcrypt runs against _DUMMY_HASH
    - Wrong password: bcrypt runs against the real hash

    Returns the Account on success, None on any failure.
    """
    account = store.get_by_username(username)
    if account is None or account.hashed_password is None:
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, account.hashed_password):
        return None
    if not account.is_active:
        logger.info("Rejected login for inactive account id=%s", account.id)
        return None
    return account
