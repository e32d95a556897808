"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, near-zero logic). Stores, clients
and providers do the work; these classes only own the shape.

Layer rule: no imports from api/ or profiles/.
"""

from __future__ import annotations

from dataclasses import dataclass

# Keys a provider binding writes into the session after login and blanks on
# logout. Order is the order they are written.
SESSION_KEYS: tuple[str, ...] = ("id", "username", "role", "token")


@dataclass
class AuthUser:
    """The user shape every Auth binding accepts and returns.

    username is the unique login identifier (typically an email).

    password is only ever set on account-creation and login payloads. It is
    never written into a session and never echoed in a response -- use
    public_dict() when serializing.

    role is the coarse authorization label require_user() compares against.
    None means "authenticated, no specific role".
    """

    id: str | None = None
    username: str | None = None
    password: str | None = None
    name: str | None = None
    role: str | None = None

    def public_dict(self) -> dict:
        """Return the non-empty fields, password excluded."""
        fields = {"id": self.id, "username": self.username, "name": self.name, "role": self.role}
        return {k: v for k, v in fields.items() if v}


@dataclass
class IdentityRecord:
    """What the identity provider hands back after sign-up or sign-in.

    Owned by the provider. Bindings extract fields from it for the response
    payload; it is never persisted beyond the caller's session write.
    """

    uid: str
    email: str
    id_token: str
    refresh_token: str | None = None
    expires_in: int | None = None
    display_name: str | None = None

    def user_payload(self) -> dict:
        payload = {"uid": self.uid, "email": self.email}
        if self.display_name:
            payload["displayName"] = self.display_name
        return payload


@dataclass
class Account:
    """A local credential record for the database-credential binding.

    hashed_password is a bcrypt hash; the plaintext is never stored.
    """

    username: str
    role: str
    id: int | None = None
    hashed_password: str | None = None
    name: str | None = None
    created_at: str | None = None
    is_active: bool = True
    last_login: str | None = None
