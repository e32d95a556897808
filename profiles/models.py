"""
profiles/models.py -- Domain dataclasses for the profile store.

Layer rule: no imports from api/ or auth/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class UserProfile:
    """A user's application profile, keyed by the identity backend's uid.

    role is what the login route copies into the session for require_user().
    preferences is free-form (e.g. {"theme": "dark"}).
    """

    id: str
    username: str
    role: str = "guest"
    preferences: dict[str, Any] = field(default_factory=dict)


@dataclass
class Condition:
    """A single where-clause: field <operator> value."""

    field: str
    operator: str  # "==", "!=", "<", "<=", ">", ">=", "in"
    value: Any


@dataclass
class QueryOptions:
    """Modifiers for a DBInterface call. collection names the set of documents."""

    collection: str
    where: Condition | None = None
