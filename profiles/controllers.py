"""
profiles/controllers.py -- Generic controllers over a DBInterface.

AbstractController[Model] carries the collection name, the database handle,
and the CRUD plumbing every entity shares. A concrete controller only names
its model type and collection, and adds entity-specific lookups.

Layer rule: no imports from api/ or auth/.
"""

from __future__ import annotations

from dataclasses import fields
from typing import Any, ClassVar, Generic, TypeVar

from profiles.models import Condition, QueryOptions, UserProfile
from profiles.store import DBInterface

Model = TypeVar("Model")


class AbstractController(Generic[Model]):
    """Base for all controllers. Subclasses set model_type."""

    model_type: ClassVar[type]

    def __init__(self, collection: str, db: DBInterface) -> None:
        self.collection = collection
        self.db = db

    def _options(self, where: Condition | None = None) -> QueryOptions:
        return QueryOptions(collection=self.collection, where=where)

    def _to_model(self, doc: dict[str, Any]) -> Model:
        # Ignore keys the dataclass does not declare (documents may carry extras).
        known = {f.name for f in fields(self.model_type)}
        return self.model_type(**{k: v for k, v in doc.items() if k in known})

    def create(self, model: Model) -> Model:
        return self._to_model(self.db.execute_insert(model, self._options()).rows()[0])

    def get(self, model_id: str) -> Model | None:
        rows = self.db.execute_query(self._options(Condition("id", "==", model_id))).rows()
        return self._to_model(rows[0]) if rows else None

    def find_all(self, where: Condition | None = None) -> list[Model]:
        return [self._to_model(d) for d in self.db.execute_query(self._options(where)).rows()]

    def update(self, model: Model) -> bool:
        return self.db.execute_update(model, self._options()).count() > 0

    def delete(self, model_id: str) -> bool:
        return self.db.execute_delete({"id": model_id}, self._options()).count() > 0


class UserController(AbstractController[UserProfile]):
    """Profiles in the "users" collection, keyed by identity uid."""

    model_type = UserProfile

    def __init__(self, db: DBInterface) -> None:
        super().__init__("users", db)

    def find_by_username(self, username: str) -> UserProfile | None:
        matches = self.find_all(Condition("username", "==", username))
        return matches[0] if matches else None
