"""
profiles/store.py -- Document-store interface and its SQLAlchemy implementation.

DBInterface is the contract controllers program against: four operations,
each taking QueryOptions and answering with a DBResult. Any document
database can sit behind it.

SQLDocumentStore keeps every collection in one table:

  documents(collection, id, body, created_at, updated_at)   PK (collection, id)

body is the JSON-serialized document. Models are dicts or dataclasses and
must carry an "id"; one is generated (uuid4 hex) on insert when missing.
Lookups by id (get_by_id, or an id == where-clause) go through the primary
key. Other where-clauses are evaluated in Python against the decoded
documents of the collection.

Security: all queries use bound parameters. No f-strings in SQL.

Layer rule: no imports from api/ or auth/.
"""

from __future__ import annotations

import json
import operator
import uuid
from dataclasses import asdict, is_dataclass
from datetime import datetime, timezone
from typing import Any, Protocol

from sqlalchemy import Column, MetaData, PrimaryKeyConstraint, String, Table, Text, create_engine
from sqlalchemy.engine import Engine

from profiles.models import Condition, QueryOptions

# ---------------------------------------------------------------------------
# Result + interface
# ---------------------------------------------------------------------------


class DBResult:
    """Records returned by any DBInterface call."""

    def __init__(self, records: list[dict] | None = None) -> None:
        self._records = list(records or [])

    def count(self) -> int:
        return len(self._records)

    def rows(self) -> list[dict]:
        return list(self._records)


class DBInterface(Protocol):
    """Required interface for document storage in the application."""

    def execute_query(self, options: QueryOptions) -> DBResult: ...

    def execute_insert(self, model: Any, options: QueryOptions) -> DBResult: ...

    def execute_update(self, model: Any, options: QueryOptions) -> DBResult: ...

    def execute_delete(self, model: Any, options: QueryOptions) -> DBResult: ...


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_documents = Table(
    "documents",
    _metadata,
    Column("collection", String(100), nullable=False),
    Column("id", String(128), nullable=False),
    Column("body", Text, nullable=False),  # JSON object
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    PrimaryKeyConstraint("collection", "id"),
)

_OPERATORS = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "in": lambda left, right: left in right,
}


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _as_document(model: Any) -> dict:
    if is_dataclass(model):
        return asdict(model)
    return dict(model)


def _matches(doc: dict, where: Condition) -> bool:
    try:
        compare = _OPERATORS[where.operator]
    except KeyError:
        raise ValueError(f"Unsupported where operator: {where.operator!r}") from None
    if where.field not in doc:
        return False
    try:
        return bool(compare(doc[where.field], where.value))
    except TypeError:
        return False


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class SQLDocumentStore:
    """DBInterface over a single SQLAlchemy table.

    Usage:
        db = SQLDocumentStore("sqlite:///authbridge.db")
        db.execute_insert({"id": "u1", "username": "a@example.com"}, QueryOptions("users"))
        db.execute_query(QueryOptions("users")).rows()
        db.close()
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        _metadata.create_all(self.engine)

    def get_by_id(self, model_id: str, options: QueryOptions) -> DBResult:
        """Fetch one document by primary key. Empty result when the id is unknown."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _documents.select().where(
                    (_documents.c.collection == options.collection) & (_documents.c.id == str(model_id))
                )
            ).fetchone()
        return DBResult([json.loads(row.body)] if row is not None else [])

    def execute_query(self, options: QueryOptions) -> DBResult:
        """Return the documents in options.collection matching options.where.

        An id equality condition is answered through the primary key;
        any other condition is evaluated against the decoded documents.
        """
        where = options.where
        if where is not None and where.field == "id" and where.operator == "==":
            return self.get_by_id(where.value, options)
        with self.engine.connect() as conn:
            rows = conn.execute(
                _documents.select()
                .where(_documents.c.collection == options.collection)
                .order_by(_documents.c.created_at, _documents.c.id)
            ).fetchall()
        docs = [json.loads(row.body) for row in rows]
        if options.where is not None:
            docs = [d for d in docs if _matches(d, options.where)]
        return DBResult(docs)

    def execute_insert(self, model: Any, options: QueryOptions) -> DBResult:
        """Insert one document or a list of documents.

        Raises sqlalchemy.exc.IntegrityError if an id already exists in the collection.
        """
        models = model if isinstance(model, list) else [model]
        docs = []
        now = _now_iso()
        with self.engine.connect() as conn:
            for item in models:
                doc = _as_document(item)
                doc["id"] = str(doc.get("id") or uuid.uuid4().hex)
                conn.execute(
                    _documents.insert().values(
                        collection=options.collection,
                        id=doc["id"],
                        body=json.dumps(doc),
                        created_at=now,
                        updated_at=now,
                    )
                )
                docs.append(doc)
            conn.commit()
        return DBResult(docs)

    def execute_update(self, model: Any, options: QueryOptions) -> DBResult:
        """Replace a document by id. Empty result when the id is unknown."""
        doc = _as_document(model)
        with self.engine.connect() as conn:
            result = conn.execute(
                _documents.update()
                .where((_documents.c.collection == options.collection) & (_documents.c.id == str(doc["id"])))
                .values(body=json.dumps(doc), updated_at=_now_iso())
            )
            conn.commit()
        return DBResult([doc] if result.rowcount > 0 else [])

    def execute_delete(self, model: Any, options: QueryOptions) -> DBResult:
        """Delete a document by id. Returns the deleted document, or nothing."""
        doc = _as_document(model)
        with self.engine.connect() as conn:
            result = conn.execute(
                _documents.delete().where(
                    (_documents.c.collection == options.collection) & (_documents.c.id == str(doc["id"]))
                )
            )
            conn.commit()
        return DBResult([doc] if result.rowcount > 0 else [])

    def close(self) -> None:
        self.engine.dispose()
