"""Document store over the portal's SQLite database.

Documents are JSON objects addressed by ``(collection, id)``.  Queries are
translated into SQL over ``json_extract`` so that filtering, ordering and
cursor pagination happen inside SQLite rather than in Python.
"""
from __future__ import annotations

import json
import logging
import re
import sqlite3
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .database import Database
from .models import serialize_timestamp

logger = logging.getLogger("marketplace.portal.store")

_FIELD_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)*$")
_COMPARISON_OPERATORS = {"==": "=", "!=": "!=", "<": "<", "<=": "<=", ">": ">", ">=": ">="}
_OPERATORS = set(_COMPARISON_OPERATORS) | {"in", "array-contains"}


class StoreError(Exception):
    """Raised when the document store cannot complete a request."""


class DocumentNotFound(StoreError):
    def __init__(self, collection: str, doc_id: str) -> None:
        super().__init__(f"Document {collection}/{doc_id} does not exist")
        self.collection = collection
        self.doc_id = doc_id


@dataclass(frozen=True)
class Document:
    collection: str
    id: str
    data: Dict[str, Any]


@dataclass(frozen=True)
class FieldFilter:
    field: str
    op: str
    value: Any


@dataclass(frozen=True)
class Query:
    """Immutable query description; builder methods return new instances."""

    collection: str
    filters: Tuple[FieldFilter, ...] = ()
    order_field: Optional[str] = None
    descending: bool = False
    limit: Optional[int] = None
    start_after: Optional[str] = None

    def where(self, field_path: str, op: str, value: Any) -> "Query":
        return replace(self, filters=self.filters + (FieldFilter(field_path, op, value),))

    def order_by(self, field_path: str, *, descending: bool = False) -> "Query":
        return replace(self, order_field=field_path, descending=descending)

    def limit_to(self, count: int) -> "Query":
        return replace(self, limit=count)

    def after(self, doc_id: Optional[str]) -> "Query":
        return replace(self, start_after=doc_id)


def _json_path(field_path: str) -> str:
    if not _FIELD_PATTERN.match(field_path):
        raise ValueError(f"Invalid field path: {field_path!r}")
    return f"$.{field_path}"


def _json_default(value: object) -> object:
    if isinstance(value, datetime):
        return serialize_timestamp(value)
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _encode(data: Mapping[str, Any]) -> str:
    return json.dumps(dict(data), default=_json_default, separators=(",", ":"))


def _bind(value: Any) -> Any:
    if isinstance(value, datetime):
        return serialize_timestamp(value)
    return value


def _filter_clause(flt: FieldFilter) -> Tuple[str, List[Any]]:
    if flt.op not in _OPERATORS:
        raise ValueError(f"Unsupported query operator: {flt.op!r}")
    path = _json_path(flt.field)
    if flt.op == "array-contains":
        return (
            "EXISTS (SELECT 1 FROM json_each(documents.data, ?) AS item WHERE item.value = ?)",
            [path, _bind(flt.value)],
        )
    if flt.op == "in":
        values = [_bind(item) for item in flt.value]
        if not values:
            return "0", []
        placeholders = ", ".join("?" for _ in values)
        return f"json_extract(data, ?) IN ({placeholders})", [path, *values]
    return f"json_extract(data, ?) {_COMPARISON_OPERATORS[flt.op]} ?", [path, _bind(flt.value)]


def _where_sql(collection: str, filters: Iterable[FieldFilter]) -> Tuple[str, List[Any]]:
    clauses = ["collection = ?"]
    params: List[Any] = [collection]
    for flt in filters:
        clause, values = _filter_clause(flt)
        clauses.append(clause)
        params.extend(values)
    return " AND ".join(clauses), params


def _new_document_id() -> str:
    return uuid.uuid4().hex[:20]


class DocumentStore:
    """CRUD and query access to JSON documents grouped in collections."""

    def __init__(self, database: Database) -> None:
        self._database = database

    @property
    def database(self) -> Database:
        return self._database

    # ------------------------------------------------------------------
    # Single document access
    # ------------------------------------------------------------------
    def get(self, collection: str, doc_id: str) -> Optional[Document]:
        try:
            with self._database.connect() as conn:
                row = conn.execute(
                    "SELECT id, data FROM documents WHERE collection = ? AND id = ?",
                    (collection, doc_id),
                ).fetchone()
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to read {collection}/{doc_id}: {exc}") from exc
        if row is None:
            return None
        return self._row_to_document(collection, row)

    def add(self, collection: str, data: Mapping[str, Any]) -> Document:
        doc_id = _new_document_id()
        self.set(collection, doc_id, data)
        return Document(collection=collection, id=doc_id, data=json.loads(_encode(data)))

    def set(self, collection: str, doc_id: str, data: Mapping[str, Any], *, merge: bool = False) -> None:
        try:
            with self._database.connect() as conn:
                self._set(conn, collection, doc_id, data, merge=merge)
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to write {collection}/{doc_id}: {exc}") from exc

    def update(self, collection: str, doc_id: str, fields: Mapping[str, Any]) -> None:
        try:
            with self._database.connect() as conn:
                self._update(conn, collection, doc_id, fields)
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to update {collection}/{doc_id}: {exc}") from exc

    def delete(self, collection: str, doc_id: str) -> None:
        try:
            with self._database.connect() as conn:
                conn.execute(
                    "DELETE FROM documents WHERE collection = ? AND id = ?",
                    (collection, doc_id),
                )
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to delete {collection}/{doc_id}: {exc}") from exc

    def batch(self) -> "WriteBatch":
        return WriteBatch(self)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def query(self, query: Query) -> List[Document]:
        where, params = _where_sql(query.collection, query.filters)
        order_sql = "id ASC"

        try:
            with self._database.connect() as conn:
                if query.order_field is not None:
                    path = _json_path(query.order_field)
                    direction = "DESC" if query.descending else "ASC"
                    where += " AND json_extract(data, ?) IS NOT NULL"
                    params.append(path)
                    order_sql = f"json_extract(data, ?) {direction}, id {direction}"
                    order_params: List[Any] = [path]
                else:
                    order_params = []

                if query.start_after is not None:
                    clause, values = self._cursor_clause(conn, query)
                    where += f" AND {clause}"
                    params.extend(values)

                sql = f"SELECT id, data FROM documents WHERE {where} ORDER BY {order_sql}"
                params.extend(order_params)
                if query.limit is not None:
                    sql += " LIMIT ?"
                    params.append(int(query.limit))
                rows = conn.execute(sql, params).fetchall()
        except sqlite3.Error as exc:
            raise StoreError(f"Query on {query.collection} failed: {exc}") from exc

        return [self._row_to_document(query.collection, row) for row in rows]

    def count(self, collection: str, filters: Sequence[FieldFilter] = ()) -> int:
        where, params = _where_sql(collection, filters)
        try:
            with self._database.connect() as conn:
                row = conn.execute(f"SELECT COUNT(*) FROM documents WHERE {where}", params).fetchone()
        except sqlite3.Error as exc:
            raise StoreError(f"Count on {collection} failed: {exc}") from exc
        return int(row[0])

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _cursor_clause(self, conn: sqlite3.Connection, query: Query) -> Tuple[str, List[Any]]:
        cursor_id = query.start_after
        assert cursor_id is not None
        if query.order_field is None:
            exists = conn.execute(
                "SELECT 1 FROM documents WHERE collection = ? AND id = ?",
                (query.collection, cursor_id),
            ).fetchone()
            if exists is None:
                raise DocumentNotFound(query.collection, cursor_id)
            return "id > ?", [cursor_id]

        path = _json_path(query.order_field)
        row = conn.execute(
            "SELECT json_extract(data, ?) FROM documents WHERE collection = ? AND id = ?",
            (path, query.collection, cursor_id),
        ).fetchone()
        if row is None:
            raise DocumentNotFound(query.collection, cursor_id)
        cursor_value = row[0]
        comparison = "<" if query.descending else ">"
        clause = (
            f"(json_extract(data, ?) {comparison} ? "
            f"OR (json_extract(data, ?) = ? AND id {comparison} ?))"
        )
        return clause, [path, cursor_value, path, cursor_value, cursor_id]

    def _load(self, conn: sqlite3.Connection, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        row = conn.execute(
            "SELECT data FROM documents WHERE collection = ? AND id = ?",
            (collection, doc_id),
        ).fetchone()
        if row is None:
            return None
        return json.loads(row["data"])

    def _set(
        self,
        conn: sqlite3.Connection,
        collection: str,
        doc_id: str,
        data: Mapping[str, Any],
        *,
        merge: bool,
    ) -> None:
        payload = dict(data)
        if merge:
            existing = self._load(conn, collection, doc_id) or {}
            existing.update(payload)
            payload = existing
        conn.execute(
            "INSERT INTO documents (collection, id, data) VALUES (?, ?, ?) "
            "ON CONFLICT(collection, id) DO UPDATE SET data = excluded.data",
            (collection, doc_id, _encode(payload)),
        )

    def _update(
        self,
        conn: sqlite3.Connection,
        collection: str,
        doc_id: str,
        fields: Mapping[str, Any],
    ) -> None:
        existing = self._load(conn, collection, doc_id)
        if existing is None:
            raise DocumentNotFound(collection, doc_id)
        existing.update(fields)
        conn.execute(
            "UPDATE documents SET data = ? WHERE collection = ? AND id = ?",
            (_encode(existing), collection, doc_id),
        )

    def _row_to_document(self, collection: str, row: sqlite3.Row) -> Document:
        return Document(collection=collection, id=str(row["id"]), data=json.loads(row["data"]))


@dataclass
class _BatchOperation:
    kind: str
    collection: str
    doc_id: str
    data: Dict[str, Any] = field(default_factory=dict)
    merge: bool = False


class WriteBatch:
    """Queue of writes applied in a single SQLite transaction."""

    def __init__(self, store: DocumentStore) -> None:
        self._store = store
        self._operations: List[_BatchOperation] = []
        self._committed = False

    def set(self, collection: str, doc_id: str, data: Mapping[str, Any], *, merge: bool = False) -> "WriteBatch":
        self._operations.append(_BatchOperation("set", collection, doc_id, dict(data), merge))
        return self

    def update(self, collection: str, doc_id: str, fields: Mapping[str, Any]) -> "WriteBatch":
        self._operations.append(_BatchOperation("update", collection, doc_id, dict(fields)))
        return self

    def delete(self, collection: str, doc_id: str) -> "WriteBatch":
        self._operations.append(_BatchOperation("delete", collection, doc_id))
        return self

    def __len__(self) -> int:
        return len(self._operations)

    def commit(self) -> None:
        if self._committed:
            raise StoreError("Write batch has already been committed")
        store = self._store
        try:
            with store.database.connect() as conn:
                for operation in self._operations:
                    if operation.kind == "set":
                        store._set(conn, operation.collection, operation.doc_id, operation.data, merge=operation.merge)
                    elif operation.kind == "update":
                        store._update(conn, operation.collection, operation.doc_id, operation.data)
                    else:
                        conn.execute(
                            "DELETE FROM documents WHERE collection = ? AND id = ?",
                            (operation.collection, operation.doc_id),
                        )
        except sqlite3.Error as exc:
            raise StoreError(f"Batch write failed: {exc}") from exc
        self._committed = True
        logger.debug("Committed write batch with %d operation(s)", len(self._operations))


__all__ = [
    "Document",
    "DocumentNotFound",
    "DocumentStore",
    "FieldFilter",
    "Query",
    "StoreError",
    "WriteBatch",
]
