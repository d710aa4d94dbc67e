"""Record store client.

The orchestration core talks to durable storage only through `RecordStore`:
- `find` with simple conditions and ordering (owner-scoped for user queries)
- `get` a single record
- `insert` a new record
- `conditional_update`: a single-statement compare-and-set on the record's status

`SqliteRecordStore` is the bundled implementation. Every method opens its own
connection, so one store instance can be shared by scheduler threads. Constraint
violations surface as `DuplicateRecordError`; any other `sqlite3.Error` as
`StoreUnavailableError`.
"""

from __future__ import annotations

import contextlib
import json
import logging
import sqlite3
import uuid
from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any, Literal, Protocol

from agent_task_orchestrator.orchestrator.models import TaskStatus
from agent_task_orchestrator.orchestrator.state_machine import check_transition

logger = logging.getLogger(__name__)


class Collection(str, Enum):
    TASKS = "tasks"
    NOTIFICATION_TARGETS = "notification_targets"
    SENTIMENTS = "email_sentiments"
    IMAGES = "image_captions"


class StoreUnavailableError(RuntimeError):
    """The record store could not be reached or refused the operation."""


class DuplicateRecordError(ValueError):
    """The write violated a uniqueness constraint (e.g. an id already in use)."""


ConditionOp = Literal["eq", "lte", "lte_or_null", "is_null"]


@dataclass(frozen=True, slots=True)
class Condition:
    field: str
    op: ConditionOp
    value: object = None

    @staticmethod
    def eq(field: str, value: object) -> Condition:
        return Condition(field=field, op="eq", value=value)

    @staticmethod
    def lte_or_null(field: str, value: object) -> Condition:
        return Condition(field=field, op="lte_or_null", value=value)


@dataclass(frozen=True, slots=True)
class OrderBy:
    field: str
    descending: bool = False
    # Sort NULL values of `field` as if they held this other column's value.
    fallback: str | None = None


class RecordStore(Protocol):
    def find(
        self,
        collection: Collection,
        *,
        where: Sequence[Condition] = (),
        order: Sequence[OrderBy] = (),
        owner: str | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]: ...

    def get(
        self, collection: Collection, record_id: str, *, owner: str | None = None
    ) -> dict[str, Any] | None: ...

    def insert(self, collection: Collection, record: Mapping[str, Any]) -> str: ...

    def conditional_update(
        self,
        collection: Collection,
        record_id: str,
        *,
        expected_status: str,
        patch: Mapping[str, Any],
    ) -> bool: ...


ColumnKind = Literal["text", "real", "ts", "json"]


@dataclass(frozen=True, slots=True)
class _Schema:
    columns: dict[str, ColumnKind]
    status_field: str | None
    indexes: tuple[str, ...] = ()


_SCHEMAS: dict[Collection, _Schema] = {
    Collection.TASKS: _Schema(
        columns={
            "id": "text",
            "owner": "text",
            "kind": "text",
            "status": "text",
            "payload": "json",
            "result": "json",
            "scheduled_for": "ts",
            "started_at": "ts",
            "completed_at": "ts",
            "error_message": "text",
            "created_at": "ts",
        },
        status_field="status",
        indexes=("status, scheduled_for", "owner, created_at"),
    ),
    Collection.NOTIFICATION_TARGETS: _Schema(
        columns={
            "id": "text",
            "owner": "text",
            "source_id": "text",
            "recipient_name": "text",
            "email": "text",
            "phone": "text",
            "channel": "text",
            "created_at": "ts",
        },
        status_field=None,
        indexes=("owner, source_id",),
    ),
    Collection.SENTIMENTS: _Schema(
        columns={
            "id": "text",
            "owner": "text",
            "email_subject": "text",
            "sender_email": "text",
            "email_content": "text",
            "sentiment_category": "text",
            "confidence_score": "real",
            "analyzed_at": "ts",
            "created_at": "ts",
        },
        status_field=None,
        indexes=("owner, created_at",),
    ),
    Collection.IMAGES: _Schema(
        columns={
            "id": "text",
            "owner": "text",
            "image_name": "text",
            "file_id": "text",
            "generated_caption": "text",
            "generated_hashtags": "json",
            "processing_status": "text",
            "created_at": "ts",
            "updated_at": "ts",
        },
        status_field="processing_status",
        indexes=("owner, created_at",),
    ),
}

_SQL_TYPES: dict[ColumnKind, str] = {"text": "TEXT", "real": "REAL", "ts": "REAL", "json": "TEXT"}


def _to_epoch(value: datetime) -> float:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.timestamp()


class SqliteRecordStore:
    """SQLite-backed `RecordStore`.

    Timestamps are stored as epoch seconds (UTC) so range conditions compare
    numerically; JSON columns hold payloads, results and hashtag lists.
    """

    def __init__(self, db_path: str | Path = "agent_state/records.sqlite3") -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()
        logger.info("Record store ready", extra={"db_path": str(self._db_path)})

    @property
    def db_path(self) -> Path:
        return self._db_path

    # ---- low-level helpers ----

    @contextlib.contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        except sqlite3.Error as e:
            raise StoreUnavailableError(f"cannot open record store: {e}") from e
        conn.row_factory = sqlite3.Row
        try:
            with contextlib.suppress(sqlite3.Error):
                conn.execute("PRAGMA journal_mode=WAL")
            yield conn
        except sqlite3.IntegrityError as e:
            raise DuplicateRecordError(f"record rejected by the store: {e}") from e
        except sqlite3.Error as e:
            raise StoreUnavailableError(f"record store operation failed: {e}") from e
        finally:
            conn.close()

    def _ensure_schema(self) -> None:
        with self._connect() as conn:
            for collection, schema in _SCHEMAS.items():
                cols = ", ".join(
                    f"{name} {_SQL_TYPES[kind]}{' PRIMARY KEY' if name == 'id' else ''}"
                    for name, kind in schema.columns.items()
                )
                conn.execute(f"CREATE TABLE IF NOT EXISTS {collection.value} ({cols})")
                for idx, cols_expr in enumerate(schema.indexes):
                    conn.execute(
                        f"CREATE INDEX IF NOT EXISTS idx_{collection.value}_{idx} "
                        f"ON {collection.value}({cols_expr})"
                    )
            conn.commit()

    @staticmethod
    def _column(schema: _Schema, name: str) -> ColumnKind:
        try:
            return schema.columns[name]
        except KeyError:
            raise ValueError(f"unknown field: {name}") from None

    @staticmethod
    def _encode(kind: ColumnKind, value: object) -> object:
        if value is None:
            return None
        if isinstance(value, Enum):
            value = value.value
        if kind == "ts":
            if isinstance(value, datetime):
                return _to_epoch(value)
            return float(value)  # type: ignore[arg-type]
        if kind == "json":
            return json.dumps(value, ensure_ascii=False, default=str)
        if kind == "real":
            return float(value)  # type: ignore[arg-type]
        return str(value)

    @staticmethod
    def _decode(kind: ColumnKind, value: object) -> object:
        if value is None:
            return None
        if kind == "ts":
            return datetime.fromtimestamp(float(value), tz=UTC)  # type: ignore[arg-type]
        if kind == "json":
            try:
                return json.loads(str(value))
            except json.JSONDecodeError:
                logger.warning("Stored JSON column is not valid JSON; reading as null")
                return None
        return value

    def _row_to_record(self, schema: _Schema, row: sqlite3.Row) -> dict[str, Any]:
        return {name: self._decode(kind, row[name]) for name, kind in schema.columns.items()}

    # ---- public API ----

    def find(
        self,
        collection: Collection,
        *,
        where: Sequence[Condition] = (),
        order: Sequence[OrderBy] = (),
        owner: str | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        schema = _SCHEMAS[collection]
        clauses: list[str] = []
        params: list[object] = []

        conditions = list(where)
        if owner is not None:
            conditions.append(Condition.eq("owner", owner))

        for cond in conditions:
            kind = self._column(schema, cond.field)
            if cond.op == "eq":
                clauses.append(f"{cond.field} = ?")
                params.append(self._encode(kind, cond.value))
            elif cond.op == "lte":
                clauses.append(f"{cond.field} <= ?")
                params.append(self._encode(kind, cond.value))
            elif cond.op == "lte_or_null":
                clauses.append(f"({cond.field} IS NULL OR {cond.field} <= ?)")
                params.append(self._encode(kind, cond.value))
            elif cond.op == "is_null":
                clauses.append(f"{cond.field} IS NULL")
            else:
                raise ValueError(f"unsupported condition: {cond.op}")

        order_terms: list[str] = []
        for term in order:
            self._column(schema, term.field)
            expr = term.field
            if term.fallback:
                self._column(schema, term.fallback)
                expr = f"COALESCE({term.field}, {term.fallback})"
            order_terms.append(f"{expr} {'DESC' if term.descending else 'ASC'}")

        sql = f"SELECT * FROM {collection.value}"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        if order_terms:
            sql += " ORDER BY " + ", ".join(order_terms)
        if limit is not None:
            sql += " LIMIT ?"
            params.append(int(limit))

        with self._connect() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [self._row_to_record(schema, r) for r in rows]

    def get(
        self, collection: Collection, record_id: str, *, owner: str | None = None
    ) -> dict[str, Any] | None:
        rows = self.find(
            collection, where=[Condition.eq("id", record_id)], owner=owner, limit=1
        )
        return rows[0] if rows else None

    def insert(self, collection: Collection, record: Mapping[str, Any]) -> str:
        schema = _SCHEMAS[collection]
        values = dict(record)
        record_id = str(values.get("id") or uuid.uuid4().hex)
        values["id"] = record_id
        if "created_at" in schema.columns and values.get("created_at") is None:
            values["created_at"] = datetime.now(tz=UTC)

        names = [n for n in values if n in schema.columns]
        unknown = sorted(set(values) - set(schema.columns))
        if unknown:
            raise ValueError(f"unknown fields for {collection.value}: {', '.join(unknown)}")

        placeholders = ", ".join("?" for _ in names)
        params = [self._encode(schema.columns[n], values[n]) for n in names]
        with self._connect() as conn:
            conn.execute(
                f"INSERT INTO {collection.value} ({', '.join(names)}) VALUES ({placeholders})",
                params,
            )
            conn.commit()

        logger.debug(
            "Record inserted", extra={"collection": collection.value, "record_id": record_id}
        )
        return record_id

    def conditional_update(
        self,
        collection: Collection,
        record_id: str,
        *,
        expected_status: str,
        patch: Mapping[str, Any],
    ) -> bool:
        """Apply `patch` only if the record currently has `expected_status`.

        A single UPDATE statement performs the compare and the write, so two callers
        racing on the same record cannot both succeed.
        """

        schema = _SCHEMAS[collection]
        if schema.status_field is None:
            raise ValueError(f"{collection.value} records carry no status")
        if not patch:
            raise ValueError("patch must not be empty")

        expected = expected_status.value if isinstance(expected_status, Enum) else expected_status
        new_status = patch.get(schema.status_field)
        if collection is Collection.TASKS and new_status is not None:
            check_transition(current=TaskStatus(expected), to=TaskStatus(new_status))

        assignments: list[str] = []
        params: list[object] = []
        for name, value in patch.items():
            kind = self._column(schema, name)
            if name in {"id", "owner", "created_at"}:
                raise ValueError(f"{name} is immutable")
            assignments.append(f"{name} = ?")
            params.append(self._encode(kind, value))

        params.extend([record_id, expected])
        with self._connect() as conn:
            cur = conn.execute(
                f"UPDATE {collection.value} SET {', '.join(assignments)} "
                f"WHERE id = ? AND {schema.status_field} = ?",
                params,
            )
            conn.commit()
            applied = cur.rowcount == 1

        logger.debug(
            "Conditional update",
            extra={
                "collection": collection.value,
                "record_id": record_id,
                "expected_status": expected,
                "applied": applied,
            },
        )
        return applied
