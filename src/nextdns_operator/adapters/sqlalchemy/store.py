"""SQLAlchemy implementation of the resource store port.

Every write appends a row to ``resource_events`` and stamps the sequence it was
given onto the resource as its new ``resource_version``. Guarded writes use
``UPDATE ... WHERE resource_version = :expected`` so a stale writer gets a
:class:`ResourceConflictError` instead of overwriting a newer version.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from logging import getLogger
from typing import TYPE_CHECKING, Any, cast

from sqlalchemy import delete, func, insert, select, update
from sqlalchemy.exc import SQLAlchemyError

from nextdns_operator.domain.model import Kind, ResourceKey
from nextdns_operator.domain.ports import (
    EventType,
    ResourceAlreadyExistsError,
    ResourceConflictError,
    ResourceNotFoundError,
    StoreError,
    WatchEvent,
)

from .mappings import resource_events_table, resources_table

if TYPE_CHECKING:
    from sqlalchemy.engine import Connection, Engine, RowMapping

    from nextdns_operator.domain.model import Resource

log = getLogger(__name__)


class SqlAlchemyResourceStore:
    """Resource store backed by two tables; operations are serialised per instance."""

    def __init__(self, engine: Engine, *, clock: Callable[[], datetime] | None = None) -> None:
        self._engine = engine
        self._clock = clock or (lambda: datetime.now(UTC))
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get[T: Resource](self, model: type[T], key: ResourceKey) -> T:
        with self._transaction() as conn:
            row = self._select_row(conn, model.KIND, key)
        if row is None:
            raise ResourceNotFoundError(model.KIND, key)
        return _to_resource(model, row)

    def list[T: Resource](self, model: type[T], namespace: str | None = None) -> list[T]:
        stmt = select(resources_table).where(resources_table.c.kind == model.KIND.value)
        if namespace is not None:
            stmt = stmt.where(resources_table.c.namespace == namespace)
        stmt = stmt.order_by(resources_table.c.namespace, resources_table.c.name)
        with self._transaction() as conn:
            rows = conn.execute(stmt).mappings().all()
        return [_to_resource(model, row) for row in rows]

    def watch(self, kind: Kind | None = None, since: int = 0) -> list[WatchEvent]:
        events = resource_events_table
        stmt = select(events).where(events.c.sequence > since)
        if kind is not None:
            stmt = stmt.where(events.c.kind == kind.value)
        stmt = stmt.order_by(events.c.sequence)
        with self._transaction() as conn:
            rows = conn.execute(stmt).mappings().all()
        return [
            WatchEvent(
                sequence=row["sequence"],
                kind=Kind(row["kind"]),
                key=ResourceKey(row["namespace"], row["name"]),
                event_type=EventType(row["event_type"]),
                status_only=row["status_only"],
            )
            for row in rows
        ]

    def latest_sequence(self) -> int:
        with self._transaction() as conn:
            latest = conn.execute(select(func.max(resource_events_table.c.sequence))).scalar()
        return latest or 0

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create[T: Resource](self, resource: T) -> T:
        kind = resource.KIND
        key = resource.key
        with self._transaction() as conn:
            if self._select_row(conn, kind, key) is not None:
                raise ResourceAlreadyExistsError(kind, key)
            row = self._insert(conn, resource)
        log.debug("Created %s %s at version %d", kind, key, row["resource_version"])
        return _to_resource(type(resource), row)

    def apply[T: Resource](self, resource: T) -> T:
        kind = resource.KIND
        key = resource.key
        with self._transaction() as conn:
            current = self._select_row(conn, kind, key)
            if current is None:
                return _to_resource(type(resource), self._insert(conn, resource))
            spec = resource.spec_payload()
            labels = dict(resource.metadata.labels)
            spec_changed = spec != current["spec"]
            if not spec_changed and labels == current["labels"]:
                return _to_resource(type(resource), current)
            sequence = self._record(conn, kind, key, EventType.MODIFIED)
            values: dict[str, Any] = {"spec": spec, "labels": labels, "resource_version": sequence}
            if spec_changed:
                values["generation"] = current["generation"] + 1
            self._guarded_update(conn, kind, key, current["resource_version"], values)
            row = self._select_row(conn, kind, key)
        log.debug("Applied %s %s at version %d", kind, key, sequence)
        return _to_resource(type(resource), _require(row, kind, key))

    def update[T: Resource](self, resource: T) -> T:
        kind = resource.KIND
        key = resource.key
        expected = resource.metadata.resource_version
        finalizers = list(resource.metadata.finalizers)
        with self._transaction() as conn:
            current = _require(self._select_row(conn, kind, key), kind, key)
            _check_version(kind, key, expected, current["resource_version"])
            if current["deletion_timestamp"] is not None and not finalizers:
                self._record(conn, kind, key, EventType.DELETED)
                self._guarded_delete(conn, kind, key, expected)
                log.info("Released last finalizer; removed %s %s", kind, key)
                return resource.model_copy(
                    update={"metadata": resource.metadata.model_copy(update={"finalizers": []})}
                )
            sequence = self._record(conn, kind, key, EventType.MODIFIED)
            self._guarded_update(
                conn,
                kind,
                key,
                expected,
                {
                    "finalizers": finalizers,
                    "labels": dict(resource.metadata.labels),
                    "resource_version": sequence,
                },
            )
            row = self._select_row(conn, kind, key)
        return _to_resource(type(resource), _require(row, kind, key))

    def update_status[T: Resource](self, resource: T) -> T:
        kind = resource.KIND
        key = resource.key
        expected = resource.metadata.resource_version
        with self._transaction() as conn:
            current = _require(self._select_row(conn, kind, key), kind, key)
            _check_version(kind, key, expected, current["resource_version"])
            sequence = self._record(conn, kind, key, EventType.MODIFIED, status_only=True)
            self._guarded_update(
                conn,
                kind,
                key,
                expected,
                {"status": resource.status_payload(), "resource_version": sequence},
            )
            row = self._select_row(conn, kind, key)
        return _to_resource(type(resource), _require(row, kind, key))

    def delete(self, model: type[Resource], key: ResourceKey) -> None:
        kind = model.KIND
        with self._transaction() as conn:
            current = _require(self._select_row(conn, kind, key), kind, key)
            expected = current["resource_version"]
            if not current["finalizers"]:
                self._record(conn, kind, key, EventType.DELETED)
                self._guarded_delete(conn, kind, key, expected)
                log.info("Deleted %s %s", kind, key)
                return
            if current["deletion_timestamp"] is not None:
                return
            sequence = self._record(conn, kind, key, EventType.MODIFIED)
            self._guarded_update(
                conn,
                kind,
                key,
                expected,
                {"deletion_timestamp": self._clock(), "resource_version": sequence},
            )
        log.info(
            "Marked %s %s for deletion; waiting on finalizers %s", kind, key, current["finalizers"]
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @contextmanager
    def _transaction(self) -> Iterator[Connection]:
        with self._lock:
            try:
                with self._engine.begin() as conn:
                    yield conn
            except SQLAlchemyError as exc:
                raise StoreError(f"Resource store operation failed: {exc}") from exc

    @staticmethod
    def _select_row(conn: Connection, kind: Kind, key: ResourceKey) -> RowMapping | None:
        stmt = select(resources_table).where(
            resources_table.c.kind == kind.value,
            resources_table.c.namespace == key.namespace,
            resources_table.c.name == key.name,
        )
        return conn.execute(stmt).mappings().first()

    def _insert(self, conn: Connection, resource: Resource) -> RowMapping:
        kind = resource.KIND
        key = resource.key
        sequence = self._record(conn, kind, key, EventType.ADDED)
        conn.execute(
            insert(resources_table).values(
                kind=kind.value,
                namespace=key.namespace,
                name=key.name,
                generation=1,
                resource_version=sequence,
                finalizers=list(resource.metadata.finalizers),
                labels=dict(resource.metadata.labels),
                creation_timestamp=self._clock(),
                deletion_timestamp=None,
                spec=resource.spec_payload(),
                status=resource.status_payload(),
            )
        )
        return _require(self._select_row(conn, kind, key), kind, key)

    def _record(
        self,
        conn: Connection,
        kind: Kind,
        key: ResourceKey,
        event_type: EventType,
        *,
        status_only: bool = False,
    ) -> int:
        result = conn.execute(
            insert(resource_events_table).values(
                kind=kind.value,
                namespace=key.namespace,
                name=key.name,
                event_type=event_type.value,
                status_only=status_only,
                recorded_at=self._clock(),
            )
        )
        return int(result.inserted_primary_key[0])

    @staticmethod
    def _guarded_update(
        conn: Connection,
        kind: Kind,
        key: ResourceKey,
        expected: int,
        values: dict[str, Any],
    ) -> None:
        stmt = (
            update(resources_table)
            .where(
                resources_table.c.kind == kind.value,
                resources_table.c.namespace == key.namespace,
                resources_table.c.name == key.name,
                resources_table.c.resource_version == expected,
            )
            .values(**values)
        )
        if conn.execute(stmt).rowcount != 1:
            raise ResourceConflictError(kind, key, expected=expected, actual=None)

    @staticmethod
    def _guarded_delete(conn: Connection, kind: Kind, key: ResourceKey, expected: int) -> None:
        stmt = delete(resources_table).where(
            resources_table.c.kind == kind.value,
            resources_table.c.namespace == key.namespace,
            resources_table.c.name == key.name,
            resources_table.c.resource_version == expected,
        )
        if conn.execute(stmt).rowcount != 1:
            raise ResourceConflictError(kind, key, expected=expected, actual=None)


def _require(row: RowMapping | None, kind: Kind, key: ResourceKey) -> RowMapping:
    if row is None:
        raise ResourceNotFoundError(kind, key)
    return row


def _check_version(kind: Kind, key: ResourceKey, expected: int, actual: int) -> None:
    if expected != actual:
        raise ResourceConflictError(kind, key, expected=expected, actual=actual)


def _to_resource[T: Resource](model: type[T], row: RowMapping) -> T:
    metadata = {
        "name": row["name"],
        "namespace": row["namespace"],
        "generation": row["generation"],
        "resourceVersion": row["resource_version"],
        "finalizers": list(row["finalizers"] or []),
        "labels": dict(row["labels"] or {}),
        "creationTimestamp": row["creation_timestamp"],
        "deletionTimestamp": row["deletion_timestamp"],
    }
    resource = model.from_record(metadata=metadata, spec=row["spec"] or {}, status=row["status"])
    return cast("T", resource)

