"""Engine lifecycle for the SQLAlchemy resource store."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from sqlalchemy import create_engine, event
from sqlalchemy.engine import make_url
from sqlalchemy.pool import StaticPool

from .mappings import metadata

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

SQLITE_BUSY_TIMEOUT_SECONDS = 30


class StartupError(RuntimeError):
    """Raised when the store is used before initialisation or initialised twice."""


@dataclass(slots=True)
class _AdapterState:
    engine: Engine | None = None


_STATE = _AdapterState()


def create_store_engine(database_uri: str) -> Engine:
    """Create an engine suitable for concurrent reconcile workers.

    In-memory SQLite databases are bound to one connection shared across
    threads, otherwise every connection would see its own empty database.
    """

    url = make_url(database_uri)
    if url.get_backend_name() != "sqlite":
        return create_engine(url, pool_pre_ping=True)

    connect_args: dict[str, object] = {
        "check_same_thread": False,
        "timeout": SQLITE_BUSY_TIMEOUT_SECONDS,
    }
    if url.database in (None, "", ":memory:"):
        return create_engine(url, connect_args=connect_args, poolclass=StaticPool)

    engine = create_engine(url, connect_args=connect_args)

    # Readers must not block the single writer while workers poll the change log.
    @event.listens_for(engine, "connect")
    def _enable_wal(dbapi_connection, _record) -> None:  # type: ignore[no-untyped-def]
        cursor = dbapi_connection.cursor()
        try:
            cursor.execute("PRAGMA journal_mode=WAL")
        finally:
            cursor.close()

    return engine


def startup(
    *,
    engine: Engine | None = None,
    database_uri: str | None = None,
    force: bool = False,
) -> Engine:
    """Initialise the engine and create the tables if needed."""

    if _STATE.engine is not None and not force:
        raise StartupError("Resource store already initialised. Pass force=True to reconfigure.")
    if engine is None and database_uri is None:
        raise StartupError("startup() needs an engine or a database URI")

    resolved_engine = engine or create_store_engine(database_uri or "")
    metadata.create_all(resolved_engine, checkfirst=True)
    if _STATE.engine is not None and _STATE.engine is not resolved_engine:
        _STATE.engine.dispose()
    _STATE.engine = resolved_engine
    return resolved_engine


def configured_engine() -> Engine:
    if _STATE.engine is None:
        raise StartupError(
            "Resource store not initialised. Call nextdns_operator.adapters.sqlalchemy."
            "engine.startup() first."
        )
    return _STATE.engine


def is_started() -> bool:
    return _STATE.engine is not None


def shutdown() -> None:
    """Dispose the managed engine and reset state (primarily for tests)."""

    if _STATE.engine is not None:
        _STATE.engine.dispose()
    _STATE.engine = None
