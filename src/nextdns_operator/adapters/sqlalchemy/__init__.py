"""SQLAlchemy persistence for declared resources."""

from .engine import (
    StartupError,
    configured_engine,
    create_store_engine,
    is_started,
    shutdown,
    startup,
)
from .store import SqlAlchemyResourceStore

__all__ = [
    "SqlAlchemyResourceStore",
    "StartupError",
    "configured_engine",
    "create_store_engine",
    "is_started",
    "shutdown",
    "startup",
]
