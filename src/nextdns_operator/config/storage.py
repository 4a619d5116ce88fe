"""Where the resource store lives.

``DATABASE_URI`` wins when set. Otherwise the store is a SQLite file under
``NEXTDNS_OPERATOR_DATA_DIR``, or under ``$XDG_DATA_HOME/nextdns-operator``.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Final

from .env import optional_env

APP_DIR_NAME: Final[str] = "nextdns-operator"
DEFAULT_DB_FILENAME: Final[str] = "resources.db"


@dataclass(frozen=True, slots=True)
class DatabaseConfig:
    uri: str


def default_data_dir() -> Path:
    base = optional_env("XDG_DATA_HOME")
    base_path = Path(base) if base else Path.home() / ".local" / "share"
    return base_path / APP_DIR_NAME


def sqlite_uri(data_dir: Path, filename: str = DEFAULT_DB_FILENAME) -> str:
    """Return the URI of ``filename`` in ``data_dir``, creating the directory."""

    resolved = data_dir.expanduser().resolve()
    resolved.mkdir(parents=True, exist_ok=True)
    return f"sqlite+pysqlite:///{resolved / filename}"


def get_database_config(*, data_dir: Path | None = None) -> DatabaseConfig:
    uri = optional_env("DATABASE_URI")
    if uri:
        return DatabaseConfig(uri=uri)
    if data_dir is None:
        configured = optional_env("NEXTDNS_OPERATOR_DATA_DIR")
        data_dir = Path(configured) if configured else default_data_dir()
    return DatabaseConfig(uri=sqlite_uri(data_dir))
