"""SQLAlchemy table metadata for stored resources and their change log."""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Dialect,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    TypeDecorator,
    UniqueConstraint,
)

metadata = MetaData()


class UTCDateTime(TypeDecorator[datetime]):
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        return value if value.tzinfo else value.replace(tzinfo=UTC)


resources_table = Table(
    "resources",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("kind", String(64), nullable=False),
    Column("namespace", String(253), nullable=False),
    Column("name", String(253), nullable=False),
    Column("generation", Integer, nullable=False, default=1),
    Column("resource_version", Integer, nullable=False),
    Column("finalizers", JSON, nullable=False, default=list),
    Column("labels", JSON, nullable=False, default=dict),
    Column("creation_timestamp", UTCDateTime(), nullable=False),
    Column("deletion_timestamp", UTCDateTime(), nullable=True),
    Column("spec", JSON, nullable=False, default=dict),
    Column("status", JSON, nullable=True),
    UniqueConstraint("kind", "namespace", "name", name="uq_resources_identity"),
)

# ``sequence`` is also the resource version written by the change it records.
resource_events_table = Table(
    "resource_events",
    metadata,
    Column("sequence", Integer, primary_key=True, autoincrement=True),
    Column("kind", String(64), nullable=False),
    Column("namespace", String(253), nullable=False),
    Column("name", String(253), nullable=False),
    Column("event_type", String(16), nullable=False),
    Column("status_only", Boolean, nullable=False, default=False),
    Column("recorded_at", UTCDateTime(), nullable=False),
    Index("ix_resource_events_kind_sequence", "kind", "sequence"),
    sqlite_autoincrement=True,
)
