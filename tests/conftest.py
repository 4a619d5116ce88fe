from __future__ import annotations

import os
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import pytest

from nextdns_operator.adapters.credentials import StoreCredentialLookup
from nextdns_operator.adapters.sqlalchemy import SqlAlchemyResourceStore, create_store_engine
from nextdns_operator.adapters.sqlalchemy.mappings import metadata
from nextdns_operator.config import ControllerConfig
from nextdns_operator.domain.reconciliation import ProfileReconciler
from tests.support.nextdns import FakeNextDNS

os.environ.setdefault("DATABASE_URI", "sqlite+pysqlite:///:memory:")

if TYPE_CHECKING:
    from collections.abc import Iterator

    from sqlalchemy.engine import Engine

FIXED_NOW = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)


@pytest.fixture
def sqlite_engine() -> Iterator[Engine]:
    engine = create_store_engine("sqlite+pysqlite:///:memory:")
    metadata.create_all(engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def store(sqlite_engine: Engine) -> SqlAlchemyResourceStore:
    return SqlAlchemyResourceStore(sqlite_engine, clock=lambda: FIXED_NOW)


@pytest.fixture
def fake_nextdns() -> FakeNextDNS:
    return FakeNextDNS()


@pytest.fixture
def controller_config() -> ControllerConfig:
    return ControllerConfig(
        sync_period=3600.0,
        workers=1,
        reconcile_timeout=30.0,
        backoff_base=0.01,
        backoff_max=0.1,
        auth_retry_interval=600.0,
        max_retries=3,
        replace_threshold=25,
        watch_poll_interval=0.01,
    )


@pytest.fixture
def profile_reconciler(
    store: SqlAlchemyResourceStore,
    fake_nextdns: FakeNextDNS,
    controller_config: ControllerConfig,
) -> ProfileReconciler:
    return ProfileReconciler(
        store,
        StoreCredentialLookup(store),
        fake_nextdns.factory,
        controller_config,
        clock=lambda: FIXED_NOW,
        sync_interval=lambda period: period,
    )
