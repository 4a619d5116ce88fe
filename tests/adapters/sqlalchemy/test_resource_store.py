from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from nextdns_operator.adapters.sqlalchemy import SqlAlchemyResourceStore, engine
from nextdns_operator.domain.model import (
    Kind,
    NextDNSDenylist,
    NextDNSProfile,
    ProfilePhase,
    ResourceKey,
)
from nextdns_operator.domain.ports import (
    EventType,
    ResourceAlreadyExistsError,
    ResourceConflictError,
    ResourceNotFoundError,
)
from tests.conftest import FIXED_NOW
from tests.support.resources import make_denylist, make_profile

if TYPE_CHECKING:
    from collections.abc import Iterator

HOME = ResourceKey("default", "home")


def _with_finalizer(store: SqlAlchemyResourceStore) -> NextDNSProfile:
    profile = store.create(make_profile())
    metadata = profile.metadata.model_copy(update={"finalizers": ["nextdns.io/finalizer"]})
    return store.update(profile.model_copy(update={"metadata": metadata}))


def test_create_assigns_version_and_rejects_duplicates(store: SqlAlchemyResourceStore) -> None:
    created = store.create(make_profile())

    assert created.metadata.generation == 1
    assert created.metadata.resource_version == store.latest_sequence()
    assert created.metadata.creation_timestamp is not None
    with pytest.raises(ResourceAlreadyExistsError):
        store.create(make_profile())


def test_get_missing_resource_raises(store: SqlAlchemyResourceStore) -> None:
    with pytest.raises(ResourceNotFoundError):
        store.get(NextDNSProfile, HOME)


def test_list_filters_by_kind_and_namespace(store: SqlAlchemyResourceStore) -> None:
    store.create(make_profile("b"))
    store.create(make_profile("a"))
    store.create(make_profile("c", namespace="family"))
    store.create(make_denylist("ads", "ads.example.com"))

    assert [p.metadata.name for p in store.list(NextDNSProfile)] == ["a", "b", "c"]
    assert [p.metadata.name for p in store.list(NextDNSProfile, "family")] == ["c"]
    assert [d.metadata.name for d in store.list(NextDNSDenylist)] == ["ads"]


def test_apply_without_change_records_no_event(store: SqlAlchemyResourceStore) -> None:
    created = store.apply(make_profile())
    sequence = store.latest_sequence()

    again = store.apply(make_profile())

    assert store.latest_sequence() == sequence
    assert again.metadata.resource_version == created.metadata.resource_version


def test_apply_spec_change_bumps_generation(store: SqlAlchemyResourceStore) -> None:
    store.apply(make_profile())

    updated = store.apply(make_profile(display_name="Home network"))

    assert updated.metadata.generation == 2
    assert updated.spec.name == "Home network"


def test_label_change_keeps_generation(store: SqlAlchemyResourceStore) -> None:
    store.apply(make_profile())
    labelled = make_profile()
    labelled.metadata.labels["team"] = "infra"

    updated = store.apply(labelled)

    assert updated.metadata.generation == 1
    assert updated.metadata.labels == {"team": "infra"}


def test_stale_status_write_conflicts(store: SqlAlchemyResourceStore) -> None:
    created = store.create(make_profile())
    store.apply(make_profile(display_name="Renamed"))
    created.status.phase = ProfilePhase.READY

    with pytest.raises(ResourceConflictError) as excinfo:
        store.update_status(created)

    assert excinfo.value.expected == created.metadata.resource_version


def test_status_write_keeps_spec_and_generation(store: SqlAlchemyResourceStore) -> None:
    created = store.create(make_profile())
    created.status.phase = ProfilePhase.READY
    created.status.profile_id = "abc123"

    updated = store.update_status(created)

    assert updated.status.phase is ProfilePhase.READY
    assert updated.status.profile_id == "abc123"
    assert updated.metadata.generation == 1
    assert updated.metadata.resource_version > created.metadata.resource_version


def test_delete_without_finalizers_removes_row(store: SqlAlchemyResourceStore) -> None:
    store.create(make_profile())

    store.delete(NextDNSProfile, HOME)

    with pytest.raises(ResourceNotFoundError):
        store.get(NextDNSProfile, HOME)


def test_delete_with_finalizer_marks_then_release_removes(store: SqlAlchemyResourceStore) -> None:
    _with_finalizer(store)

    store.delete(NextDNSProfile, HOME)
    marked = store.get(NextDNSProfile, HOME)
    store.delete(NextDNSProfile, HOME)

    assert marked.metadata.deletion_timestamp == FIXED_NOW
    assert store.get(NextDNSProfile, HOME).metadata.resource_version == (
        marked.metadata.resource_version
    )

    released = marked.model_copy(
        update={"metadata": marked.metadata.model_copy(update={"finalizers": []})}
    )
    store.update(released)

    with pytest.raises(ResourceNotFoundError):
        store.get(NextDNSProfile, HOME)
    assert store.watch(Kind.PROFILE)[-1].event_type is EventType.DELETED


def test_watch_reports_events_in_order(store: SqlAlchemyResourceStore) -> None:
    created = store.create(make_profile())
    store.create(make_denylist("ads", "ads.example.com"))
    created.status.phase = ProfilePhase.READY
    store.update_status(created)

    events = store.watch()
    profile_events = store.watch(Kind.PROFILE, since=events[0].sequence)

    assert [event.event_type for event in events] == [
        EventType.ADDED,
        EventType.ADDED,
        EventType.MODIFIED,
    ]
    assert [event.sequence for event in events] == sorted(event.sequence for event in events)
    assert len(profile_events) == 1
    assert profile_events[0].status_only
    assert profile_events[0].key == HOME
    assert not events[0].status_only


@pytest.fixture
def managed_engine() -> Iterator[None]:
    engine.shutdown()
    yield
    engine.shutdown()


@pytest.mark.usefixtures("managed_engine")
def test_engine_startup_lifecycle() -> None:
    started = engine.startup(database_uri="sqlite+pysqlite:///:memory:")

    assert engine.is_started()
    assert engine.configured_engine() is started
    with pytest.raises(engine.StartupError):
        engine.startup(database_uri="sqlite+pysqlite:///:memory:")

    engine.shutdown()

    assert not engine.is_started()
    with pytest.raises(engine.StartupError):
        engine.configured_engine()
