"""Application orchestration entry points."""

from __future__ import annotations

from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING

from nextdns_operator.adapters.credentials import StoreCredentialLookup
from nextdns_operator.adapters.manifests import load_manifests
from nextdns_operator.adapters.nextdns import NextDNSSessionFactory
from nextdns_operator.adapters.sqlalchemy import (
    SqlAlchemyResourceStore,
    configured_engine,
    is_started,
    startup,
)
from nextdns_operator.config import (
    ControllerConfig,
    get_controller_config,
    get_database_config,
    get_nextdns_config,
)
from nextdns_operator.controller import Manager
from nextdns_operator.domain.model import (
    DEFAULT_NAMESPACE,
    ListCategory,
    ResourceKey,
    resource_type_for,
)
from nextdns_operator.domain.reconciliation import (
    DependentIndex,
    ListReconciler,
    ProfileReconciler,
)

if TYPE_CHECKING:
    from collections.abc import Iterable
    from pathlib import Path

    from nextdns_operator.domain.model import Resource
    from nextdns_operator.domain.ports import CredentialLookup, PolicyAPIFactory, ResourceStore

log = getLogger(__name__)


@dataclass(slots=True)
class Operator:
    store: ResourceStore
    profiles: ProfileReconciler
    lists: dict[ListCategory, ListReconciler]
    manager: Manager


def open_store(database_uri: str | None = None) -> SqlAlchemyResourceStore:
    """Return a store on the configured database, initialising it on first use."""

    if not is_started():
        startup(database_uri=database_uri or get_database_config().uri)
    return SqlAlchemyResourceStore(configured_engine())


def build_operator(
    *,
    store: ResourceStore | None = None,
    api_factory: PolicyAPIFactory | None = None,
    credentials: CredentialLookup | None = None,
    config: ControllerConfig | None = None,
) -> Operator:
    effective_store = store or open_store()
    effective_config = config or get_controller_config()
    effective_factory = api_factory or NextDNSSessionFactory(get_nextdns_config().resilience)
    profiles = ProfileReconciler(
        effective_store,
        credentials or StoreCredentialLookup(effective_store),
        effective_factory,
        effective_config,
    )
    lists = {category: ListReconciler(effective_store, category) for category in ListCategory}
    manager = Manager(
        effective_store, profiles, lists, DependentIndex(effective_store), effective_config
    )
    return Operator(store=effective_store, profiles=profiles, lists=lists, manager=manager)


def run_operator(operator: Operator | None = None) -> None:
    """Run the controllers until interrupted."""

    effective = operator or build_operator()
    effective.manager.start()
    try:
        effective.manager.wait()
    finally:
        effective.manager.stop()


def reconcile_all(operator: Operator | None = None) -> int:
    effective = operator or build_operator()
    processed = effective.manager.run_once()
    log.info("Single reconcile pass finished: %d key(s) processed", processed)
    return processed


def apply_manifests(paths: Iterable[Path], *, store: ResourceStore | None = None) -> list[Resource]:
    """Create or update every resource declared under ``paths``."""

    effective_store = store or open_store()
    applied: list[Resource] = []
    for resource in load_manifests(paths):
        stored = effective_store.apply(resource)
        log.info(
            "Applied %s %s (generation %d)", stored.KIND, stored.key, stored.metadata.generation
        )
        applied.append(stored)
    return applied


def delete_resource(
    kind: str, name: str, namespace: str, *, store: ResourceStore | None = None
) -> None:
    effective_store = store or open_store()
    effective_store.delete(resource_type_for(kind), ResourceKey(namespace, name))


def get_resources(
    kind: str,
    *,
    name: str | None = None,
    namespace: str | None = None,
    store: ResourceStore | None = None,
) -> list[Resource]:
    effective_store = store or open_store()
    model = resource_type_for(kind)
    if name is not None:
        return [effective_store.get(model, ResourceKey(namespace or DEFAULT_NAMESPACE, name))]
    return list(effective_store.list(model, namespace))
