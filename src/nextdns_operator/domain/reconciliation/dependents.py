"""Dependent-trigger index.

Maps a shared resource (list, credentials secret, import config map) to the
profiles that reference it. The map is derived data: it is rebuilt from the
live profile specs on every query and never consulted as a source of truth.
"""

from __future__ import annotations

from collections import defaultdict
from typing import TYPE_CHECKING

from nextdns_operator.domain.model import (
    LIST_TYPE_BY_CATEGORY,
    SHARED_LIST_KINDS,
    Kind,
    ListCategory,
    NextDNSProfile,
    ResourceKey,
    SharedRef,
)

if TYPE_CHECKING:
    from collections.abc import Iterable

    from nextdns_operator.domain.ports import ResourceStore


def profile_dependencies(profile: NextDNSProfile) -> set[SharedRef]:
    """Every resource whose change should re-trigger ``profile``."""

    namespace = profile.metadata.namespace
    refs: set[SharedRef] = set()
    for category in ListCategory:
        for reference in profile.spec.refs_for(category):
            ref_namespace = reference.resolve_namespace(namespace)
            refs.add(SharedRef(category.kind, ref_namespace, reference.name))
    refs.add(SharedRef(Kind.SECRET, namespace, profile.spec.credentials_ref.name))
    if profile.spec.config_import_ref is not None:
        refs.add(SharedRef(Kind.CONFIG_MAP, namespace, profile.spec.config_import_ref.name))
    return refs


def build_reverse_index(profiles: Iterable[NextDNSProfile]) -> dict[SharedRef, list[ResourceKey]]:
    index: defaultdict[SharedRef, set[ResourceKey]] = defaultdict(set)
    for profile in profiles:
        for ref in profile_dependencies(profile):
            index[ref].add(profile.key)
    return {ref: sorted(keys) for ref, keys in index.items()}


class DependentIndex:
    """Answer dependency queries from the current contents of the store."""

    def __init__(self, store: ResourceStore) -> None:
        self._store = store

    def find_dependents(self, ref: SharedRef) -> list[ResourceKey]:
        index = build_reverse_index(self._store.list(NextDNSProfile))
        return index.get(ref, [])

    def find_lists_for_profile(
        self, key: ResourceKey, profile: NextDNSProfile | None = None
    ) -> list[SharedRef]:
        """Shared lists whose status should be refreshed after ``key`` changed.

        Includes the lists the profile references now and the lists that still
        record it in ``status.profileRefs`` (covers dropped references and deletion).
        """

        refs: set[SharedRef] = set()
        if profile is not None:
            refs.update(
                ref for ref in profile_dependencies(profile) if ref.kind in SHARED_LIST_KINDS
            )
        for model in LIST_TYPE_BY_CATEGORY.values():
            for shared in self._store.list(model):
                if any(
                    ref.namespace == key.namespace and ref.name == key.name
                    for ref in shared.status.profile_refs
                ):
                    refs.add(shared.ref)
        return sorted(refs)

