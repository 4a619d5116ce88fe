"""Reference resolution.

Responsibilities of this stage:
- fetch every shared list a profile references, in declaration order
- merge referenced entries (first) and inline entries (last) into one
  ``MergedDocument`` per category
- drop identifiers declared inactive and duplicates (case-insensitive, first
  occurrence wins)
- report per-reference readiness for the profile status

Out of scope for this stage:
- remote state and mutations
- status writes

An identifier declared ``active: false`` by any source of a category is
suppressed from that category entirely. This keeps the merged document
independent of the order in which sources declare conflicting flags.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from nextdns_operator.domain.model import (
    LIST_TYPE_BY_CATEGORY,
    ListCategory,
    ResourceKey,
)
from nextdns_operator.domain.ports import ResourceNotFoundError

if TYPE_CHECKING:
    from collections.abc import Iterable

    from nextdns_operator.domain.model import DomainEntry, NextDNSProfile, TLDEntry
    from nextdns_operator.domain.model.resources import SharedList
    from nextdns_operator.domain.ports import ResourceStore

INLINE_SOURCE = "inline"


class ReferenceNotFoundError(RuntimeError):
    """A declared reference points at a resource that does not exist."""

    def __init__(self, category: str, name: str, namespace: str) -> None:
        super().__init__(f"{category} reference {namespace}/{name} not found")
        self.category = category
        self.name = name
        self.namespace = namespace


@dataclass(frozen=True, slots=True)
class MergedEntry:
    identifier: str
    active: bool = True
    source: str = INLINE_SOURCE


@dataclass(frozen=True, slots=True)
class ResolvedReference:
    category: ListCategory
    namespace: str
    name: str
    ready: bool
    count: int


@dataclass(frozen=True, slots=True)
class MergedDocument:
    allowlist: tuple[MergedEntry, ...] = ()
    denylist: tuple[MergedEntry, ...] = ()
    tlds: tuple[MergedEntry, ...] = ()

    def entries(self, category: ListCategory) -> tuple[MergedEntry, ...]:
        if category is ListCategory.ALLOWLIST:
            return self.allowlist
        if category is ListCategory.DENYLIST:
            return self.denylist
        return self.tlds


@dataclass(frozen=True, slots=True)
class Resolution:
    document: MergedDocument
    references: tuple[ResolvedReference, ...] = ()


type ListEntry = DomainEntry | TLDEntry
type EntrySource = tuple[str, Iterable[ListEntry]]
type FetchSharedList = Callable[[ListCategory, ResourceKey], SharedList | None]


def merge_entries(sources: Iterable[EntrySource]) -> tuple[MergedEntry, ...]:
    """Merge ``(source, entries)`` pairs in order into deduplicated active entries."""

    materialized = [(source, list(entries)) for source, entries in sources]
    suppressed = {
        entry.identifier.casefold()
        for _source, entries in materialized
        for entry in entries
        if not entry.is_active
    }
    seen: set[str] = set()
    merged: list[MergedEntry] = []
    for source, entries in materialized:
        for entry in entries:
            key = entry.identifier.casefold()
            if key in suppressed or key in seen:
                continue
            seen.add(key)
            merged.append(MergedEntry(identifier=entry.identifier, source=source))
    return tuple(merged)


def resolve_profile(profile: NextDNSProfile, fetch: FetchSharedList) -> Resolution:
    """Resolve all references of ``profile`` using ``fetch`` for lookups.

    Pure apart from ``fetch``: the same profile spec and the same fetched lists
    always give the same resolution.
    """

    namespace = profile.metadata.namespace
    merged: dict[ListCategory, tuple[MergedEntry, ...]] = {}
    references: list[ResolvedReference] = []
    for category in ListCategory:
        sources: list[EntrySource] = []
        for reference in profile.spec.refs_for(category):
            key = ResourceKey(reference.resolve_namespace(namespace), reference.name)
            shared = fetch(category, key)
            if shared is None:
                raise ReferenceNotFoundError(category.value, key.name, key.namespace)
            entries = list(shared.spec.entries)
            sources.append((f"{shared.KIND}/{key}", entries))
            references.append(
                ResolvedReference(
                    category=category,
                    namespace=key.namespace,
                    name=key.name,
                    ready=True,
                    count=sum(1 for entry in entries if entry.is_active),
                )
            )
        sources.append((INLINE_SOURCE, profile.spec.inline_for(category)))
        merged[category] = merge_entries(sources)
    document = MergedDocument(
        allowlist=merged[ListCategory.ALLOWLIST],
        denylist=merged[ListCategory.DENYLIST],
        tlds=merged[ListCategory.TLDS],
    )
    return Resolution(document=document, references=tuple(references))


class ReferenceResolver:
    """Resolve profile references against the resource store."""

    def __init__(self, store: ResourceStore) -> None:
        self._store = store

    def resolve(self, profile: NextDNSProfile) -> Resolution:
        return resolve_profile(profile, self._fetch)

    def _fetch(self, category: ListCategory, key: ResourceKey) -> SharedList | None:
        model = LIST_TYPE_BY_CATEGORY[category]
        try:
            return self._store.get(model, key)
        except ResourceNotFoundError:
            return None
