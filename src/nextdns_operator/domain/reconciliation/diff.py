"""Compare desired collections with remote snapshots.

List collections produce ``Add``/``Remove`` operations, or a single ``Replace``
for replace-only collections and for changes above the replace threshold. Flag
documents produce one ``Patch`` holding the declared values that differ.

Equal inputs always yield no operations, which keeps periodic resyncs free of
API writes.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

from nextdns_operator.domain.ports import RemoteEntry

if TYPE_CHECKING:
    from collections.abc import Iterable


class SyncMode(StrEnum):
    GRANULAR = "granular"
    REPLACE = "replace"


@dataclass(frozen=True, slots=True)
class Add:
    """Upsert one entry; also used to flip the active flag of an existing entry."""

    entry: RemoteEntry


@dataclass(frozen=True, slots=True)
class Remove:
    identifier: str


@dataclass(frozen=True, slots=True)
class Replace:
    entries: tuple[RemoteEntry, ...]


@dataclass(frozen=True, slots=True)
class Patch:
    values: Mapping[str, object] = field(default_factory=dict)


type Operation = Add | Remove | Replace | Patch


def identifier_key(identifier: str) -> str:
    return identifier.casefold()


def sort_entries(entries: Iterable[RemoteEntry]) -> tuple[RemoteEntry, ...]:
    return tuple(
        sorted(entries, key=lambda entry: (identifier_key(entry.identifier), entry.identifier))
    )


def _index(entries: Iterable[RemoteEntry]) -> dict[str, RemoteEntry]:
    indexed: dict[str, RemoteEntry] = {}
    for entry in entries:
        indexed.setdefault(identifier_key(entry.identifier), entry)
    return indexed


def diff(
    desired: Iterable[RemoteEntry],
    remote: Iterable[RemoteEntry],
    *,
    mode: SyncMode = SyncMode.GRANULAR,
    replace_threshold: int | None = None,
) -> list[Operation]:
    """Compute the operations that turn ``remote`` into ``desired``.

    Granular output lists every ``Add`` before any ``Remove``, each sorted by
    identifier. When more than ``replace_threshold`` granular operations would be
    needed, a single ``Replace`` is returned instead.
    """

    wanted = _index(desired)
    current = _index(remote)
    if wanted.keys() == current.keys() and all(
        current[key].active == entry.active for key, entry in wanted.items()
    ):
        return []

    if mode is SyncMode.REPLACE:
        return [Replace(sort_entries(wanted.values()))]

    adds = [
        Add(entry)
        for key, entry in wanted.items()
        if key not in current or current[key].active != entry.active
    ]
    removes = [Remove(entry.identifier) for key, entry in current.items() if key not in wanted]
    if replace_threshold is not None and len(adds) + len(removes) > replace_threshold:
        return [Replace(sort_entries(wanted.values()))]

    adds.sort(key=lambda op: (identifier_key(op.entry.identifier), op.entry.identifier))
    removes.sort(key=lambda op: (identifier_key(op.identifier), op.identifier))
    return [*adds, *removes]


def diff_flags(desired: Mapping[str, object], remote: Mapping[str, object]) -> list[Operation]:
    """Return one ``Patch`` with all desired values when any of them differs remotely."""

    if not desired:
        return []
    if all(remote.get(name) == value for name, value in desired.items()):
        return []
    return [Patch(dict(desired))]
