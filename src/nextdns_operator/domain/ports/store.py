"""Port for the declarative resource store the reconcilers read and write."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from nextdns_operator.domain.model import Kind, Resource, ResourceKey


class StoreError(RuntimeError):
    """Raised when the store cannot complete an operation (I/O, corruption)."""


class ResourceNotFoundError(StoreError):
    def __init__(self, kind: str, key: ResourceKey) -> None:
        super().__init__(f"{kind} {key} not found")
        self.kind = kind
        self.key = key


class ResourceConflictError(StoreError):
    """Optimistic concurrency failure: the caller wrote against a stale version."""

    def __init__(self, kind: str, key: ResourceKey, *, expected: int, actual: int | None) -> None:
        super().__init__(
            f"{kind} {key} was modified concurrently "
            f"(expected version {expected}, found {actual})"
        )
        self.kind = kind
        self.key = key
        self.expected = expected
        self.actual = actual


class ResourceAlreadyExistsError(StoreError):
    def __init__(self, kind: str, key: ResourceKey) -> None:
        super().__init__(f"{kind} {key} already exists")
        self.kind = kind
        self.key = key


class EventType(StrEnum):
    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"


@dataclass(frozen=True, slots=True)
class WatchEvent:
    """One change recorded by the store.

    ``sequence`` doubles as the resource version written by the change, so a
    watcher resumes by passing the last sequence it saw. ``status_only`` marks
    status writes, which never carry a spec change.
    """

    sequence: int
    kind: Kind
    key: ResourceKey
    event_type: EventType
    status_only: bool = False


@runtime_checkable
class ResourceStore(Protocol):
    """Kind-aware resource persistence with optimistic concurrency."""

    def get[T: Resource](self, model: type[T], key: ResourceKey) -> T: ...

    def list[T: Resource](self, model: type[T], namespace: str | None = None) -> list[T]: ...

    def create[T: Resource](self, resource: T) -> T: ...

    def apply[T: Resource](self, resource: T) -> T:
        """Create or update the declared part of a resource, bumping its generation on change."""
        ...

    def update[T: Resource](self, resource: T) -> T:
        """Write metadata (finalizers) guarded by ``metadata.resource_version``."""
        ...

    def update_status[T: Resource](self, resource: T) -> T:
        """Write only the status guarded by ``metadata.resource_version``."""
        ...

    def delete(self, model: type[Resource], key: ResourceKey) -> None:
        """Remove a resource, or mark it for deletion while finalizers remain."""
        ...

    def watch(self, kind: Kind | None = None, since: int = 0) -> list[WatchEvent]: ...

    def latest_sequence(self) -> int: ...


__all__ = [
    "EventType",
    "ResourceAlreadyExistsError",
    "ResourceConflictError",
    "ResourceNotFoundError",
    "ResourceStore",
    "StoreError",
    "WatchEvent",
]
