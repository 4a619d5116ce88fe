"""Identity types for stored resources and the references between them."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

DEFAULT_NAMESPACE = "default"


class Kind(StrEnum):
    PROFILE = "NextDNSProfile"
    ALLOWLIST = "NextDNSAllowlist"
    DENYLIST = "NextDNSDenylist"
    TLDLIST = "NextDNSTLDList"
    SECRET = "Secret"
    CONFIG_MAP = "ConfigMap"


SHARED_LIST_KINDS: frozenset[Kind] = frozenset({Kind.ALLOWLIST, Kind.DENYLIST, Kind.TLDLIST})


@dataclass(frozen=True, slots=True, order=True)
class ResourceKey:
    """Namespace-qualified name of a resource, the unit of reconcile work."""

    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"


@dataclass(frozen=True, slots=True, order=True)
class SharedRef:
    """Identity of a resource a profile depends on (list, secret or config map)."""

    kind: Kind
    namespace: str
    name: str

    @property
    def key(self) -> ResourceKey:
        return ResourceKey(self.namespace, self.name)

    def __str__(self) -> str:
        return f"{self.kind}:{self.namespace}/{self.name}"
