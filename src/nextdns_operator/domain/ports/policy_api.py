"""Port describing the NextDNS policy API as the reconcilers consume it.

The contract is method-level only. Flag documents are plain mappings keyed by
the camelCase field names of the profile spec (``aiThreatDetection``,
``safeSearch``, ``logClientsIPs``); adapters translate to and from their wire
format. Every method raises a subclass of :class:`PolicyAPIError`.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Sequence

    from nextdns_operator.domain.reconciliation.deadline import Deadline

type FlagValues = Mapping[str, object]


@dataclass(frozen=True, slots=True)
class RemoteEntry:
    """An entry of a remote collection keyed by identifier (domain, TLD or id)."""

    identifier: str
    active: bool = True


@dataclass(frozen=True, slots=True)
class RemoteProfile:
    id: str
    name: str


@dataclass(frozen=True, slots=True)
class PrivacySnapshot:
    flags: FlagValues = field(default_factory=dict)
    blocklists: tuple[RemoteEntry, ...] = ()
    natives: tuple[RemoteEntry, ...] = ()


@dataclass(frozen=True, slots=True)
class ParentalControlSnapshot:
    flags: FlagValues = field(default_factory=dict)
    categories: tuple[RemoteEntry, ...] = ()
    services: tuple[RemoteEntry, ...] = ()


@dataclass(frozen=True, slots=True)
class SettingsSnapshot:
    logs: FlagValues = field(default_factory=dict)
    block_page: FlagValues = field(default_factory=dict)
    performance: FlagValues = field(default_factory=dict)
    web3: bool | None = None


class PolicyAPIError(RuntimeError):
    """Base class for failures reported by the policy API."""

    def __init__(
        self,
        message: str,
        *,
        operation: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.operation = operation
        self.status_code = status_code


class PolicyNotFoundError(PolicyAPIError):
    """The profile or entry does not exist remotely."""


class PolicyAuthError(PolicyAPIError):
    """The API key was rejected."""


class PolicyDuplicateError(PolicyAPIError):
    """The entry being added already exists."""


class PolicyValidationError(PolicyAPIError):
    """The API rejected the payload as malformed."""


class PolicyTransientError(PolicyAPIError):
    """Network failures and server-side errors that may succeed on retry."""


class PolicyRateLimitedError(PolicyTransientError):
    def __init__(
        self,
        message: str,
        *,
        operation: str | None = None,
        status_code: int | None = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message, operation=operation, status_code=status_code)
        self.retry_after = retry_after


class PolicyTimeoutError(PolicyTransientError):
    """The call did not finish before the reconcile deadline."""


@runtime_checkable
class PolicyAPI(Protocol):
    def create_profile(self, name: str) -> str: ...

    def get_profile(self, profile_id: str) -> RemoteProfile: ...

    def update_profile(self, profile_id: str, name: str) -> None: ...

    def delete_profile(self, profile_id: str) -> None: ...

    def get_security(self, profile_id: str) -> FlagValues: ...

    def update_security(self, profile_id: str, values: FlagValues) -> None: ...

    def get_security_tlds(self, profile_id: str) -> list[RemoteEntry]: ...

    def sync_security_tlds(self, profile_id: str, tlds: Sequence[str]) -> None: ...

    def add_security_tld(self, profile_id: str, tld: str) -> None: ...

    def delete_security_tld(self, profile_id: str, tld: str) -> None: ...

    def get_privacy(self, profile_id: str) -> PrivacySnapshot: ...

    def update_privacy(self, profile_id: str, values: FlagValues) -> None: ...

    def sync_privacy_blocklists(self, profile_id: str, ids: Sequence[str]) -> None: ...

    def sync_privacy_natives(self, profile_id: str, ids: Sequence[str]) -> None: ...

    def get_parental_control(self, profile_id: str) -> ParentalControlSnapshot: ...

    def update_parental_control(self, profile_id: str, values: FlagValues) -> None: ...

    def sync_parental_categories(self, profile_id: str, entries: Sequence[RemoteEntry]) -> None: ...

    def sync_parental_services(self, profile_id: str, entries: Sequence[RemoteEntry]) -> None: ...

    def get_denylist(self, profile_id: str) -> list[RemoteEntry]: ...

    def sync_denylist(self, profile_id: str, entries: Sequence[RemoteEntry]) -> None: ...

    def add_denylist_entry(self, profile_id: str, entry: RemoteEntry) -> None: ...

    def delete_denylist_entry(self, profile_id: str, domain: str) -> None: ...

    def get_allowlist(self, profile_id: str) -> list[RemoteEntry]: ...

    def sync_allowlist(self, profile_id: str, entries: Sequence[RemoteEntry]) -> None: ...

    def add_allowlist_entry(self, profile_id: str, entry: RemoteEntry) -> None: ...

    def delete_allowlist_entry(self, profile_id: str, domain: str) -> None: ...

    def get_settings(self, profile_id: str) -> SettingsSnapshot: ...

    def update_settings_logs(self, profile_id: str, values: FlagValues) -> None: ...

    def update_settings_block_page(self, profile_id: str, values: FlagValues) -> None: ...

    def update_settings_performance(self, profile_id: str, values: FlagValues) -> None: ...

    def update_settings(self, profile_id: str, values: FlagValues) -> None:
        """Update top-level settings such as ``web3``."""
        ...


type PolicyAPIFactory = Callable[[str, Deadline], AbstractContextManager[PolicyAPI]]
"""Opens a policy client session bound to one API key and one reconcile deadline."""


__all__ = [
    "FlagValues",
    "ParentalControlSnapshot",
    "PolicyAPI",
    "PolicyAPIError",
    "PolicyAPIFactory",
    "PolicyAuthError",
    "PolicyDuplicateError",
    "PolicyNotFoundError",
    "PolicyRateLimitedError",
    "PolicyTimeoutError",
    "PolicyTransientError",
    "PolicyValidationError",
    "PrivacySnapshot",
    "RemoteEntry",
    "RemoteProfile",
    "SettingsSnapshot",
]
