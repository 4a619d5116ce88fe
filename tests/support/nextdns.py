"""In-memory NextDNS fake implementing the policy API port."""

from __future__ import annotations

import itertools
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from nextdns_operator.domain.ports import (
    ParentalControlSnapshot,
    PolicyAPI,
    PolicyAPIError,
    PolicyDuplicateError,
    PolicyNotFoundError,
    PrivacySnapshot,
    RemoteEntry,
    RemoteProfile,
    SettingsSnapshot,
)

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

    from nextdns_operator.domain.ports import FlagValues
    from nextdns_operator.domain.reconciliation import Deadline

READ_METHODS = frozenset(
    {
        "get_profile",
        "get_security",
        "get_security_tlds",
        "get_privacy",
        "get_parental_control",
        "get_denylist",
        "get_allowlist",
        "get_settings",
    }
)


@dataclass(slots=True)
class RemoteProfileState:
    name: str
    security: dict[str, object] = field(default_factory=dict)
    tlds: list[RemoteEntry] = field(default_factory=list)
    privacy: dict[str, object] = field(default_factory=dict)
    blocklists: list[RemoteEntry] = field(default_factory=list)
    natives: list[RemoteEntry] = field(default_factory=list)
    parental_control: dict[str, object] = field(default_factory=dict)
    categories: list[RemoteEntry] = field(default_factory=list)
    services: list[RemoteEntry] = field(default_factory=list)
    denylist: list[RemoteEntry] = field(default_factory=list)
    allowlist: list[RemoteEntry] = field(default_factory=list)
    logs: dict[str, object] = field(default_factory=dict)
    block_page: dict[str, object] = field(default_factory=dict)
    performance: dict[str, object] = field(default_factory=dict)
    web3: bool | None = None


class FakeNextDNS:
    """Records every call; ``failures`` maps a method name to the error it raises."""

    def __init__(self) -> None:
        self.profiles: dict[str, RemoteProfileState] = {}
        self.calls: list[tuple[str, str, object]] = []
        self.failures: dict[str, PolicyAPIError] = {}
        self.api_keys: list[str] = []
        self._ids = itertools.count(1)

    # -- helpers used by tests --------------------------------------------

    def seed(self, profile_id: str, name: str = "seeded") -> RemoteProfileState:
        state = RemoteProfileState(name=name)
        self.profiles[profile_id] = state
        return state

    @property
    def mutations(self) -> list[tuple[str, str, object]]:
        return [call for call in self.calls if call[0] not in READ_METHODS]

    def mutation_names(self) -> list[str]:
        return [name for name, _profile_id, _arg in self.mutations]

    def reset_calls(self) -> None:
        self.calls.clear()

    @contextmanager
    def factory(self, api_key: str, deadline: Deadline) -> Iterator[FakeNextDNS]:
        _ = deadline
        self.api_keys.append(api_key)
        yield self

    def _record(self, method: str, profile_id: str, arg: object = None) -> RemoteProfileState:
        self.calls.append((method, profile_id, arg))
        failure = self.failures.get(method)
        if failure is not None:
            raise failure
        state = self.profiles.get(profile_id)
        if state is None:
            raise PolicyNotFoundError(f"profile {profile_id} not found", operation=method)
        return state

    # -- profiles ---------------------------------------------------------

    def create_profile(self, name: str) -> str:
        self.calls.append(("create_profile", "", name))
        failure = self.failures.get("create_profile")
        if failure is not None:
            raise failure
        profile_id = f"p{next(self._ids):05d}"
        self.profiles[profile_id] = RemoteProfileState(name=name)
        return profile_id

    def get_profile(self, profile_id: str) -> RemoteProfile:
        state = self._record("get_profile", profile_id)
        return RemoteProfile(id=profile_id, name=state.name)

    def update_profile(self, profile_id: str, name: str) -> None:
        self._record("update_profile", profile_id, name).name = name

    def delete_profile(self, profile_id: str) -> None:
        self._record("delete_profile", profile_id)
        del self.profiles[profile_id]

    # -- security ---------------------------------------------------------

    def get_security(self, profile_id: str) -> FlagValues:
        return dict(self._record("get_security", profile_id).security)

    def update_security(self, profile_id: str, values: FlagValues) -> None:
        self._record("update_security", profile_id, dict(values)).security.update(values)

    def get_security_tlds(self, profile_id: str) -> list[RemoteEntry]:
        return list(self._record("get_security_tlds", profile_id).tlds)

    def sync_security_tlds(self, profile_id: str, tlds: Sequence[str]) -> None:
        state = self._record("sync_security_tlds", profile_id, list(tlds))
        state.tlds = [RemoteEntry(tld) for tld in tlds]

    def add_security_tld(self, profile_id: str, tld: str) -> None:
        state = self._record("add_security_tld", profile_id, tld)
        if all(entry.identifier != tld for entry in state.tlds):
            state.tlds.append(RemoteEntry(tld))

    def delete_security_tld(self, profile_id: str, tld: str) -> None:
        state = self._record("delete_security_tld", profile_id, tld)
        state.tlds = _without(state.tlds, tld, "tld")

    # -- privacy ----------------------------------------------------------

    def get_privacy(self, profile_id: str) -> PrivacySnapshot:
        state = self._record("get_privacy", profile_id)
        return PrivacySnapshot(
            flags=dict(state.privacy),
            blocklists=tuple(state.blocklists),
            natives=tuple(state.natives),
        )

    def update_privacy(self, profile_id: str, values: FlagValues) -> None:
        self._record("update_privacy", profile_id, dict(values)).privacy.update(values)

    def sync_privacy_blocklists(self, profile_id: str, ids: Sequence[str]) -> None:
        state = self._record("sync_privacy_blocklists", profile_id, list(ids))
        state.blocklists = [RemoteEntry(identifier) for identifier in ids]

    def sync_privacy_natives(self, profile_id: str, ids: Sequence[str]) -> None:
        state = self._record("sync_privacy_natives", profile_id, list(ids))
        state.natives = [RemoteEntry(identifier) for identifier in ids]

    # -- parental control -------------------------------------------------

    def get_parental_control(self, profile_id: str) -> ParentalControlSnapshot:
        state = self._record("get_parental_control", profile_id)
        return ParentalControlSnapshot(
            flags=dict(state.parental_control),
            categories=tuple(state.categories),
            services=tuple(state.services),
        )

    def update_parental_control(self, profile_id: str, values: FlagValues) -> None:
        state = self._record("update_parental_control", profile_id, dict(values))
        state.parental_control.update(values)

    def sync_parental_categories(self, profile_id: str, entries: Sequence[RemoteEntry]) -> None:
        state = self._record("sync_parental_categories", profile_id, list(entries))
        state.categories = list(entries)

    def sync_parental_services(self, profile_id: str, entries: Sequence[RemoteEntry]) -> None:
        state = self._record("sync_parental_services", profile_id, list(entries))
        state.services = list(entries)

    # -- domain lists -----------------------------------------------------

    def get_denylist(self, profile_id: str) -> list[RemoteEntry]:
        return list(self._record("get_denylist", profile_id).denylist)

    def sync_denylist(self, profile_id: str, entries: Sequence[RemoteEntry]) -> None:
        self._record("sync_denylist", profile_id, list(entries)).denylist = list(entries)

    def add_denylist_entry(self, profile_id: str, entry: RemoteEntry) -> None:
        state = self._record("add_denylist_entry", profile_id, entry)
        state.denylist = [*_without(state.denylist, entry.identifier, None), entry]

    def delete_denylist_entry(self, profile_id: str, domain: str) -> None:
        state = self._record("delete_denylist_entry", profile_id, domain)
        state.denylist = _without(state.denylist, domain, "domain")

    def get_allowlist(self, profile_id: str) -> list[RemoteEntry]:
        return list(self._record("get_allowlist", profile_id).allowlist)

    def sync_allowlist(self, profile_id: str, entries: Sequence[RemoteEntry]) -> None:
        self._record("sync_allowlist", profile_id, list(entries)).allowlist = list(entries)

    def add_allowlist_entry(self, profile_id: str, entry: RemoteEntry) -> None:
        state = self._record("add_allowlist_entry", profile_id, entry)
        state.allowlist = [*_without(state.allowlist, entry.identifier, None), entry]

    def delete_allowlist_entry(self, profile_id: str, domain: str) -> None:
        state = self._record("delete_allowlist_entry", profile_id, domain)
        state.allowlist = _without(state.allowlist, domain, "domain")

    # -- settings ---------------------------------------------------------

    def get_settings(self, profile_id: str) -> SettingsSnapshot:
        state = self._record("get_settings", profile_id)
        return SettingsSnapshot(
            logs=dict(state.logs),
            block_page=dict(state.block_page),
            performance=dict(state.performance),
            web3=state.web3,
        )

    def update_settings_logs(self, profile_id: str, values: FlagValues) -> None:
        self._record("update_settings_logs", profile_id, dict(values)).logs.update(values)

    def update_settings_block_page(self, profile_id: str, values: FlagValues) -> None:
        state = self._record("update_settings_block_page", profile_id, dict(values))
        state.block_page.update(values)

    def update_settings_performance(self, profile_id: str, values: FlagValues) -> None:
        state = self._record("update_settings_performance", profile_id, dict(values))
        state.performance.update(values)

    def update_settings(self, profile_id: str, values: FlagValues) -> None:
        state = self._record("update_settings", profile_id, dict(values))
        if "web3" in values:
            state.web3 = bool(values["web3"])


def _without(
    entries: list[RemoteEntry], identifier: str, missing: str | None
) -> list[RemoteEntry]:
    """Drop ``identifier``; raise NotFound for an absent entry when ``missing`` is given."""

    kept = [entry for entry in entries if entry.identifier.casefold() != identifier.casefold()]
    if missing is not None and len(kept) == len(entries):
        raise PolicyNotFoundError(f"{missing} {identifier} not found")
    return kept


def duplicate_error(method: str) -> PolicyDuplicateError:
    return PolicyDuplicateError("duplicate", operation=method, status_code=409)


if TYPE_CHECKING:

    def _fake_check(fake: FakeNextDNS) -> PolicyAPI:
        return fake
