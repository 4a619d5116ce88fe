"""Translate a profile spec plus its merged lists into desired remote state.

Flag documents are only managed when the profile declares them; unset flags take
the documented NextDNS defaults. The three domain/TLD collections are always
managed, so an empty declaration shrinks the remote list to zero.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from nextdns_operator.domain.ports import RemoteEntry

from .validation import retention_seconds

if TYPE_CHECKING:
    from collections.abc import Iterable

    from nextdns_operator.domain.model import (
        ParentalControlSpec,
        PrivacySpec,
        ProfileSpec,
        SecuritySpec,
        SettingsSpec,
        ToggleEntry,
    )
    from nextdns_operator.domain.ports import FlagValues

    from .resolve import MergedDocument, MergedEntry

SECURITY_DEFAULTS: dict[str, bool] = {
    "threatIntelligenceFeeds": True,
    "aiThreatDetection": True,
    "googleSafeBrowsing": True,
    "cryptojacking": True,
    "dnsRebinding": True,
    "idnHomographs": True,
    "typosquatting": True,
    "dga": True,
    "nrd": False,
    "ddns": False,
    "parking": True,
    "csam": True,
}
PRIVACY_DEFAULTS: dict[str, bool] = {"disguisedTrackers": True, "allowAffiliate": False}
PARENTAL_CONTROL_DEFAULTS: dict[str, bool] = {"safeSearch": False, "youtubeRestrictedMode": False}


@dataclass(frozen=True, slots=True)
class DesiredPrivacy:
    flags: FlagValues
    blocklists: tuple[RemoteEntry, ...] | None = None
    natives: tuple[RemoteEntry, ...] | None = None


@dataclass(frozen=True, slots=True)
class DesiredParentalControl:
    flags: FlagValues
    categories: tuple[RemoteEntry, ...] | None = None
    services: tuple[RemoteEntry, ...] | None = None


@dataclass(frozen=True, slots=True)
class DesiredSettings:
    logs: FlagValues = field(default_factory=dict)
    block_page: FlagValues = field(default_factory=dict)
    performance: FlagValues = field(default_factory=dict)
    web3: bool | None = None


@dataclass(frozen=True, slots=True)
class DesiredState:
    """Everything one sync pass should make true remotely.

    ``None`` for a document or a sub-collection means "not managed".
    """

    name: str
    allowlist: tuple[RemoteEntry, ...] = ()
    denylist: tuple[RemoteEntry, ...] = ()
    tlds: tuple[RemoteEntry, ...] = ()
    security: FlagValues | None = None
    privacy: DesiredPrivacy | None = None
    parental_control: DesiredParentalControl | None = None
    settings: DesiredSettings | None = None


def _flags(
    spec: SecuritySpec | PrivacySpec | ParentalControlSpec, defaults: dict[str, bool]
) -> dict[str, object]:
    declared = spec.model_dump(by_alias=True, exclude_none=True)
    return {name: declared.get(name, default) for name, default in defaults.items()}


def _toggles(entries: Iterable[ToggleEntry]) -> tuple[RemoteEntry, ...] | None:
    declared = list(entries)
    if not declared:
        return None
    seen: set[str] = set()
    active: list[RemoteEntry] = []
    for entry in declared:
        if not entry.is_active or entry.id in seen:
            continue
        seen.add(entry.id)
        active.append(RemoteEntry(identifier=entry.id))
    return tuple(active)


def _entries(merged: Iterable[MergedEntry]) -> tuple[RemoteEntry, ...]:
    return tuple(RemoteEntry(identifier=entry.identifier, active=entry.active) for entry in merged)


def _settings(spec: SettingsSpec) -> DesiredSettings:
    logs: dict[str, object] = {"enabled": True}
    if spec.logs is not None:
        logs["enabled"] = True if spec.logs.enabled is None else spec.logs.enabled
        if spec.logs.log_clients_ips is not None:
            logs["logClientsIPs"] = spec.logs.log_clients_ips
        if spec.logs.log_domains is not None:
            logs["logDomains"] = spec.logs.log_domains
        if spec.logs.retention is not None:
            logs["retention"] = retention_seconds(spec.logs.retention)
    block_page_enabled = True
    if spec.block_page is not None and spec.block_page.enabled is not None:
        block_page_enabled = spec.block_page.enabled
    performance: dict[str, object] = {}
    if spec.performance is not None:
        performance = spec.performance.model_dump(by_alias=True, exclude_none=True)
    return DesiredSettings(
        logs=logs,
        block_page={"enabled": block_page_enabled},
        performance=performance,
        web3=spec.web3,
    )


def build_desired_state(spec: ProfileSpec, document: MergedDocument) -> DesiredState:
    privacy = None
    if spec.privacy is not None:
        privacy = DesiredPrivacy(
            flags=_flags(spec.privacy, PRIVACY_DEFAULTS),
            blocklists=_toggles(spec.privacy.blocklists),
            natives=_toggles(spec.privacy.natives),
        )
    parental_control = None
    if spec.parental_control is not None:
        parental_control = DesiredParentalControl(
            flags=_flags(spec.parental_control, PARENTAL_CONTROL_DEFAULTS),
            categories=_toggles(spec.parental_control.categories),
            services=_toggles(spec.parental_control.services),
        )
    return DesiredState(
        name=spec.name,
        allowlist=_entries(document.allowlist),
        denylist=_entries(document.denylist),
        tlds=_entries(document.tlds),
        security=_flags(spec.security, SECURITY_DEFAULTS) if spec.security is not None else None,
        privacy=privacy,
        parental_control=parental_control,
        settings=_settings(spec.settings) if spec.settings is not None else None,
    )
