"""Translate between NextDNS wire payloads and the policy port's snapshots."""

from __future__ import annotations

from typing import TYPE_CHECKING

from nextdns_operator.domain.ports import (
    ParentalControlSnapshot,
    PrivacySnapshot,
    RemoteEntry,
    SettingsSnapshot,
)

if TYPE_CHECKING:
    from collections.abc import Iterable

    from nextdns_operator.domain.ports import FlagValues

    from .schema import (
        EntryPayload,
        LogsPayload,
        ParentalControlPayload,
        PrivacyPayload,
        SecurityPayload,
        SettingsPayload,
    )


def parse_entries(payloads: Iterable[EntryPayload]) -> list[RemoteEntry]:
    return [RemoteEntry(identifier=payload.id, active=payload.active) for payload in payloads]


def parse_security_flags(payload: SecurityPayload) -> dict[str, object]:
    extra = payload.model_extra or {}
    return {name: value for name, value in extra.items() if isinstance(value, bool)}


def parse_privacy(payload: PrivacyPayload) -> PrivacySnapshot:
    flags: dict[str, object] = {}
    if payload.disguised_trackers is not None:
        flags["disguisedTrackers"] = payload.disguised_trackers
    if payload.allow_affiliate is not None:
        flags["allowAffiliate"] = payload.allow_affiliate
    return PrivacySnapshot(
        flags=flags,
        blocklists=tuple(parse_entries(payload.blocklists)),
        natives=tuple(parse_entries(payload.natives)),
    )


def parse_parental_control(payload: ParentalControlPayload) -> ParentalControlSnapshot:
    flags: dict[str, object] = {}
    if payload.safe_search is not None:
        flags["safeSearch"] = payload.safe_search
    if payload.youtube_restricted_mode is not None:
        flags["youtubeRestrictedMode"] = payload.youtube_restricted_mode
    return ParentalControlSnapshot(
        flags=flags,
        categories=tuple(parse_entries(payload.categories)),
        services=tuple(parse_entries(payload.services)),
    )


def parse_logs(payload: LogsPayload) -> dict[str, object]:
    """Wire ``drop`` switches are the negation of the declared logging switches."""

    logs: dict[str, object] = {
        "logClientsIPs": not payload.drop.ip,
        "logDomains": not payload.drop.domain,
    }
    if payload.enabled is not None:
        logs["enabled"] = payload.enabled
    if payload.retention is not None:
        logs["retention"] = payload.retention
    return logs


def parse_settings(payload: SettingsPayload) -> SettingsSnapshot:
    return SettingsSnapshot(
        logs=parse_logs(payload.logs),
        block_page=payload.block_page.model_dump(by_alias=True, exclude_none=True),
        performance=payload.performance.model_dump(by_alias=True, exclude_none=True),
        web3=payload.web3,
    )


def logs_to_wire(values: FlagValues) -> dict[str, object]:
    wire: dict[str, object] = {}
    drop: dict[str, object] = {}
    for name, value in values.items():
        if name == "logClientsIPs":
            drop["ip"] = not value
        elif name == "logDomains":
            drop["domain"] = not value
        else:
            wire[name] = value
    if drop:
        wire["drop"] = drop
    return wire


def ids_to_wire(ids: Iterable[str]) -> list[dict[str, object]]:
    return [{"id": identifier} for identifier in ids]


def entries_to_wire(entries: Iterable[RemoteEntry]) -> list[dict[str, object]]:
    return [{"id": entry.identifier, "active": entry.active} for entry in entries]
