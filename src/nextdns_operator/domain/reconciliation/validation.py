"""Spec validation performed before any external call.

A profile that fails validation is not requeued: the same spec would fail the
same way, so progress needs an edit.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from nextdns_operator.domain.model import ProfileSpec

    from .resolve import MergedDocument

MAX_DOMAIN_LENGTH = 253

_DOMAIN_PATTERN = re.compile(
    r"^(\*\.)?([a-zA-Z0-9]([a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?\.)+[a-zA-Z]{2,}$"
)
_TLD_PATTERN = re.compile(r"^[a-zA-Z0-9]([a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?$")

RETENTION_SECONDS: dict[str, int] = {
    "1h": 3600,
    "6h": 6 * 3600,
    "1d": 86400,
    "7d": 7 * 86400,
    "30d": 30 * 86400,
    "90d": 90 * 86400,
    "1y": 365 * 86400,
    "2y": 730 * 86400,
}


class SpecValidationError(ValueError):
    """Raised with every problem found, so one status update lists them all."""

    def __init__(self, problems: Sequence[str]) -> None:
        super().__init__("; ".join(problems))
        self.problems = tuple(problems)


def is_valid_domain(value: str) -> bool:
    return len(value) <= MAX_DOMAIN_LENGTH and _DOMAIN_PATTERN.match(value) is not None


def is_valid_tld(value: str) -> bool:
    return _TLD_PATTERN.match(value.removeprefix(".")) is not None


def retention_seconds(value: str) -> int:
    try:
        return RETENTION_SECONDS[value.strip().lower()]
    except KeyError as exc:
        choices = ", ".join(RETENTION_SECONDS)
        raise SpecValidationError([f"retention {value!r} is not one of {choices}"]) from exc


def invalid_domains(domains: Iterable[str]) -> list[str]:
    return [domain for domain in domains if not is_valid_domain(domain)]


def invalid_tlds(tlds: Iterable[str]) -> list[str]:
    return [tld for tld in tlds if not is_valid_tld(tld)]


def validate_profile_spec(spec: ProfileSpec) -> None:
    problems: list[str] = []
    if not spec.name.strip():
        problems.append("name must not be blank")
    for field_name, entries in (("allowlist", spec.allowlist), ("denylist", spec.denylist)):
        bad = invalid_domains(entry.domain for entry in entries)
        if bad:
            problems.append(f"{field_name} has invalid domains: {', '.join(bad)}")
    logs = spec.settings.logs if spec.settings else None
    if logs is not None and logs.retention is not None:
        if logs.retention.strip().lower() not in RETENTION_SECONDS:
            problems.append(
                f"retention {logs.retention!r} is not one of {', '.join(RETENTION_SECONDS)}"
            )
    if problems:
        raise SpecValidationError(problems)


def validate_document(document: MergedDocument) -> None:
    """Reject merged entries coming from shared lists that do not validate."""

    problems: list[str] = []
    for category, entries, check in (
        ("allowlist", document.allowlist, is_valid_domain),
        ("denylist", document.denylist, is_valid_domain),
        ("tlds", document.tlds, is_valid_tld),
    ):
        bad = [
            f"{entry.identifier} ({entry.source})"
            for entry in entries
            if not check(entry.identifier)
        ]
        if bad:
            problems.append(f"{category} has invalid entries: {', '.join(bad)}")
    if problems:
        raise SpecValidationError(problems)
