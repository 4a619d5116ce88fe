"""Profile configuration import from a JSON document held in a ConfigMap.

The document has the shape of the profile spec's ``security``, ``privacy``,
``parentalControl``, ``settings``, ``allowlist`` and ``denylist`` fields.
Parsing is strict first; when the only problems are unknown fields they are
dropped and reported as warnings. The result is merged as a fill-in: values set
explicitly on the profile always win, and lists are appended without duplicates.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field, ValidationError

from nextdns_operator.domain.model import (
    DomainEntry,
    ParentalControlSpec,
    PrivacySpec,
    SecuritySpec,
    SettingsSpec,
)
from nextdns_operator.domain.model.resources import ResourceModel

from .validation import SpecValidationError, invalid_domains

if TYPE_CHECKING:
    from nextdns_operator.domain.model import ProfileSpec

MAX_IMPORT_DENYLIST_ENTRIES = 1000
MAX_IMPORT_ALLOWLIST_ENTRIES = 1000
MAX_IMPORT_BLOCKLIST_ENTRIES = 100


class ConfigImportError(SpecValidationError):
    """The imported document cannot be used; the profile needs a fixed import."""


class ImportedConfig(ResourceModel):
    security: SecuritySpec | None = None
    privacy: PrivacySpec | None = None
    parental_control: ParentalControlSpec | None = None
    settings: SettingsSpec | None = None
    allowlist: list[DomainEntry] = Field(default_factory=list)
    denylist: list[DomainEntry] = Field(default_factory=list)


@dataclass(slots=True)
class ImportResult:
    config: ImportedConfig
    warnings: list[str] = field(default_factory=list)


def parse_import(raw: str, *, source: str = "import") -> ImportResult:
    try:
        document = json.loads(raw)
    except json.JSONDecodeError as exc:
        message = f"{source}: invalid JSON ({exc.msg} at line {exc.lineno})"
        raise ConfigImportError([message]) from exc
    if not isinstance(document, dict):
        raise ConfigImportError([f"{source}: expected a JSON object"])

    try:
        config = ImportedConfig.model_validate(document)
    except ValidationError as exc:
        unknown = [error["loc"] for error in exc.errors() if error["type"] == "extra_forbidden"]
        if not unknown or len(unknown) != exc.error_count():
            problems = [f"{source}: {_describe(error)}" for error in exc.errors()]
            raise ConfigImportError(problems) from exc
        for location in unknown:
            _drop(document, location)
        warnings = [
            f"{source}: unknown field {_dotted(location)} ignored" for location in unknown
        ]
        config = ImportedConfig.model_validate(document)
    else:
        warnings = []

    validate_import(config, source=source)
    return ImportResult(config=config, warnings=warnings)


def validate_import(config: ImportedConfig, *, source: str = "import") -> None:
    problems: list[str] = []
    if len(config.denylist) > MAX_IMPORT_DENYLIST_ENTRIES:
        problems.append(
            f"{source}: denylist has {len(config.denylist)} entries, "
            f"maximum is {MAX_IMPORT_DENYLIST_ENTRIES}"
        )
    if len(config.allowlist) > MAX_IMPORT_ALLOWLIST_ENTRIES:
        problems.append(
            f"{source}: allowlist has {len(config.allowlist)} entries, "
            f"maximum is {MAX_IMPORT_ALLOWLIST_ENTRIES}"
        )
    if config.privacy is not None and len(config.privacy.blocklists) > MAX_IMPORT_BLOCKLIST_ENTRIES:
        problems.append(
            f"{source}: blocklists has {len(config.privacy.blocklists)} entries, "
            f"maximum is {MAX_IMPORT_BLOCKLIST_ENTRIES}"
        )
    for name, entries in (("denylist", config.denylist), ("allowlist", config.allowlist)):
        bad = invalid_domains(entry.domain for entry in entries)
        if bad:
            problems.append(f"{source}: {name} has invalid domains: {', '.join(bad)}")
    if problems:
        raise ConfigImportError(problems)


def merge_import(spec: ProfileSpec, imported: ImportedConfig) -> ProfileSpec:
    """Return ``spec`` with gaps filled from ``imported``."""

    return spec.model_copy(
        update={
            "security": _fill(spec.security, imported.security),
            "privacy": _fill(spec.privacy, imported.privacy),
            "parental_control": _fill(spec.parental_control, imported.parental_control),
            "settings": _fill(spec.settings, imported.settings),
            "allowlist": _append_unique(spec.allowlist, imported.allowlist),
            "denylist": _append_unique(spec.denylist, imported.denylist),
        }
    )


def _fill[M: BaseModel](explicit: M | None, imported: M | None) -> M | None:
    if explicit is None:
        return imported.model_copy(deep=True) if imported is not None else None
    if imported is None:
        return explicit
    updates: dict[str, Any] = {}
    for name in type(explicit).model_fields:
        mine = getattr(explicit, name)
        theirs = getattr(imported, name)
        if isinstance(mine, BaseModel) or isinstance(theirs, BaseModel):
            updates[name] = _fill(mine, theirs)
        elif isinstance(mine, list):
            updates[name] = _append_unique(mine, theirs)
        elif mine is None:
            updates[name] = theirs
    return explicit.model_copy(update=updates)


def _entry_key(entry: Any) -> str:
    identifier = getattr(entry, "identifier", None) or getattr(entry, "id", "")
    return str(identifier).casefold()


def _append_unique[E](explicit: list[E], imported: list[E]) -> list[E]:
    seen = {_entry_key(entry) for entry in explicit}
    merged = list(explicit)
    for entry in imported:
        key = _entry_key(entry)
        if key in seen:
            continue
        seen.add(key)
        merged.append(entry)
    return merged


def _dotted(location: tuple[int | str, ...]) -> str:
    return ".".join(str(part) for part in location)


def _describe(error: Any) -> str:
    return f"{_dotted(error['loc'])}: {error['msg']}"


def _drop(document: Any, location: tuple[int | str, ...]) -> None:
    node = document
    for part in location[:-1]:
        node = node[part]
    if isinstance(node, dict):
        node.pop(location[-1], None)
