"""Load resource manifests from YAML or JSON files.

A file may hold several documents (``---`` separated YAML, or a JSON list).
Secrets accept ``stringData`` verbatim and ``data`` base64-encoded, as in
Kubernetes; both are stored decoded.
"""

from __future__ import annotations

import base64
import binascii
from collections.abc import Iterable, Iterator, Mapping
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml
from pydantic import ValidationError

from nextdns_operator.domain.model import Kind, resource_type_for

if TYPE_CHECKING:
    from nextdns_operator.domain.model import Resource

MANIFEST_SUFFIXES = frozenset({".yaml", ".yml", ".json"})


class ManifestError(ValueError):
    def __init__(self, source: str, message: str) -> None:
        super().__init__(f"{source}: {message}")
        self.source = source


def load_manifests(paths: Iterable[Path]) -> list[Resource]:
    """Parse every manifest under ``paths``; directories are scanned non-recursively."""

    resources: list[Resource] = []
    for path in _expand(paths):
        resources.extend(load_manifest_file(path))
    return resources


def load_manifest_file(path: Path) -> list[Resource]:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ManifestError(str(path), f"cannot read file: {exc}") from exc
    return parse_manifests(text, source=str(path))


def parse_manifests(text: str, *, source: str = "<string>") -> list[Resource]:
    try:
        documents = list(yaml.safe_load_all(text))
    except yaml.YAMLError as exc:
        raise ManifestError(source, f"invalid YAML: {exc}") from exc

    resources: list[Resource] = []
    for index, document in enumerate(_flatten(documents)):
        resources.append(parse_document(document, source=f"{source}[{index}]"))
    return resources


def parse_document(document: object, *, source: str = "<document>") -> Resource:
    if not isinstance(document, Mapping):
        raise ManifestError(source, "manifest must be a mapping")
    kind = document.get("kind")
    if not isinstance(kind, str):
        raise ManifestError(source, "manifest has no kind")
    try:
        model = resource_type_for(kind)
    except ValueError as exc:
        raise ManifestError(source, str(exc)) from exc

    payload: dict[str, Any] = {key: value for key, value in document.items() if key != "status"}
    if model.KIND is Kind.SECRET:
        payload = _normalise_secret(payload, source)
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise ManifestError(source, f"invalid {kind}: {exc}") from exc


def dump_resource(resource: Resource, *, fmt: str = "yaml") -> str:
    if fmt == "json":
        return resource.model_dump_json(by_alias=True, exclude_none=True, indent=2)
    return yaml.safe_dump(
        resource.to_payload(), default_flow_style=False, sort_keys=False, width=100
    )


def _normalise_secret(payload: dict[str, Any], source: str) -> dict[str, Any]:
    decoded: dict[str, str] = {}
    for key, value in (payload.pop("data", None) or {}).items():
        try:
            decoded[key] = base64.b64decode(str(value), validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as exc:
            raise ManifestError(source, f"secret key {key!r} is not valid base64") from exc
    for key, value in (payload.pop("stringData", None) or {}).items():
        decoded[key] = str(value)
    payload["data"] = decoded
    payload.pop("type", None)
    return payload


def _flatten(documents: Iterable[object]) -> Iterator[object]:
    for document in documents:
        if document is None:
            continue
        if isinstance(document, list):
            yield from (item for item in document if item is not None)
        else:
            yield document


def _expand(paths: Iterable[Path]) -> Iterator[Path]:
    for path in paths:
        if path.is_dir():
            yield from sorted(
                child for child in path.iterdir() if child.suffix in MANIFEST_SUFFIXES
            )
        else:
            yield path
