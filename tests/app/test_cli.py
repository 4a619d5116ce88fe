from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from nextdns_operator.adapters.manifests import ManifestError
from nextdns_operator.config import InvalidConfigurationError
from nextdns_operator.domain.model import Kind, ResourceKey
from nextdns_operator.domain.ports import ResourceNotFoundError
from nextdns_operator.ui import cli as cli_module
from tests.support.resources import make_denylist, make_profile


@pytest.fixture
def opened(monkeypatch: pytest.MonkeyPatch) -> list[str | None]:
    uris: list[str | None] = []
    monkeypatch.setattr(cli_module, "open_store", uris.append)
    return uris


def test_apply_passes_every_filename(
    monkeypatch: pytest.MonkeyPatch, opened: list[str | None]
) -> None:
    captured: list[list[Path]] = []

    def fake_apply(paths: list[Path]) -> list[object]:
        captured.append(paths)
        return []

    monkeypatch.setattr(cli_module, "apply_manifests", fake_apply)

    cli_module.main(
        ["--database-uri", "sqlite+pysqlite:///:memory:", "apply", "-f", "a.yaml", "-f", "dir"]
    )

    assert opened == ["sqlite+pysqlite:///:memory:"]
    assert captured == [[Path("a.yaml"), Path("dir")]]


def test_reconcile_runs_a_single_pass(
    monkeypatch: pytest.MonkeyPatch, opened: list[str | None]
) -> None:
    calls: list[str] = []
    monkeypatch.setattr(cli_module, "reconcile_all", lambda: calls.append("reconcile") or 0)
    monkeypatch.setattr(cli_module, "run_operator", lambda: calls.append("run"))

    cli_module.main(["reconcile"])
    cli_module.main(["run"])

    assert calls == ["reconcile", "run"]
    assert opened == [None, None]


def test_delete_uses_namespace_flag(
    monkeypatch: pytest.MonkeyPatch, opened: list[str | None]
) -> None:
    captured: list[tuple[str, str, str]] = []
    monkeypatch.setattr(
        cli_module,
        "delete_resource",
        lambda kind, name, namespace: captured.append((kind, name, namespace)),
    )

    cli_module.main(["delete", "NextDNSDenylist", "ads", "-n", "shared"])

    assert captured == [("NextDNSDenylist", "ads", "shared")]


def test_get_prints_yaml_documents(
    monkeypatch: pytest.MonkeyPatch,
    opened: list[str | None],
    capsys: pytest.CaptureFixture[str],
) -> None:
    monkeypatch.setattr(
        cli_module,
        "get_resources",
        lambda kind, name, namespace: [make_profile("a"), make_denylist("ads", "x.example.com")],
    )

    cli_module.main(["get", "NextDNSProfile"])

    documents = list(yaml.safe_load_all(capsys.readouterr().out))
    assert [document["metadata"]["name"] for document in documents] == ["a", "ads"]


def test_unknown_log_level_exits_with_usage_error(opened: list[str | None]) -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli_module.main(["--log-level", "chatty", "reconcile"])

    assert excinfo.value.code == 2
    assert opened == []


@pytest.mark.parametrize(
    "error",
    [
        ManifestError("bad.yaml", "invalid YAML"),
        InvalidConfigurationError("SYNC_PERIOD", "soon", "not a duration"),
    ],
)
def test_invalid_input_exits_with_usage_error(
    monkeypatch: pytest.MonkeyPatch, opened: list[str | None], error: Exception
) -> None:
    def fail(paths: list[Path]) -> list[object]:
        raise error

    monkeypatch.setattr(cli_module, "apply_manifests", fail)

    with pytest.raises(SystemExit) as excinfo:
        cli_module.main(["apply", "-f", "bad.yaml"])

    assert excinfo.value.code == 2


def test_missing_resource_exits_with_failure(
    monkeypatch: pytest.MonkeyPatch, opened: list[str | None]
) -> None:
    def missing(kind: str, name: str, namespace: str) -> None:
        raise ResourceNotFoundError(Kind.PROFILE, ResourceKey(namespace, name))

    monkeypatch.setattr(cli_module, "delete_resource", missing)

    with pytest.raises(SystemExit) as excinfo:
        cli_module.main(["delete", "NextDNSProfile", "ghost"])

    assert excinfo.value.code == 1


def test_unknown_kind_is_rejected_by_the_parser(opened: list[str | None]) -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli_module.main(["get", "Deployment"])

    assert excinfo.value.code == 2
