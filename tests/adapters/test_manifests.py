from __future__ import annotations

import base64
import json
from pathlib import Path  # noqa: TC003

import pytest
import yaml

from nextdns_operator.adapters.manifests import (
    ManifestError,
    dump_resource,
    load_manifests,
    parse_manifests,
)
from nextdns_operator.domain.model import NextDNSDenylist, NextDNSProfile, Secret
from tests.support.resources import make_profile

PROFILE_AND_LIST = """\
apiVersion: nextdns.io/v1alpha1
kind: NextDNSProfile
metadata:
  name: kids
spec:
  name: Kids
  credentialsRef:
    name: nextdns-credentials
  denylistRefs:
    - name: ads
status:
  phase: Ready
---
apiVersion: nextdns.io/v1alpha1
kind: NextDNSDenylist
metadata:
  name: ads
  namespace: shared
spec:
  domains:
    - domain: ads.example.com
    - domain: tracker.example.com
      active: false
"""


def test_multi_document_yaml_parses_every_resource() -> None:
    profile, denylist = parse_manifests(PROFILE_AND_LIST)

    assert isinstance(profile, NextDNSProfile)
    assert profile.spec.name == "Kids"
    assert [ref.name for ref in profile.spec.denylist_refs] == ["ads"]
    assert profile.status.phase == "Pending"
    assert isinstance(denylist, NextDNSDenylist)
    assert denylist.metadata.namespace == "shared"
    assert [entry.is_active for entry in denylist.spec.domains] == [True, False]


def test_json_list_documents_are_flattened() -> None:
    text = json.dumps(
        [
            {"kind": "ConfigMap", "metadata": {"name": "import"}, "data": {"config.json": "{}"}},
            {"kind": "NextDNSTLDList", "metadata": {"name": "risky"}, "spec": {"tlds": []}},
        ]
    )

    assert [resource.metadata.name for resource in parse_manifests(text)] == ["import", "risky"]


def test_secret_data_is_decoded_and_string_data_kept() -> None:
    encoded = base64.b64encode(b"key-from-data").decode()
    text = yaml.safe_dump(
        {
            "apiVersion": "v1",
            "kind": "Secret",
            "type": "Opaque",
            "metadata": {"name": "nextdns-credentials"},
            "data": {"api-key": encoded},
            "stringData": {"backup-key": "plain"},
        }
    )

    (secret,) = parse_manifests(text)

    assert isinstance(secret, Secret)
    assert secret.data == {"api-key": "key-from-data", "backup-key": "plain"}


def test_invalid_base64_secret_is_rejected() -> None:
    text = "kind: Secret\nmetadata: {name: creds}\ndata: {api-key: '%%%'}\n"

    with pytest.raises(ManifestError, match="not valid base64"):
        parse_manifests(text, source="creds.yaml")


@pytest.mark.parametrize(
    ("text", "message"),
    [
        ("kind: Deployment\nmetadata: {name: x}\n", "Unknown resource kind"),
        ("metadata: {name: x}\n", "no kind"),
        ("- just\n- strings\n", "must be a mapping"),
        ("kind: NextDNSProfile\nmetadata: {name: x}\nspec: {name: x}\n", "invalid NextDNSProfile"),
        ("kind: [unclosed\n", "invalid YAML"),
    ],
)
def test_malformed_manifests_raise(text: str, message: str) -> None:
    with pytest.raises(ManifestError, match=message):
        parse_manifests(text)


def test_dump_round_trips_through_the_parser() -> None:
    profile = make_profile("home", spec={"denylist": [{"domain": "ads.example.com"}]})

    (from_yaml,) = parse_manifests(dump_resource(profile))
    as_json = json.loads(dump_resource(profile, fmt="json"))

    assert from_yaml == profile
    assert as_json["kind"] == "NextDNSProfile"
    assert as_json["spec"]["credentialsRef"]["name"] == "nextdns-credentials"


def test_directory_scan_reads_manifest_files_in_order(tmp_path: Path) -> None:
    (tmp_path / "b.yaml").write_text(
        "kind: NextDNSDenylist\nmetadata: {name: b}\nspec: {domains: []}\n", encoding="utf-8"
    )
    (tmp_path / "a.json").write_text(
        json.dumps({"kind": "NextDNSAllowlist", "metadata": {"name": "a"}, "spec": {}}),
        encoding="utf-8",
    )
    (tmp_path / "notes.txt").write_text("ignored", encoding="utf-8")

    resources = load_manifests([tmp_path])

    assert [resource.metadata.name for resource in resources] == ["a", "b"]


def test_missing_file_is_a_manifest_error(tmp_path: Path) -> None:
    with pytest.raises(ManifestError, match="cannot read file"):
        load_manifests([tmp_path / "absent.yaml"])
