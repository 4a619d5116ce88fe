from __future__ import annotations

from nextdns_operator.domain.ports import RemoteEntry
from nextdns_operator.domain.reconciliation import MergedDocument, MergedEntry
from nextdns_operator.domain.reconciliation.desired import (
    PRIVACY_DEFAULTS,
    SECURITY_DEFAULTS,
    build_desired_state,
)
from tests.support.resources import make_profile


def test_undeclared_documents_are_not_managed() -> None:
    profile = make_profile()

    desired = build_desired_state(profile.spec, MergedDocument())

    assert desired.name == "home"
    assert desired.security is None
    assert desired.privacy is None
    assert desired.parental_control is None
    assert desired.settings is None
    assert desired.denylist == ()


def test_security_fills_unset_flags_with_defaults() -> None:
    profile = make_profile(spec={"security": {"nrd": True, "cryptojacking": False}})

    desired = build_desired_state(profile.spec, MergedDocument())

    assert desired.security is not None
    assert desired.security["nrd"] is True
    assert desired.security["cryptojacking"] is False
    assert desired.security["threatIntelligenceFeeds"] is True
    assert set(desired.security) == set(SECURITY_DEFAULTS)


def test_privacy_toggles_keep_only_active_unique_ids() -> None:
    profile = make_profile(
        spec={
            "privacy": {
                "blocklists": [
                    {"id": "nextdns-recommended"},
                    {"id": "oisd", "active": False},
                    {"id": "nextdns-recommended"},
                ],
                "allowAffiliate": True,
            }
        }
    )

    desired = build_desired_state(profile.spec, MergedDocument())

    assert desired.privacy is not None
    assert desired.privacy.blocklists == (RemoteEntry("nextdns-recommended"),)
    assert desired.privacy.natives is None
    assert desired.privacy.flags == {**PRIVACY_DEFAULTS, "allowAffiliate": True}


def test_parental_control_without_lists_manages_only_flags() -> None:
    profile = make_profile(spec={"parentalControl": {"safeSearch": True}})

    desired = build_desired_state(profile.spec, MergedDocument())

    assert desired.parental_control is not None
    assert desired.parental_control.flags == {"safeSearch": True, "youtubeRestrictedMode": False}
    assert desired.parental_control.categories is None
    assert desired.parental_control.services is None


def test_settings_translate_retention_and_logging_switches() -> None:
    profile = make_profile(
        spec={
            "settings": {
                "logs": {"logClientsIPs": False, "retention": "30d"},
                "blockPage": {"enabled": False},
                "performance": {"ecs": True},
                "web3": True,
            }
        }
    )

    desired = build_desired_state(profile.spec, MergedDocument())

    assert desired.settings is not None
    assert desired.settings.logs == {
        "enabled": True,
        "logClientsIPs": False,
        "retention": 30 * 86400,
    }
    assert desired.settings.block_page == {"enabled": False}
    assert desired.settings.performance == {"ecs": True}
    assert desired.settings.web3 is True


def test_merged_lists_become_remote_entries() -> None:
    document = MergedDocument(
        denylist=(MergedEntry("ads.example.com"),),
        tlds=(MergedEntry("zip", source="NextDNSTLDList/default/risky"),),
    )

    desired = build_desired_state(make_profile().spec, document)

    assert desired.denylist == (RemoteEntry("ads.example.com"),)
    assert desired.tlds == (RemoteEntry("zip"),)
    assert desired.allowlist == ()
