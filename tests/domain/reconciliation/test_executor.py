from __future__ import annotations

from nextdns_operator.domain.ports import PolicyNotFoundError, PolicyTransientError, RemoteEntry
from nextdns_operator.domain.reconciliation import Collection, SyncExecutor
from nextdns_operator.domain.reconciliation.desired import (
    DesiredParentalControl,
    DesiredPrivacy,
    DesiredSettings,
    DesiredState,
)
from tests.support.nextdns import FakeNextDNS


def _state(**overrides: object) -> DesiredState:
    return DesiredState(name="home", **overrides)  # type: ignore[arg-type]


def test_sync_applies_granular_list_changes(fake_nextdns: FakeNextDNS) -> None:
    remote = fake_nextdns.seed("abc123", name="home")
    remote.denylist = [RemoteEntry("old.example.com"), RemoteEntry("keep.example.com")]

    report = SyncExecutor(fake_nextdns).sync(
        "abc123",
        _state(denylist=(RemoteEntry("keep.example.com"), RemoteEntry("new.example.com"))),
    )

    assert report.succeeded
    assert fake_nextdns.mutation_names() == ["add_denylist_entry", "delete_denylist_entry"]
    assert [entry.identifier for entry in remote.denylist] == [
        "keep.example.com",
        "new.example.com",
    ]
    assert report.mutations == 2


def test_sync_against_matching_remote_issues_no_writes(fake_nextdns: FakeNextDNS) -> None:
    remote = fake_nextdns.seed("abc123", name="home")
    remote.security = {"cryptojacking": True}
    remote.tlds = [RemoteEntry("zip")]
    remote.logs = {"enabled": True, "logClientsIPs": True}

    report = SyncExecutor(fake_nextdns).sync(
        "abc123",
        _state(
            security={"cryptojacking": True},
            tlds=(RemoteEntry("zip"),),
            settings=DesiredSettings(logs={"enabled": True, "logClientsIPs": True}),
        ),
    )

    assert report.succeeded
    assert report.mutations == 0
    assert fake_nextdns.mutations == []


def test_replace_threshold_switches_to_whole_list_write(fake_nextdns: FakeNextDNS) -> None:
    fake_nextdns.seed("abc123", name="home")
    wanted = tuple(RemoteEntry(f"d{index}.example.com") for index in range(3))

    SyncExecutor(fake_nextdns, replace_threshold=2).sync("abc123", _state(allowlist=wanted))

    assert fake_nextdns.mutation_names() == ["sync_allowlist"]


def test_failed_collection_does_not_stop_the_others(fake_nextdns: FakeNextDNS) -> None:
    remote = fake_nextdns.seed("abc123", name="home")
    fake_nextdns.failures["add_denylist_entry"] = PolicyTransientError("boom")

    report = SyncExecutor(fake_nextdns).sync(
        "abc123",
        _state(
            denylist=(RemoteEntry("ads.example.com"),),
            allowlist=(RemoteEntry("ok.example.com"),),
            security={"nrd": True},
        ),
    )

    assert not report.succeeded
    assert not report.synced(Collection.DENYLIST)
    assert report.synced(Collection.ALLOWLIST)
    assert report.synced(Collection.SECURITY)
    assert isinstance(report.first_error, PolicyTransientError)
    assert [entry.identifier for entry in remote.allowlist] == ["ok.example.com"]
    assert remote.security == {"nrd": True}


def test_remove_of_missing_entry_counts_as_done(fake_nextdns: FakeNextDNS) -> None:
    remote = fake_nextdns.seed("abc123", name="home")
    remote.tlds = [RemoteEntry("zip")]

    fake_nextdns.failures["delete_security_tld"] = PolicyNotFoundError("tld zip not found")

    report = SyncExecutor(fake_nextdns).sync("abc123", _state())

    assert report.synced(Collection.TLDS)


def test_profile_rename_and_toggle_collections(fake_nextdns: FakeNextDNS) -> None:
    remote = fake_nextdns.seed("abc123", name="old name")
    remote.blocklists = [RemoteEntry("oisd")]

    SyncExecutor(fake_nextdns).sync(
        "abc123",
        _state(
            privacy=DesiredPrivacy(
                flags={"disguisedTrackers": True},
                blocklists=(RemoteEntry("nextdns-recommended"),),
            ),
            parental_control=DesiredParentalControl(
                flags={"safeSearch": True}, services=(RemoteEntry("tiktok"),)
            ),
        ),
    )

    assert remote.name == "home"
    assert remote.blocklists == [RemoteEntry("nextdns-recommended")]
    assert remote.services == [RemoteEntry("tiktok")]
    assert remote.categories == []
    assert "sync_parental_categories" not in fake_nextdns.mutation_names()
    assert "sync_privacy_natives" not in fake_nextdns.mutation_names()


def test_settings_substeps_fail_independently(fake_nextdns: FakeNextDNS) -> None:
    remote = fake_nextdns.seed("abc123", name="home")
    fake_nextdns.failures["update_settings_logs"] = PolicyTransientError("logs down")

    report = SyncExecutor(fake_nextdns).sync(
        "abc123",
        _state(
            settings=DesiredSettings(
                logs={"enabled": True},
                block_page={"enabled": False},
                web3=True,
            )
        ),
    )

    assert not report.synced(Collection.SETTINGS)
    assert remote.block_page == {"enabled": False}
    assert remote.web3 is True
