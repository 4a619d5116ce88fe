from __future__ import annotations

import json
from collections.abc import Callable, Iterator  # noqa: TC003

import httpx
import pytest

from nextdns_operator.adapters.http_resilience import ResilientClient
from nextdns_operator.adapters.nextdns import NextDNSSession, NextDNSSessionFactory
from nextdns_operator.config.http_resilience import ResilienceConfig, RetryPolicy
from nextdns_operator.domain.ports import (
    PolicyAuthError,
    PolicyDuplicateError,
    PolicyNotFoundError,
    PolicyRateLimitedError,
    PolicyTimeoutError,
    PolicyTransientError,
    PolicyValidationError,
    RemoteEntry,
)
from nextdns_operator.domain.reconciliation import Deadline

Handler = Callable[[httpx.Request], httpx.Response]

RESILIENCE = ResilienceConfig(
    name="nextdns-test",
    base_url="https://api.nextdns.test",
    timeout_seconds=5.0,
    retry=RetryPolicy(total=0),
)


class Recorder:
    """Serve canned responses and keep every request the client sent."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.handler: Handler = lambda request: httpx.Response(200, json={"data": {}})

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.handler(request)

    @property
    def calls(self) -> list[tuple[str, str]]:
        return [(request.method, request.url.path) for request in self.requests]

    def body(self, index: int = -1) -> object:
        return json.loads(self.requests[index].content)


def _factory(recorder: Recorder) -> NextDNSSessionFactory:
    def client_factory(config: ResilienceConfig, api_key: str) -> ResilientClient:
        return ResilientClient(
            config, transport=httpx.MockTransport(recorder), headers={"X-Api-Key": api_key}
        )

    return NextDNSSessionFactory(RESILIENCE, client_factory=client_factory)


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def session(recorder: Recorder) -> Iterator[NextDNSSession]:
    with _factory(recorder)("secret-key", Deadline.after(30.0)) as opened:
        yield opened


def test_create_profile_posts_name_and_returns_id(
    recorder: Recorder, session: NextDNSSession
) -> None:
    recorder.handler = lambda request: httpx.Response(
        200, json={"data": {"id": "abc123", "name": "home"}}
    )

    profile_id = session.create_profile("home")

    assert profile_id == "abc123"
    assert recorder.calls == [("POST", "/profiles")]
    assert recorder.body() == {"name": "home"}
    assert recorder.requests[0].headers["X-Api-Key"] == "secret-key"


@pytest.mark.parametrize(
    ("status", "error_type"),
    [
        (400, PolicyValidationError),
        (401, PolicyAuthError),
        (403, PolicyAuthError),
        (404, PolicyNotFoundError),
        (409, PolicyDuplicateError),
        (500, PolicyTransientError),
        (503, PolicyTransientError),
    ],
)
def test_http_status_maps_onto_policy_errors(
    recorder: Recorder,
    session: NextDNSSession,
    status: int,
    error_type: type[Exception],
) -> None:
    recorder.handler = lambda request: httpx.Response(
        status, json={"errors": [{"code": "failure", "detail": "nope"}]}
    )

    with pytest.raises(error_type) as excinfo:
        session.get_profile("abc123")

    assert "get profile" in str(excinfo.value)


def test_rate_limit_carries_retry_after(recorder: Recorder, session: NextDNSSession) -> None:
    recorder.handler = lambda request: httpx.Response(429, headers={"Retry-After": "7"})

    with pytest.raises(PolicyRateLimitedError) as excinfo:
        session.get_security("abc123")

    assert excinfo.value.retry_after == 7.0


def test_transport_failure_is_transient(recorder: Recorder, session: NextDNSSession) -> None:
    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    recorder.handler = refuse

    with pytest.raises(PolicyTransientError):
        session.get_denylist("abc123")


def test_duplicate_in_success_body_falls_back_to_patch(
    recorder: Recorder, session: NextDNSSession
) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            return httpx.Response(200, json={"errors": [{"code": "duplicate"}]})
        return httpx.Response(204)

    recorder.handler = handler

    session.add_denylist_entry("abc123", RemoteEntry("ads.example.com", active=False))

    assert recorder.calls == [
        ("POST", "/profiles/abc123/denylist"),
        ("PATCH", "/profiles/abc123/denylist/ads.example.com"),
    ]
    assert recorder.body(0) == {"id": "ads.example.com", "active": False}
    assert recorder.body(1) == {"active": False}


def test_duplicate_tld_is_ignored(recorder: Recorder, session: NextDNSSession) -> None:
    recorder.handler = lambda request: httpx.Response(
        400, json={"errors": [{"code": "duplicate", "detail": "tld already blocked"}]}
    )

    session.add_security_tld("abc123", "zip")

    assert recorder.calls == [("POST", "/profiles/abc123/security/tlds")]


def test_error_detail_text_does_not_decide_the_error_type(
    recorder: Recorder, session: NextDNSSession
) -> None:
    recorder.handler = lambda request: httpx.Response(
        400, json={"errors": [{"code": "invalid", "detail": "duplicate key in payload"}]}
    )

    with pytest.raises(PolicyValidationError):
        session.add_denylist_entry("abc123", RemoteEntry("ads.example.com"))

    assert recorder.calls == [("POST", "/profiles/abc123/denylist")]


def test_list_reads_and_replacements(recorder: Recorder, session: NextDNSSession) -> None:
    recorder.handler = lambda request: httpx.Response(
        200,
        json={"data": [{"id": "ads.example.com", "active": True}, {"id": "x.example.com"}]},
    )

    entries = session.get_allowlist("abc123")
    session.sync_privacy_blocklists("abc123", ["oisd", "nextdns-recommended"])

    assert entries == [RemoteEntry("ads.example.com"), RemoteEntry("x.example.com")]
    assert recorder.calls[-1] == ("PUT", "/profiles/abc123/privacy/blocklists")
    assert recorder.body() == [{"id": "oisd"}, {"id": "nextdns-recommended"}]


def test_security_flags_skip_non_boolean_fields(
    recorder: Recorder, session: NextDNSSession
) -> None:
    recorder.handler = lambda request: httpx.Response(
        200,
        json={
            "data": {
                "threatIntelligenceFeeds": True,
                "cryptojacking": False,
                "tlds": [{"id": "zip"}],
            }
        },
    )

    flags = session.get_security("abc123")

    assert flags == {"threatIntelligenceFeeds": True, "cryptojacking": False}


def test_log_switches_are_negated_on_the_wire(recorder: Recorder, session: NextDNSSession) -> None:
    recorder.handler = lambda request: httpx.Response(204)

    session.update_settings_logs(
        "abc123", {"enabled": True, "logClientsIPs": False, "logDomains": True, "retention": 3600}
    )

    assert recorder.calls == [("PATCH", "/profiles/abc123/settings/logs")]
    assert recorder.body() == {
        "enabled": True,
        "retention": 3600,
        "drop": {"ip": True, "domain": False},
    }


def test_get_settings_reads_every_section(recorder: Recorder, session: NextDNSSession) -> None:
    recorder.handler = lambda request: httpx.Response(
        200,
        json={
            "data": {
                "logs": {"enabled": True, "drop": {"ip": True}, "retention": 7776000},
                "blockPage": {"enabled": False},
                "performance": {"ecs": True, "cacheBoost": False},
                "web3": True,
            }
        },
    )

    settings = session.get_settings("abc123")

    assert settings.logs == {
        "enabled": True,
        "retention": 7776000,
        "logClientsIPs": False,
        "logDomains": True,
    }
    assert settings.block_page == {"enabled": False}
    assert settings.performance == {"ecs": True, "cacheBoost": False}
    assert settings.web3 is True


def test_expired_deadline_fails_without_a_request(recorder: Recorder) -> None:
    expired = Deadline(expires_at=0.0, clock=lambda: 10.0)

    with (
        _factory(recorder)("secret-key", expired) as session,
        pytest.raises(PolicyTimeoutError, match="deadline exceeded"),
    ):
        session.delete_profile("abc123")

    assert recorder.requests == []
