"""NextDNS API configuration values."""

from __future__ import annotations

from dataclasses import dataclass

from .env import env_float, env_int, optional_env
from .http_resilience import RateLimit, ResilienceConfig, RetryPolicy

DEFAULT_NEXTDNS_BASE_URL = "https://api.nextdns.io"
DEFAULT_NEXTDNS_TIMEOUT_SECONDS = 15.0
DEFAULT_NEXTDNS_CALLS_PER_SECOND = 5


@dataclass(frozen=True, slots=True)
class NextDNSConfig:
    resilience: ResilienceConfig


def get_nextdns_config() -> NextDNSConfig:
    base_url = optional_env("NEXTDNS_API_URL") or DEFAULT_NEXTDNS_BASE_URL
    calls_per_second = env_int(
        "NEXTDNS_RATE_LIMIT", DEFAULT_NEXTDNS_CALLS_PER_SECOND, minimum=1
    )
    timeout = env_float(
        "NEXTDNS_TIMEOUT_SECONDS", DEFAULT_NEXTDNS_TIMEOUT_SECONDS, minimum=0.1
    )

    resilience = ResilienceConfig(
        name="nextdns",
        base_url=base_url.rstrip("/"),
        timeout_seconds=timeout,
        ratelimit=RateLimit(max_calls=calls_per_second, per_seconds=1.0),
        retry=RetryPolicy(total=3),
        default_headers={"Accept": "application/json"},
    )
    return NextDNSConfig(resilience=resilience)
