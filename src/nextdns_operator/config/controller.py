"""Reconcile loop tuning: sync period, workers, deadlines and backoff."""

from __future__ import annotations

from dataclasses import dataclass

from .env import env_duration, env_int

DEFAULT_SYNC_PERIOD_SECONDS = 3600.0
DEFAULT_RECONCILE_WORKERS = 2
DEFAULT_RECONCILE_TIMEOUT_SECONDS = 120.0
DEFAULT_BACKOFF_BASE_SECONDS = 1.0
DEFAULT_BACKOFF_MAX_SECONDS = 300.0
DEFAULT_AUTH_RETRY_INTERVAL_SECONDS = 600.0
DEFAULT_MAX_RETRIES = 8
DEFAULT_REPLACE_THRESHOLD = 25
DEFAULT_WATCH_POLL_INTERVAL_SECONDS = 2.0


@dataclass(frozen=True, slots=True)
class ControllerConfig:
    """Tuning knobs shared by the reconcilers and the manager.

    ``sync_period`` of zero disables periodic drift detection. ``replace_threshold``
    is the number of granular list operations above which one whole-list replace is
    issued instead.
    """

    sync_period: float = DEFAULT_SYNC_PERIOD_SECONDS
    workers: int = DEFAULT_RECONCILE_WORKERS
    reconcile_timeout: float = DEFAULT_RECONCILE_TIMEOUT_SECONDS
    backoff_base: float = DEFAULT_BACKOFF_BASE_SECONDS
    backoff_max: float = DEFAULT_BACKOFF_MAX_SECONDS
    auth_retry_interval: float = DEFAULT_AUTH_RETRY_INTERVAL_SECONDS
    max_retries: int = DEFAULT_MAX_RETRIES
    replace_threshold: int = DEFAULT_REPLACE_THRESHOLD
    watch_poll_interval: float = DEFAULT_WATCH_POLL_INTERVAL_SECONDS


def get_controller_config() -> ControllerConfig:
    return ControllerConfig(
        sync_period=env_duration("SYNC_PERIOD", DEFAULT_SYNC_PERIOD_SECONDS),
        workers=env_int("RECONCILE_WORKERS", DEFAULT_RECONCILE_WORKERS, minimum=1),
        reconcile_timeout=env_duration("RECONCILE_TIMEOUT", DEFAULT_RECONCILE_TIMEOUT_SECONDS),
        backoff_base=env_duration("BACKOFF_BASE", DEFAULT_BACKOFF_BASE_SECONDS),
        backoff_max=env_duration("BACKOFF_MAX", DEFAULT_BACKOFF_MAX_SECONDS),
        auth_retry_interval=env_duration(
            "AUTH_RETRY_INTERVAL", DEFAULT_AUTH_RETRY_INTERVAL_SECONDS
        ),
        max_retries=env_int("MAX_RETRIES", DEFAULT_MAX_RETRIES, minimum=1),
        replace_threshold=env_int("REPLACE_THRESHOLD", DEFAULT_REPLACE_THRESHOLD, minimum=1),
        watch_poll_interval=env_duration(
            "WATCH_POLL_INTERVAL", DEFAULT_WATCH_POLL_INTERVAL_SECONDS
        ),
    )
