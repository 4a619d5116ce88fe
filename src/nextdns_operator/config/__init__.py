"""Application configuration helpers."""

from __future__ import annotations

from nextdns_operator.common.logging import configure_logging

from .controller import ControllerConfig, get_controller_config
from .env import parse_duration, require_env_vars
from .errors import ConfigurationError, InvalidConfigurationError, MissingConfigurationError
from .http_resilience import RateLimit, ResilienceConfig, RetryPolicy
from .nextdns import NextDNSConfig, get_nextdns_config
from .storage import DatabaseConfig, get_database_config

__all__ = [
    "ConfigurationError",
    "ControllerConfig",
    "DatabaseConfig",
    "InvalidConfigurationError",
    "MissingConfigurationError",
    "NextDNSConfig",
    "RateLimit",
    "ResilienceConfig",
    "RetryPolicy",
    "configure_logging",
    "get_controller_config",
    "get_database_config",
    "get_nextdns_config",
    "parse_duration",
    "require_env_vars",
]
