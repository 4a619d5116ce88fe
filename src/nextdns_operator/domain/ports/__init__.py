"""Domain port definitions for adapters."""

from __future__ import annotations

from .credentials import CredentialLookup, CredentialsNotFoundError
from .policy_api import (
    FlagValues,
    ParentalControlSnapshot,
    PolicyAPI,
    PolicyAPIError,
    PolicyAPIFactory,
    PolicyAuthError,
    PolicyDuplicateError,
    PolicyNotFoundError,
    PolicyRateLimitedError,
    PolicyTimeoutError,
    PolicyTransientError,
    PolicyValidationError,
    PrivacySnapshot,
    RemoteEntry,
    RemoteProfile,
    SettingsSnapshot,
)
from .store import (
    EventType,
    ResourceAlreadyExistsError,
    ResourceConflictError,
    ResourceNotFoundError,
    ResourceStore,
    StoreError,
    WatchEvent,
)

__all__ = [
    "CredentialLookup",
    "CredentialsNotFoundError",
    "EventType",
    "FlagValues",
    "ParentalControlSnapshot",
    "PolicyAPI",
    "PolicyAPIError",
    "PolicyAPIFactory",
    "PolicyAuthError",
    "PolicyDuplicateError",
    "PolicyNotFoundError",
    "PolicyRateLimitedError",
    "PolicyTimeoutError",
    "PolicyTransientError",
    "PolicyValidationError",
    "PrivacySnapshot",
    "RemoteEntry",
    "RemoteProfile",
    "ResourceAlreadyExistsError",
    "ResourceConflictError",
    "ResourceNotFoundError",
    "ResourceStore",
    "SettingsSnapshot",
    "StoreError",
    "WatchEvent",
]
