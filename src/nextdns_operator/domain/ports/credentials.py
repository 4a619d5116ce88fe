"""Port for looking up API credentials referenced by profiles."""

from __future__ import annotations

from typing import Protocol, runtime_checkable


class CredentialsNotFoundError(RuntimeError):
    """Raised when the referenced secret or the key inside it is absent."""

    def __init__(self, namespace: str, name: str, key: str, *, detail: str | None = None) -> None:
        message = f"Secret {namespace}/{name} has no usable key {key!r}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.namespace = namespace
        self.name = name
        self.key = key


@runtime_checkable
class CredentialLookup(Protocol):
    def get_secret_value(self, namespace: str, name: str, key: str) -> str: ...


__all__ = ["CredentialLookup", "CredentialsNotFoundError"]
