"""Credential lookup backed by ``Secret`` resources in the resource store."""

from __future__ import annotations

from typing import TYPE_CHECKING

from nextdns_operator.domain.model import ResourceKey, Secret
from nextdns_operator.domain.ports import CredentialsNotFoundError, ResourceNotFoundError

if TYPE_CHECKING:
    from nextdns_operator.domain.ports import CredentialLookup, ResourceStore


class StoreCredentialLookup:
    def __init__(self, store: ResourceStore) -> None:
        self._store = store

    def get_secret_value(self, namespace: str, name: str, key: str) -> str:
        try:
            secret = self._store.get(Secret, ResourceKey(namespace, name))
        except ResourceNotFoundError as exc:
            raise CredentialsNotFoundError(namespace, name, key, detail="secret not found") from exc
        value = secret.data.get(key, "").strip()
        if not value:
            detail = "key missing" if key not in secret.data else "value is empty"
            raise CredentialsNotFoundError(namespace, name, key, detail=detail)
        return value


if TYPE_CHECKING:

    def _lookup_check(lookup: StoreCredentialLookup) -> CredentialLookup:
        return lookup
