"""HTTP client for the NextDNS API.

:class:`NextDNSClient` is the async client. :class:`NextDNSSession` exposes it
through the synchronous policy port used by the reconcilers: one event loop per
session, and every call bounded by the reconcile deadline.
"""

from __future__ import annotations

import asyncio
from contextlib import contextmanager
from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING, Any

import httpx

from nextdns_operator.adapters.http_resilience import ResilientClient
from nextdns_operator.domain.ports import (
    PolicyAPIError,
    PolicyDuplicateError,
    PolicyTimeoutError,
    PolicyTransientError,
    RemoteProfile,
)

from .errors import error_for_response, error_for_transport
from .schema import (
    EntryPayload,
    ParentalControlPayload,
    PrivacyPayload,
    ProfilePayload,
    SecurityPayload,
    SettingsPayload,
)
from .translator import (
    entries_to_wire,
    ids_to_wire,
    logs_to_wire,
    parse_entries,
    parse_parental_control,
    parse_privacy,
    parse_security_flags,
    parse_settings,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Coroutine, Iterator, Sequence

    from nextdns_operator.config.http_resilience import ResilienceConfig
    from nextdns_operator.domain.ports import (
        FlagValues,
        ParentalControlSnapshot,
        PolicyAPI,
        PrivacySnapshot,
        RemoteEntry,
        SettingsSnapshot,
    )
    from nextdns_operator.domain.reconciliation.deadline import Deadline

log = getLogger(__name__)

API_KEY_HEADER = "X-Api-Key"


def _default_client_factory(config: ResilienceConfig, api_key: str) -> ResilientClient:
    return ResilientClient(config, headers={API_KEY_HEADER: api_key})


class NextDNSClient:
    """Async NextDNS API client bound to one API key."""

    def __init__(self, http: ResilientClient) -> None:
        self._http = http

    async def aclose(self) -> None:
        await self._http.aclose()

    # -- profiles ---------------------------------------------------------

    async def create_profile(self, name: str) -> str:
        data = await self._request("create profile", "POST", "/profiles", json={"name": name})
        created = ProfilePayload.model_validate(data)
        if not created.id:
            raise PolicyAPIError(
                "create profile: response carried no profile id", operation="create profile"
            )
        log.info("Created NextDNS profile %s (%r)", created.id, name)
        return created.id

    async def get_profile(self, profile_id: str) -> RemoteProfile:
        data = await self._request("get profile", "GET", f"/profiles/{profile_id}")
        payload = ProfilePayload.model_validate(data)
        return RemoteProfile(id=payload.id or profile_id, name=payload.name)

    async def update_profile(self, profile_id: str, name: str) -> None:
        path = f"/profiles/{profile_id}"
        await self._request("update profile", "PATCH", path, json={"name": name})

    async def delete_profile(self, profile_id: str) -> None:
        await self._request("delete profile", "DELETE", f"/profiles/{profile_id}")
        log.info("Deleted NextDNS profile %s", profile_id)

    # -- security ---------------------------------------------------------

    async def get_security(self, profile_id: str) -> FlagValues:
        data = await self._request("get security", "GET", f"/profiles/{profile_id}/security")
        return parse_security_flags(SecurityPayload.model_validate(data))

    async def update_security(self, profile_id: str, values: FlagValues) -> None:
        path = f"/profiles/{profile_id}/security"
        await self._request("update security", "PATCH", path, json=dict(values))

    async def get_security_tlds(self, profile_id: str) -> list[RemoteEntry]:
        data = await self._request("get tlds", "GET", f"/profiles/{profile_id}/security/tlds")
        return _entries(data)

    async def sync_security_tlds(self, profile_id: str, tlds: Sequence[str]) -> None:
        path = f"/profiles/{profile_id}/security/tlds"
        await self._request("replace tlds", "PUT", path, json=ids_to_wire(tlds))

    async def add_security_tld(self, profile_id: str, tld: str) -> None:
        path = f"/profiles/{profile_id}/security/tlds"
        try:
            await self._request("add tld", "POST", path, json={"id": tld})
        except PolicyDuplicateError:
            log.debug("TLD %s already blocked on profile %s", tld, profile_id)

    async def delete_security_tld(self, profile_id: str, tld: str) -> None:
        path = f"/profiles/{profile_id}/security/tlds/{tld}"
        await self._request("delete tld", "DELETE", path)

    # -- privacy ----------------------------------------------------------

    async def get_privacy(self, profile_id: str) -> PrivacySnapshot:
        data = await self._request("get privacy", "GET", f"/profiles/{profile_id}/privacy")
        return parse_privacy(PrivacyPayload.model_validate(data))

    async def update_privacy(self, profile_id: str, values: FlagValues) -> None:
        path = f"/profiles/{profile_id}/privacy"
        await self._request("update privacy", "PATCH", path, json=dict(values))

    async def sync_privacy_blocklists(self, profile_id: str, ids: Sequence[str]) -> None:
        path = f"/profiles/{profile_id}/privacy/blocklists"
        await self._request("replace blocklists", "PUT", path, json=ids_to_wire(ids))

    async def sync_privacy_natives(self, profile_id: str, ids: Sequence[str]) -> None:
        path = f"/profiles/{profile_id}/privacy/natives"
        await self._request("replace natives", "PUT", path, json=ids_to_wire(ids))

    # -- parental control -------------------------------------------------

    async def get_parental_control(self, profile_id: str) -> ParentalControlSnapshot:
        path = f"/profiles/{profile_id}/parentalControl"
        data = await self._request("get parental control", "GET", path)
        return parse_parental_control(ParentalControlPayload.model_validate(data))

    async def update_parental_control(self, profile_id: str, values: FlagValues) -> None:
        path = f"/profiles/{profile_id}/parentalControl"
        await self._request("update parental control", "PATCH", path, json=dict(values))

    async def sync_parental_categories(
        self, profile_id: str, entries: Sequence[RemoteEntry]
    ) -> None:
        path = f"/profiles/{profile_id}/parentalControl/categories"
        await self._request("replace categories", "PUT", path, json=entries_to_wire(entries))

    async def sync_parental_services(self, profile_id: str, entries: Sequence[RemoteEntry]) -> None:
        path = f"/profiles/{profile_id}/parentalControl/services"
        await self._request("replace services", "PUT", path, json=entries_to_wire(entries))

    # -- domain lists -----------------------------------------------------

    async def get_domain_list(self, profile_id: str, collection: str) -> list[RemoteEntry]:
        path = f"/profiles/{profile_id}/{collection}"
        return _entries(await self._request(f"get {collection}", "GET", path))

    async def sync_domain_list(
        self, profile_id: str, collection: str, entries: Sequence[RemoteEntry]
    ) -> None:
        path = f"/profiles/{profile_id}/{collection}"
        await self._request(f"replace {collection}", "PUT", path, json=entries_to_wire(entries))

    async def add_domain_entry(self, profile_id: str, collection: str, entry: RemoteEntry) -> None:
        """Add ``entry``; an existing entry gets its ``active`` flag updated instead."""

        path = f"/profiles/{profile_id}/{collection}"
        body = {"id": entry.identifier, "active": entry.active}
        try:
            await self._request(f"add {collection} entry", "POST", path, json=body)
        except PolicyDuplicateError:
            log.debug("%s entry %s exists; updating it", collection, entry.identifier)
            await self._request(
                f"update {collection} entry",
                "PATCH",
                f"{path}/{entry.identifier}",
                json={"active": entry.active},
            )

    async def delete_domain_entry(self, profile_id: str, collection: str, domain: str) -> None:
        path = f"/profiles/{profile_id}/{collection}/{domain}"
        await self._request(f"delete {collection} entry", "DELETE", path)

    # -- settings ---------------------------------------------------------

    async def get_settings(self, profile_id: str) -> SettingsSnapshot:
        data = await self._request("get settings", "GET", f"/profiles/{profile_id}/settings")
        return parse_settings(SettingsPayload.model_validate(data))

    async def update_settings_logs(self, profile_id: str, values: FlagValues) -> None:
        path = f"/profiles/{profile_id}/settings/logs"
        await self._request("update logs", "PATCH", path, json=logs_to_wire(values))

    async def update_settings_block_page(self, profile_id: str, values: FlagValues) -> None:
        path = f"/profiles/{profile_id}/settings/blockPage"
        await self._request("update block page", "PATCH", path, json=dict(values))

    async def update_settings_performance(self, profile_id: str, values: FlagValues) -> None:
        path = f"/profiles/{profile_id}/settings/performance"
        await self._request("update performance", "PATCH", path, json=dict(values))

    async def update_settings(self, profile_id: str, values: FlagValues) -> None:
        path = f"/profiles/{profile_id}/settings"
        await self._request("update settings", "PATCH", path, json=dict(values))

    # -- transport --------------------------------------------------------

    async def _request(
        self,
        operation: str,
        method: str,
        path: str,
        *,
        json: object = None,
    ) -> object:
        try:
            if json is None:
                response = await self._http.request(method, path)
            else:
                response = await self._http.request(method, path, json=json)
        except httpx.HTTPError as exc:
            raise error_for_transport(operation, exc) from exc

        error = error_for_response(operation, response)
        if error is not None:
            log.debug("%s %s failed: %s", method, path, error)
            raise error
        if not response.content:
            return None
        try:
            payload = response.json()
        except ValueError as exc:
            message = f"{operation}: invalid JSON body"
            raise PolicyTransientError(message, operation=operation) from exc
        if isinstance(payload, dict) and "data" in payload:
            return payload["data"]
        return payload


def _entries(data: object) -> list[RemoteEntry]:
    if not isinstance(data, list):
        return []
    return parse_entries(EntryPayload.model_validate(item) for item in data)


class NextDNSSession:
    """Synchronous policy API over :class:`NextDNSClient`.

    The session owns an ``asyncio.Runner``; calls made after the deadline passed
    fail immediately and calls still running when it passes are cancelled.
    """

    def __init__(self, client: NextDNSClient, deadline: Deadline, runner: asyncio.Runner) -> None:
        self._client = client
        self._deadline = deadline
        self._runner = runner

    def _run[T](self, operation: str, coro: Coroutine[Any, Any, T]) -> T:
        remaining = self._deadline.remaining()
        if remaining <= 0:
            coro.close()
            message = f"{operation}: reconcile deadline exceeded"
            raise PolicyTimeoutError(message, operation=operation)
        try:
            return self._runner.run(asyncio.wait_for(coro, remaining))
        except TimeoutError as exc:
            raise PolicyTimeoutError(
                f"{operation}: no response within {remaining:.1f}s", operation=operation
            ) from exc

    def create_profile(self, name: str) -> str:
        return self._run("create profile", self._client.create_profile(name))

    def get_profile(self, profile_id: str) -> RemoteProfile:
        return self._run("get profile", self._client.get_profile(profile_id))

    def update_profile(self, profile_id: str, name: str) -> None:
        self._run("update profile", self._client.update_profile(profile_id, name))

    def delete_profile(self, profile_id: str) -> None:
        self._run("delete profile", self._client.delete_profile(profile_id))

    def get_security(self, profile_id: str) -> FlagValues:
        return self._run("get security", self._client.get_security(profile_id))

    def update_security(self, profile_id: str, values: FlagValues) -> None:
        self._run("update security", self._client.update_security(profile_id, values))

    def get_security_tlds(self, profile_id: str) -> list[RemoteEntry]:
        return self._run("get tlds", self._client.get_security_tlds(profile_id))

    def sync_security_tlds(self, profile_id: str, tlds: Sequence[str]) -> None:
        self._run("replace tlds", self._client.sync_security_tlds(profile_id, tlds))

    def add_security_tld(self, profile_id: str, tld: str) -> None:
        self._run("add tld", self._client.add_security_tld(profile_id, tld))

    def delete_security_tld(self, profile_id: str, tld: str) -> None:
        self._run("delete tld", self._client.delete_security_tld(profile_id, tld))

    def get_privacy(self, profile_id: str) -> PrivacySnapshot:
        return self._run("get privacy", self._client.get_privacy(profile_id))

    def update_privacy(self, profile_id: str, values: FlagValues) -> None:
        self._run("update privacy", self._client.update_privacy(profile_id, values))

    def sync_privacy_blocklists(self, profile_id: str, ids: Sequence[str]) -> None:
        self._run("replace blocklists", self._client.sync_privacy_blocklists(profile_id, ids))

    def sync_privacy_natives(self, profile_id: str, ids: Sequence[str]) -> None:
        self._run("replace natives", self._client.sync_privacy_natives(profile_id, ids))

    def get_parental_control(self, profile_id: str) -> ParentalControlSnapshot:
        return self._run("get parental control", self._client.get_parental_control(profile_id))

    def update_parental_control(self, profile_id: str, values: FlagValues) -> None:
        self._run(
            "update parental control", self._client.update_parental_control(profile_id, values)
        )

    def sync_parental_categories(self, profile_id: str, entries: Sequence[RemoteEntry]) -> None:
        self._run("replace categories", self._client.sync_parental_categories(profile_id, entries))

    def sync_parental_services(self, profile_id: str, entries: Sequence[RemoteEntry]) -> None:
        self._run("replace services", self._client.sync_parental_services(profile_id, entries))

    def get_denylist(self, profile_id: str) -> list[RemoteEntry]:
        return self._run("get denylist", self._client.get_domain_list(profile_id, "denylist"))

    def sync_denylist(self, profile_id: str, entries: Sequence[RemoteEntry]) -> None:
        self._run(
            "replace denylist", self._client.sync_domain_list(profile_id, "denylist", entries)
        )

    def add_denylist_entry(self, profile_id: str, entry: RemoteEntry) -> None:
        self._run(
            "add denylist entry", self._client.add_domain_entry(profile_id, "denylist", entry)
        )

    def delete_denylist_entry(self, profile_id: str, domain: str) -> None:
        self._run(
            "delete denylist entry",
            self._client.delete_domain_entry(profile_id, "denylist", domain),
        )

    def get_allowlist(self, profile_id: str) -> list[RemoteEntry]:
        return self._run("get allowlist", self._client.get_domain_list(profile_id, "allowlist"))

    def sync_allowlist(self, profile_id: str, entries: Sequence[RemoteEntry]) -> None:
        self._run(
            "replace allowlist", self._client.sync_domain_list(profile_id, "allowlist", entries)
        )

    def add_allowlist_entry(self, profile_id: str, entry: RemoteEntry) -> None:
        self._run(
            "add allowlist entry", self._client.add_domain_entry(profile_id, "allowlist", entry)
        )

    def delete_allowlist_entry(self, profile_id: str, domain: str) -> None:
        self._run(
            "delete allowlist entry",
            self._client.delete_domain_entry(profile_id, "allowlist", domain),
        )

    def get_settings(self, profile_id: str) -> SettingsSnapshot:
        return self._run("get settings", self._client.get_settings(profile_id))

    def update_settings_logs(self, profile_id: str, values: FlagValues) -> None:
        self._run("update logs", self._client.update_settings_logs(profile_id, values))

    def update_settings_block_page(self, profile_id: str, values: FlagValues) -> None:
        self._run("update block page", self._client.update_settings_block_page(profile_id, values))

    def update_settings_performance(self, profile_id: str, values: FlagValues) -> None:
        self._run(
            "update performance", self._client.update_settings_performance(profile_id, values)
        )

    def update_settings(self, profile_id: str, values: FlagValues) -> None:
        self._run("update settings", self._client.update_settings(profile_id, values))


@dataclass(slots=True)
class NextDNSSessionFactory:
    """Open a :class:`NextDNSSession` per reconcile, matching ``PolicyAPIFactory``."""

    resilience: ResilienceConfig
    client_factory: Callable[[ResilienceConfig, str], ResilientClient] = _default_client_factory

    @contextmanager
    def __call__(self, api_key: str, deadline: Deadline) -> Iterator[NextDNSSession]:
        with asyncio.Runner() as runner:
            client = NextDNSClient(self.client_factory(self.resilience, api_key))
            try:
                yield NextDNSSession(client, deadline, runner)
            finally:
                runner.run(client.aclose())


if TYPE_CHECKING:

    def _session_check(session: NextDNSSession) -> PolicyAPI:
        return session
