"""Declarative resource models: the profile, the shared lists, secrets and config maps.

Wire names follow the manifest format (camelCase); Python attributes are snake_case.
Specs reject unknown fields so typos in manifests surface as validation errors
instead of being silently ignored. Statuses are written only by the controller.
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any, ClassVar, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .keys import DEFAULT_NAMESPACE, Kind, ResourceKey, SharedRef

API_VERSION = "nextdns.io/v1alpha1"
DEFAULT_CREDENTIALS_KEY = "api-key"
DEFAULT_IMPORT_KEY = "config.json"


class ResourceModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class StatusModel(ResourceModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class ConditionStatus(StrEnum):
    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"


class Condition(StatusModel):
    type: str
    status: ConditionStatus
    reason: str
    message: str = ""
    observed_generation: int | None = None
    last_transition_time: datetime | None = None


class ObjectMeta(ResourceModel):
    name: str = Field(min_length=1, max_length=253)
    namespace: str = DEFAULT_NAMESPACE
    generation: int = 0
    resource_version: int = 0
    finalizers: list[str] = Field(default_factory=list)
    deletion_timestamp: datetime | None = None
    creation_timestamp: datetime | None = None
    labels: dict[str, str] = Field(default_factory=dict)

    @property
    def key(self) -> ResourceKey:
        return ResourceKey(self.namespace, self.name)


# ---------------------------------------------------------------------------
# Shared pieces
# ---------------------------------------------------------------------------


class ListReference(ResourceModel):
    """Lookup key for a shared list; the namespace defaults to the referrer's."""

    name: str = Field(min_length=1)
    namespace: str | None = None

    def resolve_namespace(self, default: str) -> str:
        return self.namespace or default


class SecretKeySelector(ResourceModel):
    name: str = Field(min_length=1)
    key: str = DEFAULT_CREDENTIALS_KEY


class ConfigImportRef(ResourceModel):
    name: str = Field(min_length=1)
    key: str = DEFAULT_IMPORT_KEY


class DomainEntry(ResourceModel):
    domain: str = Field(min_length=1)
    active: bool | None = None
    reason: str | None = None

    @property
    def is_active(self) -> bool:
        return self.active is None or self.active

    @property
    def identifier(self) -> str:
        return self.domain


class TLDEntry(ResourceModel):
    tld: str = Field(min_length=1)
    active: bool | None = None
    reason: str | None = None

    @property
    def is_active(self) -> bool:
        return self.active is None or self.active

    @property
    def identifier(self) -> str:
        return self.tld


class ToggleEntry(ResourceModel):
    """Blocklist, native, category or service selection by id."""

    id: str = Field(min_length=1)
    active: bool | None = None

    @property
    def is_active(self) -> bool:
        return self.active is None or self.active


class ListCategory(StrEnum):
    ALLOWLIST = "allowlist"
    DENYLIST = "denylist"
    TLDS = "tlds"

    @property
    def kind(self) -> Kind:
        return _KIND_BY_CATEGORY[self]


_KIND_BY_CATEGORY: dict[ListCategory, Kind] = {
    ListCategory.ALLOWLIST: Kind.ALLOWLIST,
    ListCategory.DENYLIST: Kind.DENYLIST,
    ListCategory.TLDS: Kind.TLDLIST,
}


# ---------------------------------------------------------------------------
# Profile feature toggles
# ---------------------------------------------------------------------------


class SecuritySpec(ResourceModel):
    ai_threat_detection: bool | None = None
    threat_intelligence_feeds: bool | None = None
    google_safe_browsing: bool | None = None
    cryptojacking: bool | None = None
    dns_rebinding: bool | None = None
    idn_homographs: bool | None = None
    typosquatting: bool | None = None
    dga: bool | None = None
    nrd: bool | None = None
    ddns: bool | None = None
    parking: bool | None = None
    csam: bool | None = None


class PrivacySpec(ResourceModel):
    blocklists: list[ToggleEntry] = Field(default_factory=list)
    natives: list[ToggleEntry] = Field(default_factory=list)
    disguised_trackers: bool | None = None
    allow_affiliate: bool | None = None


class ParentalControlSpec(ResourceModel):
    categories: list[ToggleEntry] = Field(default_factory=list)
    services: list[ToggleEntry] = Field(default_factory=list)
    safe_search: bool | None = None
    youtube_restricted_mode: bool | None = None


class LogsSpec(ResourceModel):
    enabled: bool | None = None
    log_clients_ips: bool | None = Field(default=None, alias="logClientsIPs")
    log_domains: bool | None = None
    retention: str | None = None


class BlockPageSpec(ResourceModel):
    enabled: bool | None = None


class PerformanceSpec(ResourceModel):
    ecs: bool | None = None
    cache_boost: bool | None = None
    cname_flattening: bool | None = None


class SettingsSpec(ResourceModel):
    logs: LogsSpec | None = None
    block_page: BlockPageSpec | None = None
    performance: PerformanceSpec | None = None
    web3: bool | None = None


# ---------------------------------------------------------------------------
# Resources
# ---------------------------------------------------------------------------


class Resource(ResourceModel):
    """Common envelope; subclasses declare ``KIND`` and their payload field."""

    KIND: ClassVar[Kind]
    SPEC_FIELD: ClassVar[str] = "spec"
    HAS_STATUS: ClassVar[bool] = True

    api_version: str = API_VERSION
    metadata: ObjectMeta

    @property
    def key(self) -> ResourceKey:
        return self.metadata.key

    @property
    def ref(self) -> SharedRef:
        return SharedRef(self.KIND, self.metadata.namespace, self.metadata.name)

    def spec_payload(self) -> dict[str, Any]:
        payload = self.to_payload()
        return payload.get(self.SPEC_FIELD, {})

    def status_payload(self) -> dict[str, Any] | None:
        if not self.HAS_STATUS:
            return None
        return self.to_payload().get("status", {})

    @classmethod
    def from_record(
        cls,
        *,
        metadata: dict[str, Any],
        spec: dict[str, Any],
        status: dict[str, Any] | None,
    ) -> Resource:
        document: dict[str, Any] = {
            "kind": cls.KIND.value,
            "metadata": metadata,
            cls.SPEC_FIELD: spec,
        }
        if cls.HAS_STATUS and status:
            document["status"] = status
        return cls.model_validate(document)


class AggregatedCounts(StatusModel):
    allowlist_domains: int = 0
    denylist_domains: int = 0
    blocked_tlds: int = Field(default=0, alias="blockedTLDs")


class ReferencedResourceStatus(StatusModel):
    name: str
    namespace: str
    ready: bool
    count: int = 0


class ReferencedResources(StatusModel):
    allowlists: list[ReferencedResourceStatus] = Field(default_factory=list)
    denylists: list[ReferencedResourceStatus] = Field(default_factory=list)
    tld_lists: list[ReferencedResourceStatus] = Field(default_factory=list)

    def for_category(self, category: ListCategory) -> list[ReferencedResourceStatus]:
        if category is ListCategory.ALLOWLIST:
            return self.allowlists
        if category is ListCategory.DENYLIST:
            return self.denylists
        return self.tld_lists


class CollectionStatus(StatusModel):
    synced: bool
    message: str = ""


class ProfilePhase(StrEnum):
    PENDING = "Pending"
    RESOLVING = "Resolving"
    SYNCING = "Syncing"
    READY = "Ready"
    ERROR = "Error"
    DELETING = "Deleting"


class ProfileSpec(ResourceModel):
    name: str = Field(min_length=1, max_length=100)
    credentials_ref: SecretKeySelector
    profile_id: str | None = Field(default=None, alias="profileID")
    allowlist_refs: list[ListReference] = Field(default_factory=list)
    denylist_refs: list[ListReference] = Field(default_factory=list)
    tld_list_refs: list[ListReference] = Field(default_factory=list)
    allowlist: list[DomainEntry] = Field(default_factory=list)
    denylist: list[DomainEntry] = Field(default_factory=list)
    security: SecuritySpec | None = None
    privacy: PrivacySpec | None = None
    parental_control: ParentalControlSpec | None = None
    settings: SettingsSpec | None = None
    config_import_ref: ConfigImportRef | None = None

    def refs_for(self, category: ListCategory) -> list[ListReference]:
        if category is ListCategory.ALLOWLIST:
            return self.allowlist_refs
        if category is ListCategory.DENYLIST:
            return self.denylist_refs
        return self.tld_list_refs

    def inline_for(self, category: ListCategory) -> list[DomainEntry]:
        if category is ListCategory.ALLOWLIST:
            return self.allowlist
        if category is ListCategory.DENYLIST:
            return self.denylist
        return []


class ProfileStatus(StatusModel):
    phase: ProfilePhase = ProfilePhase.PENDING
    profile_id: str | None = Field(default=None, alias="profileID")
    fingerprint: str | None = None
    aggregated_counts: AggregatedCounts | None = None
    referenced_resources: ReferencedResources | None = None
    collections: dict[str, CollectionStatus] = Field(default_factory=dict)
    conditions: list[Condition] = Field(default_factory=list)
    last_sync_time: datetime | None = None
    observed_generation: int | None = None
    import_warnings: list[str] = Field(default_factory=list)


class NextDNSProfile(Resource):
    KIND: ClassVar[Kind] = Kind.PROFILE

    kind: Literal["NextDNSProfile"] = "NextDNSProfile"
    spec: ProfileSpec
    status: ProfileStatus = Field(default_factory=ProfileStatus)


class ResourceKeyRef(StatusModel):
    name: str
    namespace: str

    @classmethod
    def from_key(cls, key: ResourceKey) -> ResourceKeyRef:
        return cls(name=key.name, namespace=key.namespace)


class ListStatus(StatusModel):
    count: int = 0
    profile_refs: list[ResourceKeyRef] = Field(default_factory=list)
    conditions: list[Condition] = Field(default_factory=list)


class DomainListSpec(ResourceModel):
    description: str | None = None
    domains: list[DomainEntry] = Field(default_factory=list)

    @property
    def entries(self) -> list[DomainEntry]:
        return self.domains


class TLDListSpec(ResourceModel):
    description: str | None = None
    tlds: list[TLDEntry] = Field(default_factory=list)

    @property
    def entries(self) -> list[TLDEntry]:
        return self.tlds


class NextDNSAllowlist(Resource):
    KIND: ClassVar[Kind] = Kind.ALLOWLIST

    kind: Literal["NextDNSAllowlist"] = "NextDNSAllowlist"
    spec: DomainListSpec
    status: ListStatus = Field(default_factory=ListStatus)


class NextDNSDenylist(Resource):
    KIND: ClassVar[Kind] = Kind.DENYLIST

    kind: Literal["NextDNSDenylist"] = "NextDNSDenylist"
    spec: DomainListSpec
    status: ListStatus = Field(default_factory=ListStatus)


class NextDNSTLDList(Resource):
    KIND: ClassVar[Kind] = Kind.TLDLIST

    kind: Literal["NextDNSTLDList"] = "NextDNSTLDList"
    spec: TLDListSpec
    status: ListStatus = Field(default_factory=ListStatus)


class Secret(Resource):
    KIND: ClassVar[Kind] = Kind.SECRET
    SPEC_FIELD: ClassVar[str] = "data"
    HAS_STATUS: ClassVar[bool] = False

    api_version: str = "v1"
    kind: Literal["Secret"] = "Secret"
    data: dict[str, str] = Field(default_factory=dict)


class ConfigMap(Resource):
    KIND: ClassVar[Kind] = Kind.CONFIG_MAP
    SPEC_FIELD: ClassVar[str] = "data"
    HAS_STATUS: ClassVar[bool] = False

    api_version: str = "v1"
    kind: Literal["ConfigMap"] = "ConfigMap"
    data: dict[str, str] = Field(default_factory=dict)


type SharedList = NextDNSAllowlist | NextDNSDenylist | NextDNSTLDList

RESOURCE_TYPES: dict[Kind, type[Resource]] = {
    Kind.PROFILE: NextDNSProfile,
    Kind.ALLOWLIST: NextDNSAllowlist,
    Kind.DENYLIST: NextDNSDenylist,
    Kind.TLDLIST: NextDNSTLDList,
    Kind.SECRET: Secret,
    Kind.CONFIG_MAP: ConfigMap,
}

LIST_TYPE_BY_CATEGORY: dict[ListCategory, type[SharedList]] = {
    ListCategory.ALLOWLIST: NextDNSAllowlist,
    ListCategory.DENYLIST: NextDNSDenylist,
    ListCategory.TLDS: NextDNSTLDList,
}


def resource_type_for(kind: str) -> type[Resource]:
    try:
        return RESOURCE_TYPES[Kind(kind)]
    except ValueError as exc:
        raise ValueError(f"Unknown resource kind: {kind}") from exc
