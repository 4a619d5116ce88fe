"""Resource models, identities and status conditions."""

from __future__ import annotations

from .conditions import find_condition, is_condition_true, set_condition
from .keys import DEFAULT_NAMESPACE, SHARED_LIST_KINDS, Kind, ResourceKey, SharedRef
from .resources import (
    LIST_TYPE_BY_CATEGORY,
    RESOURCE_TYPES,
    AggregatedCounts,
    CollectionStatus,
    Condition,
    ConditionStatus,
    ConfigImportRef,
    ConfigMap,
    DomainEntry,
    DomainListSpec,
    ListCategory,
    ListReference,
    ListStatus,
    NextDNSAllowlist,
    NextDNSDenylist,
    NextDNSProfile,
    NextDNSTLDList,
    ObjectMeta,
    ParentalControlSpec,
    PrivacySpec,
    ProfilePhase,
    ProfileSpec,
    ProfileStatus,
    ReferencedResources,
    ReferencedResourceStatus,
    Resource,
    ResourceKeyRef,
    SecretKeySelector,
    Secret,
    SecuritySpec,
    SettingsSpec,
    TLDEntry,
    TLDListSpec,
    ToggleEntry,
    resource_type_for,
)

__all__ = [
    "DEFAULT_NAMESPACE",
    "LIST_TYPE_BY_CATEGORY",
    "RESOURCE_TYPES",
    "SHARED_LIST_KINDS",
    "AggregatedCounts",
    "CollectionStatus",
    "Condition",
    "ConditionStatus",
    "ConfigImportRef",
    "ConfigMap",
    "DomainEntry",
    "DomainListSpec",
    "Kind",
    "ListCategory",
    "ListReference",
    "ListStatus",
    "NextDNSAllowlist",
    "NextDNSDenylist",
    "NextDNSProfile",
    "NextDNSTLDList",
    "ObjectMeta",
    "ParentalControlSpec",
    "PrivacySpec",
    "ProfilePhase",
    "ProfileSpec",
    "ProfileStatus",
    "ReferencedResourceStatus",
    "ReferencedResources",
    "Resource",
    "ResourceKey",
    "ResourceKeyRef",
    "Secret",
    "SecretKeySelector",
    "SecuritySpec",
    "SettingsSpec",
    "SharedRef",
    "TLDEntry",
    "TLDListSpec",
    "ToggleEntry",
    "find_condition",
    "is_condition_true",
    "resource_type_for",
    "set_condition",
]
