"""Pydantic models describing the NextDNS API payloads."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class NextDNSBaseModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True, alias_generator=to_camel)


class ErrorItem(NextDNSBaseModel):
    code: str | None = None
    detail: str | None = None


class ErrorResponse(NextDNSBaseModel):
    errors: list[ErrorItem] = Field(default_factory=list)

    @property
    def codes(self) -> set[str]:
        return {error.code.casefold() for error in self.errors if error.code}

    @property
    def message(self) -> str:
        parts = [error.detail or error.code or "" for error in self.errors]
        return "; ".join(part for part in parts if part)


class EntryPayload(NextDNSBaseModel):
    id: str
    active: bool = True


class ProfilePayload(NextDNSBaseModel):
    id: str | None = None
    name: str = ""


class SecurityPayload(NextDNSBaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True, alias_generator=to_camel)

    tlds: list[EntryPayload] = Field(default_factory=list)


class PrivacyPayload(NextDNSBaseModel):
    blocklists: list[EntryPayload] = Field(default_factory=list)
    natives: list[EntryPayload] = Field(default_factory=list)
    disguised_trackers: bool | None = None
    allow_affiliate: bool | None = None


class ParentalControlPayload(NextDNSBaseModel):
    categories: list[EntryPayload] = Field(default_factory=list)
    services: list[EntryPayload] = Field(default_factory=list)
    safe_search: bool | None = None
    youtube_restricted_mode: bool | None = None


class LogsDropPayload(NextDNSBaseModel):
    ip: bool = False
    domain: bool = False


class LogsPayload(NextDNSBaseModel):
    enabled: bool | None = None
    drop: LogsDropPayload = Field(default_factory=LogsDropPayload)
    retention: int | None = None


class BlockPagePayload(NextDNSBaseModel):
    enabled: bool | None = None


class PerformancePayload(NextDNSBaseModel):
    ecs: bool | None = None
    cache_boost: bool | None = None
    cname_flattening: bool | None = None


class SettingsPayload(NextDNSBaseModel):
    logs: LogsPayload = Field(default_factory=LogsPayload)
    block_page: BlockPagePayload = Field(default_factory=BlockPagePayload)
    performance: PerformancePayload = Field(default_factory=PerformancePayload)
    web3: bool | None = None
