"""Pydantic models for the pre/post comparison report wire format.

Field names are serialized in camelCase (`preSpend`, `metaACR`, ...) and must
stay stable: the presentation layer indexes them by name. Dimension names used
as data (`dataAvailability` keys, `Degradation.dimension`) are camelCased on
the wire too (`adSets`, `ageGender`), while the models keep snake_case.
"""
from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer
from pydantic.alias_generators import to_camel


def wire_name(name: str) -> str:
    """camelCase a snake_case dimension name; names without `_` pass through."""
    return to_camel(name) if "_" in name else name


class CamelModel(BaseModel):
    """Base model serialized with camelCase aliases."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class SummaryTotals(CamelModel):
    """Scalar totals for both periods plus the post-period ACR."""

    pre_spend: float
    post_spend: float
    pre_conversions: int
    post_conversions: int
    pre_conversion_value: float
    post_conversion_value: float
    pre_impressions: int
    post_impressions: int
    pre_clicks: int
    post_clicks: int
    meta_acr: float = Field(..., alias="metaACR", description="Post-period conversions / clicks * 100")


class Overview(CamelModel):
    """Flattened pre/post totals and derived metrics."""

    pre_spend: float
    post_spend: float
    pre_impressions: int
    post_impressions: int
    pre_clicks: int
    post_clicks: int
    pre_conversions: int
    post_conversions: int
    pre_ctr: float
    post_ctr: float
    pre_cpc: float
    post_cpc: float
    pre_cpm: float
    post_cpm: float
    pre_roas: float
    post_roas: float
    pre_cost_per_conversion: float
    post_cost_per_conversion: float
    pre_conversion_rate: float
    post_conversion_rate: float


class ValueChannels(CamelModel):
    """Matched conversion value and ROAS split by action-type family."""

    pre_website_value: float = 0.0
    post_website_value: float = 0.0
    pre_in_app_value: float = 0.0
    post_in_app_value: float = 0.0
    pre_offline_value: float = 0.0
    post_offline_value: float = 0.0
    pre_website_roas: float = 0.0
    post_website_roas: float = 0.0
    pre_in_app_roas: float = 0.0
    post_in_app_roas: float = 0.0
    pre_offline_roas: float = 0.0
    post_offline_roas: float = 0.0


class EntityComparison(CamelModel):
    """Campaign, ad set or ad row."""

    name: str
    pre_spend: float
    post_spend: float
    pre_conversions: int
    post_conversions: int
    pre_roas: float
    post_roas: float


class Performance(CamelModel):
    campaigns: list[EntityComparison] = Field(default_factory=list)
    ad_sets: list[EntityComparison] = Field(default_factory=list)
    top_ads: list[EntityComparison] = Field(default_factory=list)


class AgeGenderComparison(CamelModel):
    age: str
    gender: str
    pre_spend: float
    post_spend: float
    pre_conversions: int
    post_conversions: int


class Audience(CamelModel):
    age_gender: list[AgeGenderComparison] = Field(default_factory=list)


class PlacementComparison(CamelModel):
    name: str
    pre_spend: float
    post_spend: float
    pre_impressions: int
    post_impressions: int
    pre_conversions: int
    post_conversions: int


class CountryComparison(CamelModel):
    country: str
    region: Optional[str] = None
    pre_spend: float
    post_spend: float
    pre_conversions: int
    post_conversions: int


class DeviceComparison(CamelModel):
    platform: str
    pre_spend: float
    post_spend: float
    pre_conversions: int
    post_conversions: int


class Degradation(CamelModel):
    """A dimension whose data is missing or incomplete for one period."""

    dimension: str
    period: str = Field(..., description="pre|post")
    reason: str = Field(..., description="unavailable|truncated")
    message: str

    @field_serializer("dimension")
    def serialize_dimension(self, dimension: str) -> str:
        return wire_name(dimension)


class ComparisonReport(CamelModel):
    """Top-level pre/post comparison report."""

    event_name: str
    pre_start_date: date
    pre_end_date: date
    post_start_date: date
    post_end_date: date
    summary_totals: SummaryTotals
    overview: Overview
    changes: dict[str, float] = Field(
        default_factory=dict, description="Percent change pre -> post per metric"
    )
    value_channels: ValueChannels = Field(default_factory=ValueChannels)
    performance: Performance = Field(default_factory=Performance)
    audience: Audience = Field(default_factory=Audience)
    placements: list[PlacementComparison] = Field(default_factory=list)
    geographic: list[CountryComparison] = Field(default_factory=list)
    devices: list[DeviceComparison] = Field(default_factory=list)
    data_availability: dict[str, bool] = Field(
        default_factory=dict, description="False when a dimension's fetch failed"
    )
    degradations: list[Degradation] = Field(default_factory=list)

    @field_serializer("data_availability")
    def serialize_data_availability(self, availability: dict[str, bool]) -> dict[str, bool]:
        return {wire_name(name): available for name, available in availability.items()}

    def to_wire(self) -> dict:
        """Serialize with stable camelCase field names."""
        return self.model_dump(mode="json", by_alias=True)


class ComparisonReportRequest(CamelModel):
    """Request payload for report generation."""

    access_token: str = Field("", description="Meta Marketing API access token")
    account_id: str = Field("", description="Ad account ID (with or without 'act_' prefix)")
    event_name: str = Field("", description="Conversion event to attribute (e.g. purchase)")
    pre_start_date: date
    pre_end_date: date
    post_start_date: date
    post_end_date: date


class ComparisonReportResponse(CamelModel):
    report: ComparisonReport


class AdAccountsRequest(CamelModel):
    access_token: str = Field("", description="Meta Marketing API access token")


class AdAccount(CamelModel):
    id: str
    name: str


class AdAccountsResponse(CamelModel):
    accounts: list[AdAccount] = Field(default_factory=list)
