"""Join pre and post period aggregates into the comparison report."""
import logging
from typing import Callable, Iterable, Optional, TypeVar

from ..schemas.report import (
    AgeGenderComparison,
    Audience,
    ComparisonReport,
    CountryComparison,
    Degradation,
    DeviceComparison,
    EntityComparison,
    Overview,
    Performance,
    PlacementComparison,
    SummaryTotals,
    ValueChannels,
)
from .aggregation import DIMENSION_NAMES, VALUE_CHANNELS, GroupAccumulator, PeriodStats
from .calculator import DerivedMetrics, derive_metrics, percent_change, safe_ratio
from .date_ranges import DateRange


logger = logging.getLogger(__name__)

RowT = TypeVar("RowT")


def outer_join(
    pre_groups: dict[str, GroupAccumulator],
    post_groups: dict[str, GroupAccumulator],
) -> list[tuple[GroupAccumulator, GroupAccumulator]]:
    """Pair groups by key across periods.

    Every key present on either side appears exactly once; the missing side
    is a zero-valued accumulator carrying the present side's labels. Pre keys
    come first in first-seen order, followed by post-only keys.
    """
    pairs: list[tuple[GroupAccumulator, GroupAccumulator]] = []

    for key, pre_group in pre_groups.items():
        post_group = post_groups.get(key) or GroupAccumulator(key=key, labels=pre_group.labels)
        pairs.append((pre_group, post_group))

    for key, post_group in post_groups.items():
        if key in pre_groups:
            continue
        pairs.append((GroupAccumulator(key=key, labels=post_group.labels), post_group))

    return pairs


def _rank(rows: Iterable[RowT], limit: Optional[int]) -> list[RowT]:
    ranked = sorted(rows, key=lambda row: row.pre_spend + row.post_spend, reverse=True)
    return ranked if limit is None else ranked[:limit]


def _label(pre: GroupAccumulator, post: GroupAccumulator, name: str) -> Optional[str]:
    return pre.labels.get(name) or post.labels.get(name)


def _entity_rows(
    pre_groups: dict[str, GroupAccumulator],
    post_groups: dict[str, GroupAccumulator],
    limit: Optional[int],
) -> list[EntityComparison]:
    rows = [
        EntityComparison(
            name=_label(pre, post, "name") or pre.key,
            pre_spend=pre.spend,
            post_spend=post.spend,
            pre_conversions=pre.conversions,
            post_conversions=post.conversions,
            pre_roas=safe_ratio(pre.value, pre.spend),
            post_roas=safe_ratio(post.value, post.spend),
        )
        for pre, post in outer_join(pre_groups, post_groups)
    ]
    return _rank(rows, limit)


def _dimension_rows(
    pre_groups: dict[str, GroupAccumulator],
    post_groups: dict[str, GroupAccumulator],
    make_row: Callable[[GroupAccumulator, GroupAccumulator], RowT],
) -> list[RowT]:
    return [make_row(pre, post) for pre, post in outer_join(pre_groups, post_groups)]


def _placement_row(pre: GroupAccumulator, post: GroupAccumulator) -> PlacementComparison:
    return PlacementComparison(
        name=_label(pre, post, "name") or pre.key,
        pre_spend=pre.spend,
        post_spend=post.spend,
        pre_impressions=pre.impressions,
        post_impressions=post.impressions,
        pre_conversions=pre.conversions,
        post_conversions=post.conversions,
    )


def _age_gender_row(pre: GroupAccumulator, post: GroupAccumulator) -> AgeGenderComparison:
    return AgeGenderComparison(
        age=_label(pre, post, "age") or "",
        gender=_label(pre, post, "gender") or "",
        pre_spend=pre.spend,
        post_spend=post.spend,
        pre_conversions=pre.conversions,
        post_conversions=post.conversions,
    )


def _country_row(pre: GroupAccumulator, post: GroupAccumulator) -> CountryComparison:
    return CountryComparison(
        country=_label(pre, post, "country") or pre.key,
        region=_label(pre, post, "region"),
        pre_spend=pre.spend,
        post_spend=post.spend,
        pre_conversions=pre.conversions,
        post_conversions=post.conversions,
    )


def _device_row(pre: GroupAccumulator, post: GroupAccumulator) -> DeviceComparison:
    return DeviceComparison(
        platform=_label(pre, post, "platform") or pre.key,
        pre_spend=pre.spend,
        post_spend=post.spend,
        pre_conversions=pre.conversions,
        post_conversions=post.conversions,
    )


def _channel_figures(stats: PeriodStats, channel: str) -> dict[str, float]:
    value = stats.channel_values.get(channel, 0.0)
    return {"value": value, "roas": safe_ratio(value, stats.spend)}


def _changes(
    pre: PeriodStats,
    post: PeriodStats,
    pre_metrics: DerivedMetrics,
    post_metrics: DerivedMetrics,
) -> dict[str, float]:
    return {
        "spend": percent_change(pre.spend, post.spend),
        "conversions": percent_change(pre.conversions, post.conversions),
        "conversionValue": percent_change(pre.total_value, post.total_value),
        "impressions": percent_change(pre.impressions, post.impressions),
        "clicks": percent_change(pre.clicks, post.clicks),
        "ctr": percent_change(pre_metrics.ctr, post_metrics.ctr),
        "cpc": percent_change(pre_metrics.cpc, post_metrics.cpc),
        "cpm": percent_change(pre_metrics.cpm, post_metrics.cpm),
        "roas": percent_change(pre_metrics.roas, post_metrics.roas),
        "costPerConversion": percent_change(
            pre_metrics.cost_per_conversion, post_metrics.cost_per_conversion
        ),
        "conversionRate": percent_change(
            pre_metrics.conversion_rate, post_metrics.conversion_rate
        ),
    }


def build_comparison(
    pre: PeriodStats,
    post: PeriodStats,
    *,
    event_name: str,
    pre_range: DateRange,
    post_range: DateRange,
    top_campaigns: Optional[int] = 20,
    top_ad_sets: Optional[int] = 20,
    top_ads: Optional[int] = 15,
    data_availability: Optional[dict[str, bool]] = None,
    degradations: Optional[list[Degradation]] = None,
) -> ComparisonReport:
    """Assemble the comparison report from two periods' aggregates.

    Args:
        pre: Aggregates for the pre period
        post: Aggregates for the post period
        event_name: Conversion event the report attributes
        pre_range: Pre period dates
        post_range: Post period dates
        top_campaigns: Cap on campaign rows (None for unbounded)
        top_ad_sets: Cap on ad set rows (None for unbounded)
        top_ads: Cap on ad rows (None for unbounded)
        data_availability: Per-dimension availability flags
        degradations: Notes on unavailable or truncated dimensions

    Returns:
        ComparisonReport
    """
    pre_metrics = derive_metrics(pre)
    post_metrics = derive_metrics(post)

    summary = SummaryTotals(
        pre_spend=pre.spend,
        post_spend=post.spend,
        pre_conversions=pre.conversions,
        post_conversions=post.conversions,
        pre_conversion_value=pre.total_value,
        post_conversion_value=post.total_value,
        pre_impressions=pre.impressions,
        post_impressions=post.impressions,
        pre_clicks=pre.clicks,
        post_clicks=post.clicks,
        meta_acr=(
            safe_ratio(post.conversions, post.clicks, 100)
            if post.conversions > 0
            else 0.0
        ),
    )

    overview = Overview(
        pre_spend=pre.spend,
        post_spend=post.spend,
        pre_impressions=pre.impressions,
        post_impressions=post.impressions,
        pre_clicks=pre.clicks,
        post_clicks=post.clicks,
        pre_conversions=pre.conversions,
        post_conversions=post.conversions,
        pre_ctr=pre_metrics.ctr,
        post_ctr=post_metrics.ctr,
        pre_cpc=pre_metrics.cpc,
        post_cpc=post_metrics.cpc,
        pre_cpm=pre_metrics.cpm,
        post_cpm=post_metrics.cpm,
        pre_roas=pre_metrics.roas,
        post_roas=post_metrics.roas,
        pre_cost_per_conversion=pre_metrics.cost_per_conversion,
        post_cost_per_conversion=post_metrics.cost_per_conversion,
        pre_conversion_rate=pre_metrics.conversion_rate,
        post_conversion_rate=post_metrics.conversion_rate,
    )

    value_channels = ValueChannels(
        **{
            f"{period}_{channel}_{metric}": amount
            for period, stats in (("pre", pre), ("post", post))
            for channel in VALUE_CHANNELS
            for metric, amount in _channel_figures(stats, channel).items()
        }
    )

    performance = Performance(
        campaigns=_entity_rows(pre.campaigns, post.campaigns, top_campaigns),
        ad_sets=_entity_rows(pre.ad_sets, post.ad_sets, top_ad_sets),
        top_ads=_entity_rows(pre.ads, post.ads, top_ads),
    )

    availability = {name: True for name in DIMENSION_NAMES}
    if data_availability:
        availability.update(data_availability)

    report = ComparisonReport(
        event_name=event_name,
        pre_start_date=pre_range.start,
        pre_end_date=pre_range.end,
        post_start_date=post_range.start,
        post_end_date=post_range.end,
        summary_totals=summary,
        overview=overview,
        changes=_changes(pre, post, pre_metrics, post_metrics),
        value_channels=value_channels,
        performance=performance,
        audience=Audience(
            age_gender=_dimension_rows(pre.age_gender, post.age_gender, _age_gender_row)
        ),
        placements=_dimension_rows(pre.placements, post.placements, _placement_row),
        geographic=_dimension_rows(pre.countries, post.countries, _country_row),
        devices=_dimension_rows(pre.devices, post.devices, _device_row),
        data_availability=availability,
        degradations=degradations or [],
    )

    logger.info(
        "Built comparison for event=%s: pre_conversions=%s post_conversions=%s "
        "pre_value=%.2f post_value=%.2f",
        event_name,
        pre.conversions,
        post.conversions,
        pre.total_value,
        post.total_value,
    )
    return report
