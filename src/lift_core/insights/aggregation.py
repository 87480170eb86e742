"""Roll raw insight rows up into period totals and per-dimension groups.

Each dimension is a DimensionSpec: a key extractor, a label extractor and the
set of numeric fields that dimension tracks. One generic group-by routine
serves all of them.
"""
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Optional

from .matching import VALUE_CHANNEL_PREFIXES, ConversionMatcher, value_channel


logger = logging.getLogger(__name__)

RawRecord = dict[str, Any]

ALL_FIELDS = frozenset({"spend", "impressions", "clicks", "conversions", "value"})
PLACEMENT_FIELDS = frozenset({"spend", "impressions", "clicks", "conversions"})
SPEND_CONVERSION_FIELDS = frozenset({"spend", "conversions"})

VALUE_CHANNELS = tuple(channel for channel, _ in VALUE_CHANNEL_PREFIXES)


def _safe_int(value: Any) -> int:
    if value is None:
        return 0
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return 0


def _safe_float(value: Any) -> float:
    if value is None:
        return 0.0
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return 0.0
    return parsed if math.isfinite(parsed) else 0.0


@dataclass(frozen=True)
class RecordContribution:
    """Numeric contribution of a single row."""

    spend: float
    impressions: int
    clicks: int
    conversions: int
    value: float
    channel_values: dict[str, float]


@dataclass
class GroupAccumulator:
    """Running totals for one group key within one period."""

    key: str
    labels: dict[str, Optional[str]]
    spend: float = 0.0
    impressions: int = 0
    clicks: int = 0
    conversions: int = 0
    value: float = 0.0

    def add(self, contribution: RecordContribution, fields: frozenset[str]) -> None:
        for name in fields:
            setattr(self, name, getattr(self, name) + getattr(contribution, name))


@dataclass(frozen=True)
class DimensionSpec:
    """How to group rows for one report dimension."""

    name: str
    key_fn: Callable[[RawRecord], Optional[str]]
    label_fn: Callable[[RawRecord], dict[str, Optional[str]]]
    fields: frozenset[str]


def _field_key(field_name: str) -> Callable[[RawRecord], Optional[str]]:
    def extract(record: RawRecord) -> Optional[str]:
        value = record.get(field_name)
        return str(value) if value else None

    return extract


def _age_gender_key(record: RawRecord) -> Optional[str]:
    age = record.get("age")
    gender = record.get("gender")
    if not age or not gender:
        return None
    return f"{age}-{gender}"


DIMENSIONS: tuple[DimensionSpec, ...] = (
    DimensionSpec(
        "campaigns",
        _field_key("campaign_name"),
        lambda record: {"name": record.get("campaign_name")},
        ALL_FIELDS,
    ),
    DimensionSpec(
        "ad_sets",
        _field_key("adset_name"),
        lambda record: {"name": record.get("adset_name")},
        ALL_FIELDS,
    ),
    DimensionSpec(
        "ads",
        _field_key("ad_name"),
        lambda record: {"name": record.get("ad_name")},
        ALL_FIELDS,
    ),
    DimensionSpec(
        "placements",
        _field_key("publisher_platform"),
        lambda record: {"name": record.get("publisher_platform")},
        PLACEMENT_FIELDS,
    ),
    DimensionSpec(
        "age_gender",
        _age_gender_key,
        lambda record: {"age": record.get("age"), "gender": record.get("gender")},
        SPEND_CONVERSION_FIELDS,
    ),
    DimensionSpec(
        "countries",
        _field_key("country"),
        lambda record: {"country": record.get("country"), "region": record.get("region")},
        SPEND_CONVERSION_FIELDS,
    ),
    DimensionSpec(
        "devices",
        _field_key("device_platform"),
        lambda record: {"platform": record.get("device_platform")},
        SPEND_CONVERSION_FIELDS,
    ),
)

DIMENSION_NAMES = tuple(spec.name for spec in DIMENSIONS)


@dataclass
class PeriodStats:
    """Scalar totals plus one group map per dimension for a single period."""

    spend: float = 0.0
    impressions: int = 0
    clicks: int = 0
    conversions: int = 0
    total_value: float = 0.0
    record_count: int = 0
    channel_values: dict[str, float] = field(
        default_factory=lambda: {channel: 0.0 for channel in VALUE_CHANNELS}
    )
    groups: dict[str, dict[str, GroupAccumulator]] = field(
        default_factory=lambda: {name: {} for name in DIMENSION_NAMES}
    )

    @property
    def campaigns(self) -> dict[str, GroupAccumulator]:
        return self.groups["campaigns"]

    @property
    def ad_sets(self) -> dict[str, GroupAccumulator]:
        return self.groups["ad_sets"]

    @property
    def ads(self) -> dict[str, GroupAccumulator]:
        return self.groups["ads"]

    @property
    def placements(self) -> dict[str, GroupAccumulator]:
        return self.groups["placements"]

    @property
    def age_gender(self) -> dict[str, GroupAccumulator]:
        return self.groups["age_gender"]

    @property
    def countries(self) -> dict[str, GroupAccumulator]:
        return self.groups["countries"]

    @property
    def devices(self) -> dict[str, GroupAccumulator]:
        return self.groups["devices"]

    def adopt_dimension(self, name: str, source: "PeriodStats") -> None:
        """Replace one dimension's groups with those aggregated in `source`."""
        self.groups[name] = source.groups[name]


def _sum_matching(
    entries: Any,
    target_event: str,
    matcher: ConversionMatcher,
    parse: Callable[[Any], float],
) -> tuple[float, list[tuple[Optional[str], float]]]:
    total = 0
    matched: list[tuple[Optional[str], float]] = []
    if not isinstance(entries, list):
        return total, matched

    for entry in entries:
        if not isinstance(entry, dict):
            continue
        action_type = entry.get("action_type")
        if not matcher.matches(action_type, target_event):
            continue
        amount = parse(entry.get("value"))
        total += amount
        matched.append((action_type, amount))

    return total, matched


def parse_record(
    record: RawRecord,
    target_event: str,
    matcher: ConversionMatcher,
) -> RecordContribution:
    """Parse one row's numeric fields and matched conversions.

    `actions` and `action_values` are independent arrays and are parsed
    separately, never zipped.
    """
    conversions, _ = _sum_matching(record.get("actions"), target_event, matcher, _safe_int)
    value, matched_values = _sum_matching(
        record.get("action_values"), target_event, matcher, _safe_float
    )

    channel_values = {channel: 0.0 for channel in VALUE_CHANNELS}
    for action_type, amount in matched_values:
        channel = value_channel(action_type)
        if channel:
            channel_values[channel] += amount

    return RecordContribution(
        spend=_safe_float(record.get("spend")),
        impressions=_safe_int(record.get("impressions")),
        clicks=_safe_int(record.get("clicks")),
        conversions=int(conversions),
        value=float(value),
        channel_values=channel_values,
    )


def aggregate_records(
    records: Iterable[RawRecord],
    target_event: str,
    matcher: Optional[ConversionMatcher] = None,
    dimensions: tuple[DimensionSpec, ...] = DIMENSIONS,
) -> PeriodStats:
    """Aggregate raw insight rows for one period.

    Args:
        records: Raw rows returned by the insights endpoint
        target_event: Conversion event name to count
        matcher: Conversion matcher (defaults to the pixel alias table)
        dimensions: Dimension specs to group by

    Returns:
        PeriodStats with scalar totals and per-dimension groups
    """
    matcher = matcher or ConversionMatcher()
    stats = PeriodStats()
    for spec in dimensions:
        stats.groups.setdefault(spec.name, {})

    for record in records:
        if not isinstance(record, dict):
            logger.warning("Skipping non-object insight row: %r", record)
            continue

        contribution = parse_record(record, target_event, matcher)

        stats.record_count += 1
        stats.spend += contribution.spend
        stats.impressions += contribution.impressions
        stats.clicks += contribution.clicks
        stats.conversions += contribution.conversions
        stats.total_value += contribution.value
        for channel, amount in contribution.channel_values.items():
            stats.channel_values[channel] = stats.channel_values.get(channel, 0.0) + amount

        for spec in dimensions:
            key = spec.key_fn(record)
            if key is None:
                continue

            group_map = stats.groups[spec.name]
            group = group_map.get(key)
            if group is None:
                group = GroupAccumulator(key=key, labels=spec.label_fn(record))
                group_map[key] = group
            group.add(contribution, spec.fields)

    logger.debug(
        "Aggregated %s rows for event=%s: spend=%.2f conversions=%s value=%.2f",
        stats.record_count,
        target_event,
        stats.spend,
        stats.conversions,
        stats.total_value,
    )
    return stats
