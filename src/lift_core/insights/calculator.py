"""Derived ratio metrics with zero-safe denominators."""
from dataclasses import asdict, dataclass

from .aggregation import PeriodStats


@dataclass(frozen=True)
class DerivedMetrics:
    """Ratio metrics computed from one period's totals."""

    ctr: float
    cpc: float
    cpm: float
    roas: float
    cost_per_conversion: float
    conversion_rate: float

    def as_dict(self) -> dict[str, float]:
        return asdict(self)


def safe_ratio(numerator: float, denominator: float, scale: float = 1.0) -> float:
    """Return numerator / denominator * scale, or 0 when denominator <= 0."""
    if denominator <= 0:
        return 0.0
    return numerator / denominator * scale


def derive_metrics(stats: PeriodStats) -> DerivedMetrics:
    return DerivedMetrics(
        ctr=safe_ratio(stats.clicks, stats.impressions, 100),
        cpc=safe_ratio(stats.spend, stats.clicks),
        cpm=safe_ratio(stats.spend, stats.impressions, 1000),
        roas=safe_ratio(stats.total_value, stats.spend),
        cost_per_conversion=safe_ratio(stats.spend, stats.conversions),
        conversion_rate=safe_ratio(stats.conversions, stats.clicks, 100),
    )


def percent_change(pre: float, post: float) -> float:
    """Relative change from pre to post in percent.

    A zero baseline reports 100 when post grew and 0 otherwise.
    """
    if pre == 0:
        return 100.0 if post > 0 else 0.0
    return (post - pre) / pre * 100
