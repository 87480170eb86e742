"""LIFT insights layer.

Builds pre/post conversion-lift comparison reports from:
- Meta Marketing API insights (ad, ad set, campaign levels + breakdowns)

Pipeline: chunk date ranges -> paginated fetch -> event matching ->
per-dimension aggregation -> derived metrics -> pre/post comparison.
"""
from .aggregation import PeriodStats, aggregate_records
from .calculator import DerivedMetrics, derive_metrics, percent_change
from .comparison import build_comparison
from .date_ranges import DateRange, chunk_date_range
from .exceptions import (
    MetaApiError,
    MetaInsightsError,
    MetaRetryExhaustedError,
    ReportGenerationError,
    ReportLockedError,
)
from .fetcher import MetaInsightsFetcher, PaginationOutcome
from .matching import ConversionMatcher, matches
from .report import ComparisonReportService, generate_report

__all__ = [
    "ComparisonReportService",
    "ConversionMatcher",
    "DateRange",
    "DerivedMetrics",
    "MetaApiError",
    "MetaInsightsError",
    "MetaInsightsFetcher",
    "MetaRetryExhaustedError",
    "PaginationOutcome",
    "PeriodStats",
    "ReportGenerationError",
    "ReportLockedError",
    "aggregate_records",
    "build_comparison",
    "chunk_date_range",
    "derive_metrics",
    "generate_report",
    "matches",
    "percent_change",
]
