"""Pre/post comparison report orchestration.

Fans out one fetch per (fetch plan, period), runs them concurrently, then
aggregates each period and joins the two periods into a ComparisonReport.
Only the base ad-level fetch is required; every other plan degrades to an
empty, flagged dimension when it fails.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

import aiohttp

from ..schemas.report import ComparisonReport, Degradation
from .aggregation import DIMENSION_NAMES, PeriodStats, RawRecord, aggregate_records
from .comparison import build_comparison
from .config import ReportConfig, load_report_config
from .date_ranges import DateRange
from .exceptions import MetaInsightsError, ReportGenerationError
from .fetcher import FetchResult, MetaInsightsFetcher
from .matching import ConversionMatcher


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FetchPlan:
    """One request shape and the report dimensions its rows feed."""

    name: str
    level: str
    breakdowns: tuple[str, ...] = ()
    required: bool = False
    dimensions: tuple[str, ...] = ()


BASE_PLAN = FetchPlan("ads", "ad", required=True, dimensions=("ads",))

FETCH_PLANS: tuple[FetchPlan, ...] = (
    BASE_PLAN,
    FetchPlan("campaigns", "campaign", dimensions=("campaigns",)),
    FetchPlan("ad_sets", "adset", dimensions=("ad_sets",)),
    FetchPlan("placements", "ad", ("publisher_platform",), dimensions=("placements",)),
    FetchPlan("age_gender", "ad", ("age", "gender"), dimensions=("age_gender",)),
    FetchPlan("countries", "ad", ("country",), dimensions=("countries",)),
    FetchPlan("devices", "ad", ("device_platform",), dimensions=("devices",)),
)


@dataclass
class PlanOutcome:
    """Rows for one plan and period, with availability bookkeeping."""

    plan: FetchPlan
    period: str
    records: list[RawRecord]
    available: bool = True
    degradation: Optional[Degradation] = None


class ComparisonReportService:
    """Generate pre/post comparison reports for one ad account."""

    def __init__(
        self,
        fetcher: MetaInsightsFetcher,
        config: Optional[ReportConfig] = None,
        plans: tuple[FetchPlan, ...] = FETCH_PLANS,
    ) -> None:
        self.fetcher = fetcher
        self.config = config or fetcher.config
        self.plans = plans
        self.matcher = ConversionMatcher(self.config.event_aliases)

    async def generate(
        self,
        event_name: str,
        pre_range: DateRange,
        post_range: DateRange,
    ) -> ComparisonReport:
        """Fetch, aggregate and compare both periods.

        Raises:
            ValueError: If event_name is empty
            ReportGenerationError: If required ad-level data cannot be fetched
        """
        if not event_name or not event_name.strip():
            raise ValueError("event_name must be non-empty")

        logger.info(
            "Generating report: account=%s event=%s pre=%s post=%s",
            self.fetcher.ad_account_id,
            event_name,
            pre_range,
            post_range,
        )

        periods = (("pre", pre_range), ("post", post_range))
        tasks = [
            asyncio.create_task(self._run_plan(plan, period, date_range))
            for period, date_range in periods
            for plan in self.plans
        ]

        try:
            outcomes: list[PlanOutcome] = await asyncio.gather(*tasks)
        except Exception:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        pre_stats = self._assemble_period(
            [outcome for outcome in outcomes if outcome.period == "pre"], event_name
        )
        post_stats = self._assemble_period(
            [outcome for outcome in outcomes if outcome.period == "post"], event_name
        )

        availability = {name: True for name in DIMENSION_NAMES}
        degradations: list[Degradation] = []
        for outcome in outcomes:
            if not outcome.available:
                for dimension in outcome.plan.dimensions:
                    availability[dimension] = False
            if outcome.degradation:
                degradations.append(outcome.degradation)

        report = build_comparison(
            pre_stats,
            post_stats,
            event_name=event_name,
            pre_range=pre_range,
            post_range=post_range,
            top_campaigns=self.config.top_campaigns,
            top_ad_sets=self.config.top_ad_sets,
            top_ads=self.config.top_ads,
            data_availability=availability,
            degradations=degradations,
        )

        logger.info(
            "Report generated for account=%s (%s degraded fetches)",
            self.fetcher.ad_account_id,
            len(degradations),
        )
        return report

    async def _run_plan(
        self, plan: FetchPlan, period: str, date_range: DateRange
    ) -> PlanOutcome:
        try:
            result = await self.fetcher.fetch(
                date_range, level=plan.level, breakdowns=plan.breakdowns
            )
        except MetaInsightsError as exc:
            if plan.required:
                logger.error(
                    "Required %s fetch failed for %s period: %s",
                    plan.name,
                    period,
                    exc,
                )
                raise ReportGenerationError(period, str(exc)) from exc

            logger.warning(
                "Could not fetch %s data for %s period, continuing without it: %s",
                plan.name,
                period,
                exc,
            )
            return PlanOutcome(
                plan=plan,
                period=period,
                records=[],
                available=False,
                degradation=Degradation(
                    dimension=plan.name,
                    period=period,
                    reason="unavailable",
                    message=str(exc),
                ),
            )

        return PlanOutcome(
            plan=plan,
            period=period,
            records=result.records,
            degradation=self._truncation_note(plan, period, result),
        )

    @staticmethod
    def _truncation_note(
        plan: FetchPlan, period: str, result: FetchResult
    ) -> Optional[Degradation]:
        if not result.is_truncated:
            return None

        logger.warning(
            "%s data for %s period is incomplete (%s)",
            plan.name,
            period,
            result.outcome.value,
        )
        return Degradation(
            dimension=plan.name,
            period=period,
            reason="truncated",
            message=f"Pagination stopped early: {result.outcome.value}",
        )

    def _assemble_period(self, outcomes: list[PlanOutcome], event_name: str) -> PeriodStats:
        """Scalar totals come from the base plan; each dimension from its own plan."""
        stats = PeriodStats()
        base_dimensions: tuple[str, ...] = ()
        secondary: list[tuple[FetchPlan, PeriodStats]] = []

        for outcome in outcomes:
            plan_stats = aggregate_records(outcome.records, event_name, self.matcher)
            if outcome.plan.required:
                stats = plan_stats
                base_dimensions = outcome.plan.dimensions
            else:
                secondary.append((outcome.plan, plan_stats))

        for dimension in DIMENSION_NAMES:
            if dimension not in base_dimensions:
                stats.groups[dimension] = {}

        for plan, plan_stats in secondary:
            for dimension in plan.dimensions:
                stats.adopt_dimension(dimension, plan_stats)

        return stats


async def generate_report(
    token: str,
    account_id: str,
    event_name: str,
    pre_range: DateRange,
    post_range: DateRange,
    session: Optional[aiohttp.ClientSession] = None,
    config: Optional[ReportConfig] = None,
) -> ComparisonReport:
    """Generate a pre/post comparison report.

    Args:
        token: Meta Marketing API access token
        account_id: Ad account ID (with or without 'act_' prefix)
        event_name: Conversion event to attribute
        pre_range: Pre period
        post_range: Post period
        session: Optional aiohttp session (one is created when omitted)
        config: Optional config (loaded from environment when omitted)

    Returns:
        ComparisonReport
    """
    config = config or load_report_config()

    if session is not None:
        fetcher = MetaInsightsFetcher(token, account_id, session, config)
        return await ComparisonReportService(fetcher, config).generate(
            event_name, pre_range, post_range
        )

    timeout = aiohttp.ClientTimeout(total=None, connect=30)
    async with aiohttp.ClientSession(timeout=timeout) as owned_session:
        fetcher = MetaInsightsFetcher(token, account_id, owned_session, config)
        return await ComparisonReportService(fetcher, config).generate(
            event_name, pre_range, post_range
        )
