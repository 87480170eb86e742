"""Unit tests for ComparisonReportService orchestration."""
import json
from datetime import date
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.lift_core.insights.config import ReportConfig
from src.lift_core.insights.date_ranges import DateRange
from src.lift_core.insights.exceptions import (
    MetaApiError,
    MetaRetryExhaustedError,
    ReportGenerationError,
)
from src.lift_core.insights.fetcher import (
    ChunkResult,
    FetchResult,
    MetaInsightsFetcher,
    PaginationOutcome,
)
from src.lift_core.insights.report import ComparisonReportService


PRE = DateRange(date(2024, 11, 1), date(2024, 11, 7))
POST = DateRange(date(2024, 11, 8), date(2024, 11, 14))

BASE_ROW = {
    "spend": "100",
    "impressions": "1000",
    "clicks": "50",
    "campaign_name": "FromAdLevel",
    "adset_name": "AdSetFromAdLevel",
    "ad_name": "Ad 1",
    "actions": [{"action_type": "offsite_conversion.fb_pixel_purchase", "value": "10"}],
    "action_values": [{"action_type": "offsite_conversion.fb_pixel_purchase", "value": "500"}],
}

PLAN_ROWS = {
    ("ad", ()): [BASE_ROW],
    ("campaign", ()): [{"spend": "100", "campaign_name": "Campaign A"}],
    ("adset", ()): [{"spend": "100", "adset_name": "Ad Set A"}],
    ("ad", ("publisher_platform",)): [{"spend": "60", "publisher_platform": "facebook"}],
    ("ad", ("age", "gender")): [{"spend": "40", "age": "25-34", "gender": "female"}],
    ("ad", ("country",)): [{"spend": "100", "country": "US"}],
    ("ad", ("device_platform",)): [{"spend": "100", "device_platform": "mobile"}],
}


def _result(date_range, level, breakdowns, outcome=PaginationOutcome.NO_MORE_CURSOR):
    records = PLAN_ROWS[(level, tuple(breakdowns))]
    return FetchResult(
        level=level,
        breakdowns=tuple(breakdowns),
        chunks=[ChunkResult(date_range=date_range, records=list(records), outcome=outcome, pages=1)],
    )


def _service(fake_fetch):
    fetcher = MetaInsightsFetcher("EAAB_fake_token", "act_1", MagicMock(), ReportConfig())
    fetcher.fetch = AsyncMock(side_effect=fake_fetch)
    return ComparisonReportService(fetcher), fetcher


@pytest.mark.asyncio
async def test_identical_periods_report():
    """Test a full report over identical periods has equal ROAS and zero change."""

    async def fake_fetch(date_range, level="ad", breakdowns=()):
        return _result(date_range, level, breakdowns)

    service, fetcher = _service(fake_fetch)

    report = await service.generate("purchase", PRE, POST)

    assert fetcher.fetch.await_count == 14
    assert report.summary_totals.pre_conversions == 10
    assert report.summary_totals.post_conversion_value == pytest.approx(500.0)
    assert report.overview.pre_roas == pytest.approx(5.0)
    assert report.overview.pre_roas == report.overview.post_roas
    assert all(change == 0 for change in report.changes.values())
    assert report.value_channels.pre_website_value == pytest.approx(500.0)
    assert all(report.data_availability.values())
    assert report.degradations == []


@pytest.mark.asyncio
async def test_dimensions_come_from_their_own_fetch():
    """Test campaign and ad set rows come from campaign/adset level fetches."""

    async def fake_fetch(date_range, level="ad", breakdowns=()):
        return _result(date_range, level, breakdowns)

    service, _ = _service(fake_fetch)

    report = await service.generate("purchase", PRE, POST)

    assert [row.name for row in report.performance.campaigns] == ["Campaign A"]
    assert [row.name for row in report.performance.ad_sets] == ["Ad Set A"]
    assert [row.name for row in report.performance.top_ads] == ["Ad 1"]
    assert [row.name for row in report.placements] == ["facebook"]
    assert report.audience.age_gender[0].gender == "female"
    assert report.geographic[0].country == "US"
    assert report.devices[0].platform == "mobile"


@pytest.mark.asyncio
async def test_optional_fetch_failure_degrades():
    """Test a failed breakdown fetch yields an empty, flagged dimension."""

    async def fake_fetch(date_range, level="ad", breakdowns=()):
        if tuple(breakdowns) == ("country",):
            raise MetaRetryExhaustedError("rate limit", attempts=4)
        return _result(date_range, level, breakdowns)

    service, _ = _service(fake_fetch)

    report = await service.generate("purchase", PRE, POST)

    assert report.geographic == []
    assert report.data_availability["countries"] is False
    assert report.data_availability["devices"] is True
    assert len(report.devices) == 1
    assert {(note.dimension, note.period, note.reason) for note in report.degradations} == {
        ("countries", "pre", "unavailable"),
        ("countries", "post", "unavailable"),
    }


@pytest.mark.asyncio
async def test_required_fetch_failure_raises():
    """Test a failed base ad-level fetch aborts the report."""

    async def fake_fetch(date_range, level="ad", breakdowns=()):
        if level == "ad" and not breakdowns and date_range == POST:
            raise MetaApiError("(#200) Permissions error", status=403)
        return _result(date_range, level, breakdowns)

    service, _ = _service(fake_fetch)

    with pytest.raises(ReportGenerationError) as exc_info:
        await service.generate("purchase", PRE, POST)

    assert exc_info.value.period == "post"
    assert "Permissions error" in str(exc_info.value)


@pytest.mark.asyncio
async def test_truncated_fetch_is_noted():
    """Test a page-capped fetch keeps its rows but is reported as truncated."""

    async def fake_fetch(date_range, level="ad", breakdowns=()):
        if tuple(breakdowns) == ("publisher_platform",):
            return _result(
                date_range, level, breakdowns, outcome=PaginationOutcome.MAX_PAGES_REACHED
            )
        return _result(date_range, level, breakdowns)

    service, _ = _service(fake_fetch)

    report = await service.generate("purchase", PRE, POST)

    assert report.data_availability["placements"] is True
    assert len(report.placements) == 1
    assert {note.reason for note in report.degradations} == {"truncated"}
    assert {note.dimension for note in report.degradations} == {"placements"}


@pytest.mark.asyncio
async def test_empty_event_rejected():
    """Test an empty event name is rejected before fetching."""

    async def fake_fetch(date_range, level="ad", breakdowns=()):
        return _result(date_range, level, breakdowns)

    service, fetcher = _service(fake_fetch)

    with pytest.raises(ValueError):
        await service.generate("  ", PRE, POST)

    fetcher.fetch.assert_not_awaited()


def _http_response(payload=None, json_error=None):
    response = AsyncMock()
    response.status = 200
    if json_error is not None:
        response.json.side_effect = json_error
    else:
        response.json.return_value = payload
    response.__aenter__.return_value = response
    return response


@pytest.mark.asyncio
async def test_malformed_breakdown_page_degrades():
    """Test a non-JSON page on an optional fetch degrades only that dimension."""

    def fake_get(url, params=None, **kwargs):
        level = params["level"]
        breakdowns = tuple(params["breakdowns"].split(",")) if "breakdowns" in params else ()
        if breakdowns == ("country",):
            return _http_response(json_error=json.JSONDecodeError("Expecting value", "", 0))
        return _http_response({"data": PLAN_ROWS[(level, breakdowns)]})

    session = MagicMock()
    session.get.side_effect = fake_get
    fetcher = MetaInsightsFetcher("EAAB_fake_token", "act_1", session, ReportConfig())
    fetcher._sleep = AsyncMock()

    report = await ComparisonReportService(fetcher).generate("purchase", PRE, POST)

    assert report.data_availability["countries"] is False
    assert report.geographic == []
    assert report.data_availability["devices"] is True
    assert report.summary_totals.pre_conversions == 10
    assert {(note.dimension, note.reason) for note in report.degradations} == {
        ("countries", "unavailable"),
    }
    assert all("Malformed response body" in note.message for note in report.degradations)
