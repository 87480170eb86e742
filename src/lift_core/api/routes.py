"""FastAPI routes for LIFT report generation API."""
import logging
import os

import aiohttp
from fastapi import APIRouter, Depends, HTTPException, Request, status
from redis.asyncio import Redis

from ..insights.config import ReportConfig, load_report_config
from ..insights.date_ranges import DateRange
from ..insights.exceptions import MetaInsightsError, ReportLockedError
from ..insights.fetcher import MetaInsightsFetcher
from ..insights.locking import AccountReportLock
from ..insights.report import generate_report
from ..schemas.report import (
    AdAccount,
    AdAccountsRequest,
    AdAccountsResponse,
    ComparisonReport,
    ComparisonReportRequest,
    ComparisonReportResponse,
)
from .auth import require_api_key


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["reports"])


def _report_config(request: Request) -> ReportConfig:
    """App-level report settings, loaded from the environment when absent."""
    config = getattr(request.app.state, "report_config", None)
    return config or load_report_config()


async def _generate_with_account_lock(
    payload: ComparisonReportRequest,
    config: ReportConfig,
    pre_range: DateRange,
    post_range: DateRange,
) -> ComparisonReport:
    """Generate the report, holding the per-account lock when Redis is configured."""
    redis_url = os.getenv("REDIS_URL")

    if not redis_url:
        return await generate_report(
            payload.access_token,
            payload.account_id,
            payload.event_name,
            pre_range,
            post_range,
            config=config,
        )

    redis = Redis.from_url(redis_url, decode_responses=False)
    try:
        async with AccountReportLock(redis, payload.account_id):
            return await generate_report(
                payload.access_token,
                payload.account_id,
                payload.event_name,
                pre_range,
                post_range,
                config=config,
            )
    finally:
        await redis.aclose()


@router.post(
    "/reports/comparison",
    response_model=ComparisonReportResponse,
    dependencies=[Depends(require_api_key)],
    summary="Generate pre/post comparison report",
    description=(
        "Fetch Meta Ads insights for two periods, attribute the requested "
        "conversion event and return the aggregated comparison report. "
        "Breakdown dimensions that cannot be fetched are returned empty and "
        "flagged in dataAvailability."
    ),
)
async def create_comparison_report(
    payload: ComparisonReportRequest,
    request: Request,
) -> ComparisonReportResponse:
    """Generate a comparison report synchronously.

    Validates:
    - API key (X-LIFT-API-KEY header) - returns 401 if missing/invalid
    - accessToken, accountId and eventName are non-empty
    - each period's start is not after its end
    """
    if not payload.access_token or not payload.account_id or not payload.event_name.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing required parameters",
        )

    try:
        pre_range = DateRange(payload.pre_start_date, payload.pre_end_date)
        post_range = DateRange(payload.post_start_date, payload.post_end_date)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc

    try:
        report = await _generate_with_account_lock(
            payload, _report_config(request), pre_range, post_range
        )
    except ReportLockedError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(exc),
        ) from exc
    except MetaInsightsError as exc:
        logger.error(
            "Report generation failed for account=%s: %s",
            payload.account_id,
            exc,
        )
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=str(exc),
        ) from exc

    return ComparisonReportResponse(report=report)


@router.post(
    "/accounts",
    response_model=AdAccountsResponse,
    dependencies=[Depends(require_api_key)],
    summary="List ad accounts for an access token",
)
async def list_ad_accounts(payload: AdAccountsRequest, request: Request) -> AdAccountsResponse:
    """List ad accounts visible to the supplied access token."""
    if not payload.access_token:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Access token is required",
        )

    config = _report_config(request)
    timeout = aiohttp.ClientTimeout(total=120, connect=30)

    try:
        async with aiohttp.ClientSession(timeout=timeout) as session:
            fetcher = MetaInsightsFetcher(payload.access_token, None, session, config)
            accounts = await fetcher.list_ad_accounts()
    except MetaInsightsError as exc:
        logger.error("Failed to fetch ad accounts: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Failed to fetch ad accounts: {exc}",
        ) from exc

    return AdAccountsResponse(
        accounts=[AdAccount(id=account["id"], name=account["name"]) for account in accounts]
    )
