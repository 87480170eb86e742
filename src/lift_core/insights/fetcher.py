"""Meta Marketing API insights fetcher.

Fetches insight rows for one (level, breakdowns, date range) request shape,
splitting the range into fixed-width chunks and following the opaque
`paging.next` cursor URL within each chunk.

Requests are paced with a fixed delay between pages and between chunks.
Transient failures are retried with exponential backoff.
"""
import asyncio
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Sequence

import aiohttp

from .aggregation import RawRecord
from .config import ReportConfig
from .date_ranges import DateRange, chunk_date_range
from .exceptions import MetaApiError, MetaRetryExhaustedError


DEFAULT_FIELDS = (
    "spend",
    "impressions",
    "clicks",
    "actions",
    "action_values",
    "campaign_name",
    "adset_name",
    "ad_name",
)

METRIC_LEVELS = frozenset({"ad", "adset", "campaign"})


class PaginationOutcome(str, Enum):
    """How pagination for a chunk (or a whole fetch) terminated."""

    COMPLETED = "completed"
    NO_MORE_CURSOR = "no_more_cursor"
    EMPTY_PAGE = "empty_page"
    INVALID_CURSOR_STOPPED = "invalid_cursor_stopped"
    MAX_PAGES_REACHED = "max_pages_reached"


NATURAL_OUTCOMES = frozenset(
    {
        PaginationOutcome.COMPLETED,
        PaginationOutcome.NO_MORE_CURSOR,
        PaginationOutcome.EMPTY_PAGE,
    }
)


@dataclass(frozen=True)
class ChunkResult:
    """Rows collected for one date chunk and why pagination stopped."""

    date_range: DateRange
    records: list[RawRecord]
    outcome: PaginationOutcome
    pages: int


@dataclass
class FetchResult:
    """Concatenated chunk results for one fetch call, in chunk order."""

    level: str
    breakdowns: tuple[str, ...]
    chunks: list[ChunkResult] = field(default_factory=list)

    @property
    def records(self) -> list[RawRecord]:
        rows: list[RawRecord] = []
        for chunk in self.chunks:
            rows.extend(chunk.records)
        return rows

    @property
    def outcome(self) -> PaginationOutcome:
        """COMPLETED unless some chunk gave up early."""
        for chunk in self.chunks:
            if chunk.outcome not in NATURAL_OUTCOMES:
                return chunk.outcome
        return PaginationOutcome.COMPLETED

    @property
    def is_truncated(self) -> bool:
        return self.outcome is not PaginationOutcome.COMPLETED


def _extract_error_message(body: str) -> str:
    """Pull `error.message` out of a Graph API error body, else return the raw body."""
    try:
        payload = json.loads(body)
    except ValueError:
        return body

    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
    return body


class MetaInsightsFetcher:
    """Async paginated fetcher for Meta Ads insights.

    Concurrent fetch calls on one instance are bounded by a semaphore so a
    single account+token pair is never hit by more than
    `max_concurrent_fetches` cursor chains at once.
    """

    def __init__(
        self,
        access_token: str,
        ad_account_id: Optional[str],
        session: aiohttp.ClientSession,
        config: Optional[ReportConfig] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        """Initialize Meta insights fetcher.

        Args:
            access_token: Meta Marketing API access token (never logged)
            ad_account_id: Ad account ID (with or without 'act_' prefix);
                None when only listing ad accounts
            session: Injected aiohttp ClientSession
            config: Fetch pacing and retry settings
            logger: Optional logger instance
        """
        self._access_token = access_token

        if ad_account_id and not ad_account_id.startswith("act_"):
            ad_account_id = f"act_{ad_account_id}"
        self.ad_account_id = ad_account_id

        self.session = session
        self.config = config or ReportConfig()
        self.logger = logger or logging.getLogger(__name__)

        self.graph_url = f"{self.config.graph_base_url.rstrip('/')}/{self.config.api_version}"
        self.insights_url = f"{self.graph_url}/{self.ad_account_id}/insights"

        self._semaphore = asyncio.Semaphore(self.config.max_concurrent_fetches)
        self._sleep = asyncio.sleep

    def _redact(self, text: str) -> str:
        if not text or not self._access_token:
            return text
        return text.replace(self._access_token, "[REDACTED]")

    def build_params(
        self,
        date_range: DateRange,
        level: str,
        breakdowns: Sequence[str] = (),
        fields: Optional[Sequence[str]] = None,
    ) -> dict[str, str]:
        """Build query parameters for the first page of a chunk."""
        params = {
            "access_token": self._access_token,
            "level": level,
            "time_range": date_range.to_time_range(),
            "fields": ",".join(fields or DEFAULT_FIELDS),
            "limit": str(self.config.page_limit),
        }
        if breakdowns:
            params["breakdowns"] = ",".join(breakdowns)
        return params

    async def fetch(
        self,
        date_range: DateRange,
        level: str = "ad",
        breakdowns: Sequence[str] = (),
        fields: Optional[Sequence[str]] = None,
    ) -> FetchResult:
        """Fetch all insight rows for a date range.

        Args:
            date_range: Inclusive date range to fetch
            level: 'ad', 'adset' or 'campaign'
            breakdowns: Optional breakdown dimensions (e.g. ['country'])
            fields: Field list (defaults to DEFAULT_FIELDS)

        Returns:
            FetchResult with per-chunk rows and pagination outcomes

        Raises:
            MetaApiError: On non-transient API failure
            MetaRetryExhaustedError: When transient failures exceed the retry ceiling
        """
        if not self.ad_account_id:
            raise ValueError("ad_account_id is required to fetch insights")
        if level not in METRIC_LEVELS:
            raise ValueError(f"Unsupported metric level: {level}")

        chunks = chunk_date_range(date_range, self.config.chunk_days)
        result = FetchResult(level=level, breakdowns=tuple(breakdowns))
        label = f"{level}[{','.join(breakdowns)}]" if breakdowns else level

        self.logger.info(
            "Fetching %s insights in %s chunks for %s",
            label,
            len(chunks),
            date_range,
        )

        async with self._semaphore:
            for index, chunk in enumerate(chunks):
                if index > 0:
                    await self._sleep(self.config.chunk_delay)

                self.logger.info(
                    "Processing %s chunk %s/%s: %s",
                    label,
                    index + 1,
                    len(chunks),
                    chunk,
                )
                chunk_result = await self.fetch_chunk(chunk, level, breakdowns, fields)
                result.chunks.append(chunk_result)

        self.logger.info(
            "Fetched %s %s rows for %s (outcome=%s)",
            len(result.records),
            label,
            date_range,
            result.outcome.value,
        )
        return result

    async def fetch_chunk(
        self,
        chunk: DateRange,
        level: str,
        breakdowns: Sequence[str] = (),
        fields: Optional[Sequence[str]] = None,
    ) -> ChunkResult:
        """Fetch one chunk, following cursors up to the page cap."""
        url = self.insights_url
        params: Optional[dict[str, str]] = self.build_params(chunk, level, breakdowns, fields)
        records: list[RawRecord] = []
        pages = 0
        outcome = PaginationOutcome.MAX_PAGES_REACHED

        while pages < self.config.max_pages_per_chunk:
            if pages > 0:
                await self._sleep(self.config.page_delay)

            try:
                result = await self._get_json(url, params)
            except MetaApiError as exc:
                if exc.is_invalid_cursor:
                    self.logger.warning(
                        "Invalid cursor for %s chunk %s, keeping %s rows: %s",
                        level,
                        chunk,
                        len(records),
                        exc.message,
                    )
                    outcome = PaginationOutcome.INVALID_CURSOR_STOPPED
                    break
                raise

            pages += 1
            page_data = result.get("data") or []

            if not page_data:
                outcome = PaginationOutcome.EMPTY_PAGE
                break

            records.extend(page_data)
            self.logger.debug(
                "Fetched %s rows (total: %s) for %s chunk %s",
                len(page_data),
                len(records),
                level,
                chunk,
            )

            next_url = (result.get("paging") or {}).get("next")
            if not next_url:
                outcome = PaginationOutcome.NO_MORE_CURSOR
                break

            url = next_url
            params = None

        if outcome is PaginationOutcome.MAX_PAGES_REACHED:
            self.logger.warning(
                "Page cap (%s) reached for %s chunk %s; remaining pages skipped",
                self.config.max_pages_per_chunk,
                level,
                chunk,
            )

        return ChunkResult(date_range=chunk, records=records, outcome=outcome, pages=pages)

    async def list_ad_accounts(self) -> list[dict[str, str]]:
        """List ad accounts visible to the access token.

        Returns:
            List of {'id', 'name'} dicts; name falls back to id
        """
        url = f"{self.graph_url}/me/adaccounts"
        params: Optional[dict[str, str]] = {
            "access_token": self._access_token,
            "fields": "id,name",
            "limit": str(self.config.page_limit),
        }

        accounts: list[dict[str, str]] = []
        for page in range(self.config.max_pages_per_chunk):
            if page > 0:
                await self._sleep(self.config.page_delay)

            result = await self._get_json(url, params)
            for account in result.get("data") or []:
                account_id = account.get("id")
                if not account_id:
                    continue
                accounts.append({"id": account_id, "name": account.get("name") or account_id})

            next_url = (result.get("paging") or {}).get("next")
            if not next_url:
                break
            url = next_url
            params = None

        self.logger.info("Fetched %s ad accounts", len(accounts))
        return accounts

    async def _get_json(self, url: str, params: Optional[dict[str, str]]) -> dict[str, Any]:
        """Execute GET with retry on transient failures.

        Raises:
            MetaApiError: On non-transient failures (including invalid cursors)
            MetaRetryExhaustedError: After max_retries transient failures
        """
        attempt = 0
        while True:
            try:
                return await self._request_once(url, params)
            except MetaApiError as exc:
                if exc.is_invalid_cursor or not exc.is_transient:
                    raise

                if attempt >= self.config.max_retries:
                    raise MetaRetryExhaustedError(exc.message, attempts=attempt + 1) from exc

                attempt += 1
                delay = self._calculate_backoff(attempt)
                self.logger.warning(
                    "Transient Meta API error: %s, backoff=%.2fs, retry=%s/%s",
                    exc.message,
                    delay,
                    attempt,
                    self.config.max_retries,
                )
                await self._sleep(delay)

    async def _request_once(
        self, url: str, params: Optional[dict[str, str]]
    ) -> dict[str, Any]:
        timeout = aiohttp.ClientTimeout(total=self.config.request_timeout)
        try:
            async with self.session.get(
                url,
                params=params,
                headers={"Accept": "application/json"},
                timeout=timeout,
            ) as response:
                if response.status != 200:
                    try:
                        error_body = await response.text()
                    except ValueError as exc:
                        raise MetaApiError(
                            f"Malformed response body: {exc}", status=response.status
                        ) from exc
                    message = self._redact(_extract_error_message(error_body))
                    self.logger.error(
                        "Meta API error (%s): %s",
                        response.status,
                        message[:500],
                    )
                    raise MetaApiError(message, status=response.status)

                # JSONDecodeError and UnicodeDecodeError are both ValueError
                try:
                    result = await response.json()
                except ValueError as exc:
                    raise MetaApiError(
                        f"Malformed response body: {exc}", status=response.status
                    ) from exc
                if not isinstance(result, dict):
                    raise MetaApiError("Unexpected response body", status=response.status)
                return result

        except asyncio.TimeoutError as exc:
            raise MetaApiError("Request timed out", transient=True) from exc
        except aiohttp.ClientError as exc:
            raise MetaApiError(
                f"Network error: {self._redact(str(exc))}", transient=True
            ) from exc

    def _calculate_backoff(self, attempt: int) -> float:
        """Exponential backoff: base, 2*base, 4*base, ... (attempt is 1-indexed)."""
        return self.config.retry_base_delay * (2 ** (attempt - 1))
