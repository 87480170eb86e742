"""Environment-driven configuration for insights fetching and reporting."""
import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .matching import DEFAULT_PIXEL_ALIASES


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReportConfig:
    """Fetch pacing, retry and report shaping settings."""

    api_version: str = "v23.0"
    graph_base_url: str = "https://graph.facebook.com"
    chunk_days: int = 7
    page_limit: int = 100
    max_pages_per_chunk: int = 5
    max_retries: int = 3
    retry_base_delay: float = 1.0
    page_delay: float = 0.3
    chunk_delay: float = 0.5
    request_timeout: float = 60.0
    max_concurrent_fetches: int = 4
    top_campaigns: int = 20
    top_ad_sets: int = 20
    top_ads: int = 15
    event_aliases: dict[str, tuple[str, ...]] = field(
        default_factory=lambda: dict(DEFAULT_PIXEL_ALIASES)
    )


def _load_event_aliases(aliases_path: Optional[str]) -> dict[str, tuple[str, ...]]:
    aliases = dict(DEFAULT_PIXEL_ALIASES)
    if not aliases_path:
        return aliases

    aliases_file = Path(aliases_path)
    if not aliases_file.exists():
        raise FileNotFoundError(f"Event alias file not found: {aliases_path}")

    with open(aliases_file, encoding="utf-8") as handle:
        data = json.load(handle)

    if not isinstance(data, dict):
        raise ValueError("Event alias file must contain a JSON object")

    for event, action_types in data.items():
        if not isinstance(action_types, list):
            raise ValueError(f"Aliases for '{event}' must be a list")
        aliases[event.lower()] = tuple(str(value).lower() for value in action_types)

    logger.info("Loaded %s event aliases from %s", len(data), aliases_path)
    return aliases


def load_report_config() -> ReportConfig:
    """Load report configuration from environment."""
    return ReportConfig(
        api_version=os.getenv("META_API_VERSION", "v23.0"),
        graph_base_url=os.getenv("META_GRAPH_BASE_URL", "https://graph.facebook.com"),
        chunk_days=int(os.getenv("META_CHUNK_DAYS", "7")),
        page_limit=int(os.getenv("META_PAGE_LIMIT", "100")),
        max_pages_per_chunk=int(os.getenv("META_MAX_PAGES_PER_CHUNK", "5")),
        max_retries=int(os.getenv("META_MAX_RETRIES", "3")),
        retry_base_delay=float(os.getenv("META_RETRY_BASE_DELAY", "1.0")),
        page_delay=float(os.getenv("META_PAGE_DELAY", "0.3")),
        chunk_delay=float(os.getenv("META_CHUNK_DELAY", "0.5")),
        request_timeout=float(os.getenv("META_REQUEST_TIMEOUT", "60")),
        max_concurrent_fetches=int(os.getenv("META_MAX_CONCURRENT_FETCHES", "4")),
        top_campaigns=int(os.getenv("REPORT_TOP_CAMPAIGNS", "20")),
        top_ad_sets=int(os.getenv("REPORT_TOP_AD_SETS", "20")),
        top_ads=int(os.getenv("REPORT_TOP_ADS", "15")),
        event_aliases=_load_event_aliases(os.getenv("META_EVENT_ALIASES_PATH")),
    )
