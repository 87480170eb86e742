"""Custom exceptions for Meta insights fetching and report generation."""
from typing import Optional


TRANSIENT_ERROR_PATTERNS = (
    "temporarily unavailable",
    "timed out",
    "timeout",
    "rate limit",
    "request limit reached",
    "please retry your request later",
)

TRANSIENT_HTTP_STATUSES = frozenset({429, 500, 502, 503, 504})


class MetaInsightsError(Exception):
    """Base exception for all insights fetching and reporting errors."""


class MetaApiError(MetaInsightsError):
    """Raised for a failed Meta Graph API request (HTTP error or transport failure)."""

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        transient: Optional[bool] = None,
    ):
        self.status = status
        self.message = message
        self._transient = transient
        if status is None:
            super().__init__(f"Meta API error: {message}")
        else:
            super().__init__(f"Meta API error: {status} - {message}")

    @property
    def is_transient(self) -> bool:
        """Whether the failure is worth retrying."""
        if self._transient is not None:
            return self._transient
        lowered = self.message.lower()
        if any(pattern in lowered for pattern in TRANSIENT_ERROR_PATTERNS):
            return True
        return self.status in TRANSIENT_HTTP_STATUSES

    @property
    def is_invalid_cursor(self) -> bool:
        """Whether the failure was caused by an invalid or expired paging cursor."""
        return "cursor" in self.message.lower()


class MetaRetryExhaustedError(MetaInsightsError):
    """Raised when a transient failure persists past the retry ceiling."""

    def __init__(self, message: str, attempts: int):
        self.message = message
        self.attempts = attempts
        super().__init__(f"Meta API request failed after {attempts} attempts: {message}")


class ReportGenerationError(MetaInsightsError):
    """Raised when required ad-level data for a period cannot be fetched."""

    def __init__(self, period: str, message: str):
        self.period = period
        self.message = message
        super().__init__(f"Failed to fetch required {period}-period ad data: {message}")


class ReportLockedError(MetaInsightsError):
    """Raised when another report for the same ad account is in progress."""

    def __init__(self, account_id: str, lock_key: str):
        self.account_id = account_id
        self.lock_key = lock_key
        super().__init__(
            f"Report already in progress for account={account_id}, key={lock_key}"
        )
