"""Inclusive date ranges and chunking into bounded-width windows."""
import json
from dataclasses import dataclass
from datetime import date, datetime, timedelta


@dataclass(frozen=True)
class DateRange:
    """Inclusive calendar date interval."""

    start: date
    end: date

    def __post_init__(self) -> None:
        if self.start > self.end:
            raise ValueError(
                f"DateRange start {self.start.isoformat()} is after end {self.end.isoformat()}"
            )

    @classmethod
    def parse(cls, start: str, end: str) -> "DateRange":
        """Build a range from two YYYY-MM-DD strings."""
        return cls(
            start=datetime.strptime(start, "%Y-%m-%d").date(),
            end=datetime.strptime(end, "%Y-%m-%d").date(),
        )

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1

    def to_time_range(self) -> str:
        """Serialize as the Graph API `time_range` query parameter."""
        return json.dumps(
            {"since": self.start.isoformat(), "until": self.end.isoformat()},
            separators=(",", ":"),
        )

    def __str__(self) -> str:
        return f"{self.start.isoformat()}..{self.end.isoformat()}"


def chunk_date_range(date_range: DateRange, max_span_days: int) -> list[DateRange]:
    """Split a range into contiguous chunks of at most `max_span_days` days.

    Chunks are ascending, non-overlapping and cover the range exactly once.
    The last chunk is clipped to `date_range.end`.

    Args:
        date_range: Inclusive range to split
        max_span_days: Maximum chunk width in days (>= 1)

    Returns:
        Ordered list of sub-ranges
    """
    if max_span_days < 1:
        raise ValueError("max_span_days must be >= 1")

    chunks: list[DateRange] = []
    current = date_range.start
    step = timedelta(days=max_span_days)

    while current <= date_range.end:
        chunk_end = min(current + step - timedelta(days=1), date_range.end)
        chunks.append(DateRange(current, chunk_end))
        current = chunk_end + timedelta(days=1)

    return chunks
