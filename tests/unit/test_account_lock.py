"""Unit tests for the per-account report lock."""
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from src.lift_core.insights.exceptions import ReportLockedError
from src.lift_core.insights.locking import AccountReportLock


@pytest.mark.asyncio
async def test_lock_acquired_and_released():
    """Test context manager acquires then releases the account lock."""
    redis = MagicMock()
    mock_lock = MagicMock()
    mock_lock.acquire = AsyncMock(return_value=True)
    mock_lock.release = AsyncMock()

    with patch(
        "src.lift_core.insights.locking.AsyncRedisLock", return_value=mock_lock
    ) as lock_cls:
        async with AccountReportLock(redis, "act_123") as lock:
            assert lock.lock_key == "lift:report_lock:act_123"

    assert lock_cls.call_args.kwargs["name"] == "lift:report_lock:act_123"
    assert lock_cls.call_args.kwargs["timeout"] == AccountReportLock.LOCK_TTL_SECONDS
    mock_lock.release.assert_awaited_once()


@pytest.mark.asyncio
async def test_lock_conflict_raises():
    """Test a held lock fails fast with ReportLockedError."""
    mock_lock = MagicMock()
    mock_lock.acquire = AsyncMock(return_value=False)
    mock_lock.release = AsyncMock()

    with patch("src.lift_core.insights.locking.AsyncRedisLock", return_value=mock_lock):
        with pytest.raises(ReportLockedError) as exc_info:
            async with AccountReportLock(MagicMock(), "act_123"):
                pass

    assert exc_info.value.account_id == "act_123"
    mock_lock.release.assert_not_awaited()


@pytest.mark.asyncio
async def test_release_errors_are_logged_not_raised():
    """Test a failing release does not mask the report result."""
    mock_lock = MagicMock()
    mock_lock.acquire = AsyncMock(return_value=True)
    mock_lock.release = AsyncMock(side_effect=Exception("lock expired"))

    with patch("src.lift_core.insights.locking.AsyncRedisLock", return_value=mock_lock):
        async with AccountReportLock(MagicMock(), "act_123"):
            pass

    mock_lock.release.assert_awaited_once()
