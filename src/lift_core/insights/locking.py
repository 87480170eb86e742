"""Per-account report lock backed by Redis.

Enforces one concurrent report generation per ad account across API workers.
"""
import logging
from typing import Optional

from redis.asyncio import Redis
from redis.asyncio.lock import Lock as AsyncRedisLock

from .exceptions import ReportLockedError


class AccountReportLock:
    """Non-blocking Redis lock keyed by ad account."""

    LOCK_TTL_SECONDS = 1800  # 30 minutes

    def __init__(
        self,
        redis: Redis,
        account_id: str,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.redis = redis
        self.account_id = account_id
        self.lock_key = f"lift:report_lock:{account_id}"
        self.logger = logger or logging.getLogger(__name__)
        self._lock: Optional[AsyncRedisLock] = None

    async def acquire(self) -> None:
        """Acquire the lock or fail fast.

        Raises:
            ReportLockedError: If another report holds the lock
        """
        lock = AsyncRedisLock(
            self.redis,
            name=self.lock_key,
            timeout=self.LOCK_TTL_SECONDS,
            blocking=False,
        )

        acquired = await lock.acquire(blocking=False)
        if not acquired:
            raise ReportLockedError(self.account_id, self.lock_key)

        self._lock = lock
        self.logger.info("Acquired report lock for account=%s", self.account_id)

    async def release(self) -> None:
        """Release the lock with error suppression."""
        if self._lock:
            try:
                await self._lock.release()
                self.logger.info("Released report lock for account=%s", self.account_id)
            except Exception as exc:
                self.logger.error("Failed to release report lock: %s", exc)
            finally:
                self._lock = None

    async def __aenter__(self) -> "AccountReportLock":
        await self.acquire()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.release()
