"""In-process quota store keyed by user id."""

import asyncio
import logging
from datetime import datetime, timedelta

from booktracker.domain.entities import QuotaDecision, QuotaRecord
from booktracker.ports.quota import QuotaStorePort

logger = logging.getLogger(__name__)


class InMemoryQuotaStore(QuotaStorePort):
    """
    Keep one ``QuotaRecord`` per user in a dict, guarded by one lock per user.

    Records whose window has lapsed are pruned, at most once per window, so
    memory tracks the users active in the last day. Suitable for a single
    worker process. Run several workers behind a load balancer with the Redis
    store instead, or each worker grants its own quota.
    """

    def __init__(self) -> None:
        self._records: dict[str, QuotaRecord] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._last_sweep: datetime | None = None

    def __len__(self) -> int:
        return len(self._records)

    def _sweep(self, now: datetime, window: timedelta) -> None:
        """Drop users whose window has lapsed; runs at most once per window."""
        if self._last_sweep is None:
            self._last_sweep = now
            return
        if now - self._last_sweep < window:
            return
        self._last_sweep = now
        expired = [
            user_id
            for user_id, record in self._records.items()
            if now - record.window_start >= window and not self._is_held(user_id)
        ]
        for user_id in expired:
            del self._records[user_id]
            self._locks.pop(user_id, None)
        if expired:
            logger.debug("Pruned %d expired quota records", len(expired))

    def _is_held(self, user_id: str) -> bool:
        lock = self._locks.get(user_id)
        return lock is not None and lock.locked()

    def _lock_for(self, user_id: str) -> asyncio.Lock:
        # setdefault is atomic between awaits on a single event loop
        return self._locks.setdefault(user_id, asyncio.Lock())

    def _current(self, user_id: str, now: datetime, window: timedelta) -> QuotaRecord:
        record = self._records.get(user_id)
        if record is None or now - record.window_start >= window:
            record = QuotaRecord(user_id=user_id, window_start=now, call_count=0)
            self._records[user_id] = record
        return record

    async def try_consume(
        self,
        user_id: str,
        now: datetime,
        limit: int,
        window: timedelta,
    ) -> QuotaDecision:
        self._sweep(now, window)
        async with self._lock_for(user_id):
            record = self._current(user_id, now, window)
            reset_at = record.window_start + window
            if record.call_count >= limit:
                return QuotaDecision(allowed=False, remaining=0, reset_at=reset_at)
            record.call_count += 1
            logger.debug(
                "Quota consumed for user %s: %d/%d", user_id, record.call_count, limit
            )
            return QuotaDecision(
                allowed=True,
                remaining=limit - record.call_count,
                reset_at=reset_at,
            )

    async def peek(
        self,
        user_id: str,
        now: datetime,
        limit: int,
        window: timedelta,
    ) -> QuotaDecision:
        async with self._lock_for(user_id):
            record = self._records.get(user_id)
            if record is None or now - record.window_start >= window:
                return QuotaDecision(allowed=True, remaining=limit, reset_at=now + window)
            remaining = max(0, limit - record.call_count)
            return QuotaDecision(
                allowed=remaining > 0,
                remaining=remaining,
                reset_at=record.window_start + window,
            )

    def record_for(self, user_id: str) -> QuotaRecord | None:
        """Current record for a user, mainly for inspection in tests."""
        return self._records.get(user_id)
