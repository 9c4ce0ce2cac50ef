"""Per-user daily quota for recommendation generation."""

import logging
from datetime import datetime, timedelta

from booktracker.domain.entities import QuotaDecision
from booktracker.ports.quota import QuotaStorePort

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Gate in front of the completion provider.

    A storage failure denies the call: the quota exists to cap provider
    spend, so an outage must never grant unlimited generations.
    """

    def __init__(
        self,
        store: QuotaStorePort,
        limit: int = 10,
        window: timedelta = timedelta(hours=24),
        failure_retry: timedelta = timedelta(seconds=60),
    ) -> None:
        self._store = store
        self._limit = limit
        self._window = window
        self._failure_retry = failure_retry

    @property
    def limit(self) -> int:
        return self._limit

    def _denied(self, now: datetime) -> QuotaDecision:
        return QuotaDecision(allowed=False, remaining=0, reset_at=now + self._failure_retry)

    async def try_consume(self, user_id: str, now: datetime) -> QuotaDecision:
        """Count one generation call for the user, or refuse it."""
        try:
            decision = await self._store.try_consume(user_id, now, self._limit, self._window)
        except Exception:
            logger.exception("Quota store unavailable; denying request for user %s", user_id)
            return self._denied(now)

        if not decision.allowed:
            logger.info(
                "Quota exhausted for user %s until %s", user_id, decision.reset_at.isoformat()
            )
        return decision

    async def peek(self, user_id: str, now: datetime) -> QuotaDecision:
        """Current quota state without counting a call."""
        try:
            return await self._store.peek(user_id, now, self._limit, self._window)
        except Exception:
            logger.exception("Quota store unavailable while reading user %s", user_id)
            return self._denied(now)

    async def aclose(self) -> None:
        await self._store.aclose()
