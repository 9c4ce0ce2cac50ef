"""Redis-backed quota store shared by every worker process."""

import logging
from datetime import datetime, timedelta, timezone

import redis.asyncio as redis

from booktracker.domain.entities import QuotaDecision
from booktracker.ports.quota import QuotaStorePort

logger = logging.getLogger(__name__)

# KEYS[1] = quota hash; ARGV = now_ms, window_ms, limit, consume (1/0)
# Returns {allowed, call_count, window_start_ms}
_QUOTA_SCRIPT = """
local now = tonumber(ARGV[1])
local window = tonumber(ARGV[2])
local limit = tonumber(ARGV[3])
local consume = tonumber(ARGV[4])
local start = tonumber(redis.call('HGET', KEYS[1], 'window_start'))
local count = tonumber(redis.call('HGET', KEYS[1], 'call_count'))
if start == nil or count == nil or now - start >= window then
    start = now
    count = 0
    if consume == 0 then
        return {1, 0, start}
    end
end
if count >= limit then
    return {0, count, start}
end
if consume == 1 then
    count = count + 1
    redis.call('HSET', KEYS[1], 'window_start', start, 'call_count', count)
    redis.call('PEXPIRE', KEYS[1], window)
end
return {1, count, start}
"""


def _to_ms(moment: datetime) -> int:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return int(moment.timestamp() * 1000)


def _from_ms(value: int, like: datetime) -> datetime:
    moment = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    return moment if like.tzinfo is not None else moment.replace(tzinfo=None)


class RedisQuotaStore(QuotaStorePort):
    """
    One hash per user (``quota:recommendations:<user_id>``).

    The check-and-increment runs as a single Lua script so concurrent
    requests from the same user can never both take the last slot.
    """

    def __init__(self, url: str, key_prefix: str = "quota:recommendations") -> None:
        self._client = redis.from_url(url, encoding="utf-8", decode_responses=True)
        self._prefix = key_prefix
        self._script = self._client.register_script(_QUOTA_SCRIPT)
        logger.info("RedisQuotaStore initialized: %s", url)

    def _key(self, user_id: str) -> str:
        return f"{self._prefix}:{user_id}"

    async def _run(
        self,
        user_id: str,
        now: datetime,
        limit: int,
        window: timedelta,
        consume: bool,
    ) -> QuotaDecision:
        window_ms = int(window.total_seconds() * 1000)
        allowed, count, start_ms = await self._script(
            keys=[self._key(user_id)],
            args=[_to_ms(now), window_ms, limit, 1 if consume else 0],
        )
        reset_at = _from_ms(int(start_ms) + window_ms, now)
        return QuotaDecision(
            allowed=bool(int(allowed)),
            remaining=max(0, limit - int(count)),
            reset_at=reset_at,
        )

    async def try_consume(
        self,
        user_id: str,
        now: datetime,
        limit: int,
        window: timedelta,
    ) -> QuotaDecision:
        return await self._run(user_id, now, limit, window, consume=True)

    async def peek(
        self,
        user_id: str,
        now: datetime,
        limit: int,
        window: timedelta,
    ) -> QuotaDecision:
        return await self._run(user_id, now, limit, window, consume=False)

    async def aclose(self) -> None:
        await self._client.aclose()
