"""Tests for the Redis quota store.

Needs a reachable Redis server (``TEST_REDIS_URL``, default
``redis://localhost:6379/15``); the store tests are skipped otherwise.
"""

import asyncio
import os
import uuid
from datetime import datetime, timedelta, timezone

import pytest
from redis.exceptions import RedisError

from booktracker.adapters.quota.redis_store import RedisQuotaStore, _from_ms, _to_ms
from booktracker.services.rate_limiter import RateLimiter
from conftest import NOW

REDIS_URL = os.environ.get("TEST_REDIS_URL", "redis://localhost:6379/15")
WINDOW = timedelta(hours=24)


@pytest.fixture
async def redis_store():
    store = RedisQuotaStore(REDIS_URL, key_prefix=f"test-quota:{uuid.uuid4().hex}")
    try:
        await store._client.ping()
    except (RedisError, OSError):
        await store.aclose()
        pytest.skip(f"Redis not reachable at {REDIS_URL}")
    yield store
    keys = [key async for key in store._client.scan_iter(match=f"{store._prefix}:*")]
    if keys:
        await store._client.delete(*keys)
    await store.aclose()


# ── Helpers (no server needed) ─────────────────────


def test_millisecond_round_trip_keeps_awareness():
    assert _from_ms(_to_ms(NOW), NOW) == NOW

    naive = datetime(2026, 3, 14, 9, 30)
    assert _to_ms(naive) == _to_ms(NOW)
    assert _from_ms(_to_ms(naive), naive) == naive
    assert _from_ms(_to_ms(naive), naive).tzinfo is None


def test_ms_conversion_is_utc():
    assert _to_ms(datetime(1970, 1, 1, tzinfo=timezone.utc)) == 0


# ── Store ──────────────────────────────────────────


@pytest.mark.asyncio
async def test_tenth_allowed_eleventh_rejected(redis_store: RedisQuotaStore):
    for n in range(1, 11):
        decision = await redis_store.try_consume("u1", NOW, 10, WINDOW)
        assert decision.allowed
        assert decision.remaining == 10 - n

    decision = await redis_store.try_consume("u1", NOW + timedelta(hours=2), 10, WINDOW)

    assert not decision.allowed
    assert decision.remaining == 0
    assert decision.reset_at == NOW + WINDOW


@pytest.mark.asyncio
async def test_window_resets(redis_store: RedisQuotaStore):
    for _ in range(10):
        await redis_store.try_consume("u1", NOW, 10, WINDOW)

    later = NOW + WINDOW
    decision = await redis_store.try_consume("u1", later, 10, WINDOW)

    assert decision.allowed
    assert decision.remaining == 9
    assert decision.reset_at == later + WINDOW


@pytest.mark.asyncio
async def test_peek_does_not_consume(redis_store: RedisQuotaStore):
    fresh = await redis_store.peek("u1", NOW, 10, WINDOW)
    assert fresh.allowed and fresh.remaining == 10

    await redis_store.try_consume("u1", NOW, 10, WINDOW)
    first = await redis_store.peek("u1", NOW, 10, WINDOW)
    second = await redis_store.peek("u1", NOW, 10, WINDOW)

    assert first == second
    assert first.remaining == 9


@pytest.mark.asyncio
async def test_concurrent_calls_never_exceed_quota(redis_store: RedisQuotaStore):
    decisions = await asyncio.gather(
        *(redis_store.try_consume("tabs", NOW, 10, WINDOW) for _ in range(25))
    )

    assert sum(d.allowed for d in decisions) == 10
    assert (await redis_store.peek("tabs", NOW, 10, WINDOW)).remaining == 0


@pytest.mark.asyncio
async def test_users_are_independent(redis_store: RedisQuotaStore):
    limiter = RateLimiter(redis_store, limit=2, window=WINDOW)
    await limiter.try_consume("u1", NOW)
    await limiter.try_consume("u1", NOW)

    assert not (await limiter.try_consume("u1", NOW)).allowed
    assert (await limiter.try_consume("u2", NOW)).allowed


@pytest.mark.asyncio
async def test_unreachable_server_fails_closed():
    store = RedisQuotaStore("redis://127.0.0.1:1/0")
    limiter = RateLimiter(store, limit=10, failure_retry=timedelta(seconds=60))

    decision = await limiter.try_consume("u1", NOW)
    await limiter.aclose()

    assert not decision.allowed
    assert decision.reset_at == NOW + timedelta(seconds=60)
