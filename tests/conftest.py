import asyncio
import json
import os
from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone

# Point the module-level engine at SQLite before the app is imported
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test.db")
os.environ.setdefault("LLM_PROVIDER", "mock")

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from booktracker.adapters.quota.memory import InMemoryQuotaStore
from booktracker.api.dependencies import (
    get_clock,
    get_completion_client,
    get_library,
    get_rate_limiter,
)
from booktracker.api.middleware.auth import create_access_token
from booktracker.domain.entities import Preferences, RatingSignal, RawCompletion
from booktracker.domain.models import Base
from booktracker.main import app
from booktracker.ports.library import LibraryPort
from booktracker.ports.llm import LLMPort
from booktracker.services.completion import CompletionClient
from booktracker.services.rate_limiter import RateLimiter

BASE = "http://test"
NOW = datetime(2026, 3, 14, 9, 30, tzinfo=timezone.utc)


# ── Fakes ──────────────────────────────────────────


class FakeLibrary(LibraryPort):
    """In-memory library keyed by user id."""

    def __init__(self) -> None:
        self.rated: dict[str, list[RatingSignal]] = {}
        self.owned: dict[str, list[tuple[str, str]]] = {}
        self.preferences: dict[str, Preferences] = {}
        self.error: Exception | None = None

    def add_rated(self, user_id: str, count: int, start: datetime = NOW) -> list[RatingSignal]:
        signals = [
            RatingSignal(
                book_id=f"{user_id}-book-{i}",
                title=f"Rated Book {i}",
                author=f"Author {i}",
                score=5 - (i % 5),
                genres=("Fantasy",),
                rated_at=start - timedelta(days=i),
            )
            for i in range(count)
        ]
        self.rated.setdefault(user_id, []).extend(signals)
        self.owned.setdefault(user_id, []).extend((s.title, s.author) for s in signals)
        return signals

    async def get_rated_books(self, user_id: str) -> list[RatingSignal]:
        if self.error is not None:
            raise self.error
        return list(self.rated.get(user_id, []))

    async def get_library_titles(self, user_id: str) -> list[tuple[str, str]]:
        return list(self.owned.get(user_id, []))

    async def get_preferences(self, user_id: str) -> Preferences:
        return self.preferences.get(user_id, Preferences())


class ScriptedLLM(LLMPort):
    """Returns a fixed completion (or raises) and records every call."""

    def __init__(self, text: str = "[]", delay: float = 0.0, error: Exception | None = None) -> None:
        self.text = text
        self.delay = delay
        self.error = error
        self.calls: list[dict] = []
        self.cancelled = False

    async def complete(self, system, user, temperature, max_tokens) -> RawCompletion:
        self.calls.append(
            {"system": system, "user": user, "temperature": temperature, "max_tokens": max_tokens}
        )
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        if self.error is not None:
            raise self.error
        return RawCompletion(text=self.text, prompt_tokens=120, completion_tokens=340)


def make_candidates(count: int, prefix: str = "Candidate") -> list[dict]:
    """Well-formed model entries with strictly increasing confidence."""
    return [
        {
            "title": f"{prefix} {i}",
            "author": f"Writer {i}",
            "genre": "Fantasy",
            "reason": f"Because you loved Rated Book {i % 3}.",
            "confidenceScore": round(1 + i * 0.4, 1),
        }
        for i in range(count)
    ]


def as_completion(entries: list[dict]) -> str:
    return json.dumps(entries)


# ── Fixtures ───────────────────────────────────────


@pytest.fixture
def library() -> FakeLibrary:
    return FakeLibrary()


@pytest.fixture
def llm() -> ScriptedLLM:
    return ScriptedLLM(text=as_completion(make_candidates(10)))


@pytest.fixture
def quota_store() -> InMemoryQuotaStore:
    return InMemoryQuotaStore()


@pytest.fixture
def rate_limiter(quota_store: InMemoryQuotaStore) -> RateLimiter:
    return RateLimiter(quota_store, limit=10, window=timedelta(hours=24))


@pytest.fixture
def clock():
    """Mutable clock: tests move ``clock.now`` forward."""

    class Clock:
        now = NOW

        def __call__(self) -> datetime:
            return self.now

    return Clock()


@pytest.fixture
async def client(library, llm, rate_limiter, clock) -> AsyncGenerator[AsyncClient, None]:
    completion = CompletionClient(llm, timeout_seconds=0.5, max_concurrency=4)
    app.dependency_overrides[get_library] = lambda: library
    app.dependency_overrides[get_rate_limiter] = lambda: rate_limiter
    app.dependency_overrides[get_completion_client] = lambda: completion
    app.dependency_overrides[get_clock] = lambda: clock
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url=BASE) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token('reader-1')}"}


@pytest.fixture
async def session_factory(tmp_path):
    """Fresh SQLite database with all tables for adapter tests."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'library.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()
