"""Wiring of adapters and services for request handlers."""

from collections.abc import Callable
from datetime import datetime, timedelta

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from booktracker.adapters.library.sqlalchemy_store import SqlAlchemyLibraryAdapter
from booktracker.adapters.llm.mock import MockLLMAdapter
from booktracker.adapters.llm.ollama import OllamaLLMAdapter
from booktracker.adapters.llm.openai_adapter import AzureOpenAILLMAdapter, OpenAILLMAdapter
from booktracker.adapters.quota.memory import InMemoryQuotaStore
from booktracker.adapters.quota.redis_store import RedisQuotaStore
from booktracker.config import LLMProvider, QuotaBackend, Settings, settings
from booktracker.database import get_session
from booktracker.ports.library import LibraryPort
from booktracker.ports.llm import LLMPort
from booktracker.ports.quota import QuotaStorePort
from booktracker.services.completion import CompletionClient
from booktracker.services.rate_limiter import RateLimiter
from booktracker.services.recommendation import RecommendationService, utcnow
from booktracker.services.signals import SignalAggregator


# ── Factories (called once from the application lifespan) ──────

def create_llm_adapter(cfg: Settings) -> LLMPort:
    """Instantiate the configured completion provider."""
    if cfg.llm_provider == LLMProvider.OPENAI:
        return OpenAILLMAdapter(
            api_key=cfg.openai_api_key,
            model=cfg.openai_model,
            timeout=cfg.completion_timeout_seconds,
        )
    if cfg.llm_provider == LLMProvider.AZURE:
        return AzureOpenAILLMAdapter(
            endpoint=cfg.azure_openai_endpoint,
            api_key=cfg.azure_openai_api_key,
            deployment=cfg.azure_openai_deployment,
            api_version=cfg.azure_openai_api_version,
            timeout=cfg.completion_timeout_seconds,
        )
    if cfg.llm_provider == LLMProvider.OLLAMA:
        return OllamaLLMAdapter(
            base_url=cfg.ollama_base_url,
            model=cfg.ollama_model,
            timeout=cfg.completion_timeout_seconds,
        )
    return MockLLMAdapter()


def create_completion_client(cfg: Settings) -> CompletionClient:
    return CompletionClient(
        create_llm_adapter(cfg),
        timeout_seconds=cfg.completion_timeout_seconds,
        max_concurrency=cfg.completion_max_concurrency,
    )


def create_quota_store(cfg: Settings) -> QuotaStorePort:
    if cfg.quota_backend == QuotaBackend.REDIS:
        return RedisQuotaStore(cfg.redis_url)
    return InMemoryQuotaStore()


def create_rate_limiter(cfg: Settings) -> RateLimiter:
    return RateLimiter(
        create_quota_store(cfg),
        limit=cfg.daily_quota,
        window=timedelta(hours=cfg.quota_window_hours),
        failure_retry=timedelta(seconds=cfg.quota_failure_retry_seconds),
    )


# ── Request-scoped dependencies ────────────────────────────────

def get_completion_client(request: Request) -> CompletionClient:
    return request.app.state.completion_client


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


def get_library(session: AsyncSession = Depends(get_session)) -> LibraryPort:
    return SqlAlchemyLibraryAdapter(session)


def get_clock() -> Callable[[], datetime]:
    return utcnow


def get_recommendation_service(
    library: LibraryPort = Depends(get_library),
    rate_limiter: RateLimiter = Depends(get_rate_limiter),
    completion: CompletionClient = Depends(get_completion_client),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> RecommendationService:
    aggregator = SignalAggregator(
        library,
        min_rated_books=settings.min_rated_books,
        max_signals=settings.max_signals,
    )
    return RecommendationService(
        rate_limiter=rate_limiter,
        aggregator=aggregator,
        completion=completion,
        max_count=settings.recommendation_max_count,
        temperature=settings.completion_temperature,
        max_tokens=settings.completion_max_tokens,
        max_owned_titles=settings.max_owned_titles_in_prompt,
        clock=clock,
    )
