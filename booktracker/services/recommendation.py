"""AI recommendation pipeline: quota → signals → prompt → completion → parse → curate."""

import asyncio
import logging
from collections.abc import Callable, Iterable
from datetime import datetime, timezone

from booktracker.domain.entities import (
    EligibilityStatus,
    PipelineTrace,
    RecommendationBatch,
)
from booktracker.domain.errors import (
    PipelineFailureError,
    QuotaExceededError,
    RecommendationError,
)
from booktracker.prompts.templates import RECOMMEND_BOOKS, render_recommendation_prompt
from booktracker.services.completion import CompletionClient
from booktracker.services.curator import curate
from booktracker.services.parser import parse_recommendations
from booktracker.services.rate_limiter import RateLimiter
from booktracker.services.signals import SignalAggregator

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RecommendationService:
    """
    Runs one generation request end to end.

    Stages run sequentially and none is retried. Quota is consumed before
    anything else, so a request that later fails (or is cancelled while the
    completion is in flight) still counts against the user's daily limit.
    """

    def __init__(
        self,
        rate_limiter: RateLimiter,
        aggregator: SignalAggregator,
        completion: CompletionClient,
        max_count: int = 10,
        temperature: float = 0.7,
        max_tokens: int = 1000,
        max_owned_titles: int = 50,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._limiter = rate_limiter
        self._aggregator = aggregator
        self._completion = completion
        self._max_count = max_count
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._max_owned_titles = max_owned_titles
        self._clock = clock

    def clamp_count(self, requested_count: int) -> int:
        return max(1, min(self._max_count, requested_count))

    @staticmethod
    def _advance(trace: PipelineTrace, stage: str) -> None:
        logger.debug("User %s: %s -> %s", trace.user_id, trace.current, stage)
        trace.advance(stage)

    async def generate(
        self,
        user_id: str,
        requested_count: int,
        exclude: Iterable[tuple[str, str]] = (),
    ) -> RecommendationBatch:
        """
        Generate a curated batch for ``user_id``.

        ``exclude`` holds (title, author) pairs from earlier batches the caller
        still shows; they are filtered out like owned books.
        """
        trace = PipelineTrace(user_id=user_id)
        count = self.clamp_count(requested_count)
        try:
            now = self._clock()
            decision = await self._limiter.try_consume(user_id, now)
            if not decision.allowed:
                raise QuotaExceededError(self._limiter.limit, decision.reset_at, now)
            self._advance(trace, "quota_checked")

            ctx = await self._aggregator.build_context(user_id, count)
            self._advance(trace, "signals_aggregated")

            prompt = render_recommendation_prompt(ctx, self._max_owned_titles)
            self._advance(trace, "prompt_built")
            logger.debug(
                "Prompt %s v%s built for user %s with %d signals",
                RECOMMEND_BOOKS.name,
                RECOMMEND_BOOKS.version,
                user_id,
                len(ctx.signals),
            )

            self._advance(trace, "completing")
            raw = await self._completion.complete(
                prompt["system"], prompt["user"], self._temperature, self._max_tokens
            )
            logger.info(
                "Token usage for user %s: prompt_tokens=%d, completion_tokens=%d",
                user_id,
                raw.prompt_tokens,
                raw.completion_tokens,
            )

            candidates = parse_recommendations(raw.text)
            self._advance(trace, "parsed")

            recommendations = curate(
                candidates, [*ctx.already_owned, *exclude], count
            )
            self._advance(trace, "curated")
        except RecommendationError as exc:
            logger.warning(
                "Recommendation pipeline failed for user %s at %s: %s %s",
                user_id,
                trace.current,
                exc.error_code,
                exc.details,
            )
            self._advance(trace, "failed")
            raise
        except asyncio.CancelledError:
            logger.info("Recommendation request for user %s cancelled at %s", user_id, trace.current)
            self._advance(trace, "failed")
            raise
        except Exception as exc:
            stage = trace.current
            logger.exception("Recommendation pipeline for user %s crashed at %s", user_id, stage)
            self._advance(trace, "failed")
            raise PipelineFailureError(stage, str(exc)) from exc

        self._advance(trace, "done")
        logger.info(
            "Generated %d/%d recommendations for user %s from %d candidates",
            len(recommendations),
            count,
            user_id,
            len(candidates),
        )
        return RecommendationBatch(
            recommendations=recommendations,
            generated_at=self._clock(),
            books_analyzed=len(ctx.signals),
        )

    async def eligibility(self, user_id: str) -> EligibilityStatus:
        """Rated-book count and quota state for ``user_id``; consumes nothing."""
        try:
            rated = await self._aggregator.count_rated(user_id)
        except Exception as exc:
            logger.exception("Could not count rated books for user %s", user_id)
            raise PipelineFailureError("eligibility", str(exc)) from exc
        quota = await self._limiter.peek(user_id, self._clock())
        return EligibilityStatus(
            rated_books=rated,
            minimum_rated_books=self._aggregator.min_rated_books,
            quota=quota,
        )
