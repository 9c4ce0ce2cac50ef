"""Bounded, time-limited access to the completion provider."""

import asyncio
import logging
import time

from booktracker.domain.entities import RawCompletion
from booktracker.domain.errors import (
    CompletionTimeoutError,
    RecommendationError,
    UpstreamError,
)
from booktracker.ports.llm import LLMPort

logger = logging.getLogger(__name__)


class CompletionClient:
    """
    Wraps an ``LLMPort`` adapter with a concurrency cap and a hard timeout.

    One call, one outcome: nothing here retries. Cancelling the awaiting task
    cancels the provider call as well.
    """

    def __init__(
        self,
        llm: LLMPort,
        timeout_seconds: float = 30.0,
        max_concurrency: int = 8,
    ) -> None:
        self._llm = llm
        self._timeout = timeout_seconds
        self._semaphore = asyncio.Semaphore(max_concurrency)

    async def complete(
        self,
        system: str,
        user: str,
        temperature: float,
        max_tokens: int,
    ) -> RawCompletion:
        """Run one completion; raises CompletionTimeoutError / UpstreamError / UpstreamAuthError."""
        started = time.perf_counter()
        try:
            # The timeout covers waiting for a free slot as well as the call itself.
            async with asyncio.timeout(self._timeout):
                async with self._semaphore:
                    result = await self._llm.complete(system, user, temperature, max_tokens)
        except TimeoutError as exc:
            logger.warning("Completion timed out after %.1f seconds", self._timeout)
            raise CompletionTimeoutError(self._timeout) from exc
        except RecommendationError:
            raise
        except Exception as exc:
            logger.exception("Completion adapter raised an unexpected error")
            raise UpstreamError(None, str(exc)) from exc

        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(
            "Completion finished in %.0fms: prompt_tokens=%d, completion_tokens=%d",
            elapsed_ms,
            result.prompt_tokens,
            result.completion_tokens,
        )
        return result

    async def aclose(self) -> None:
        await self._llm.aclose()
