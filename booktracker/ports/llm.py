"""LLM port: abstract interface for chat-completion providers."""

from abc import ABC, abstractmethod

from booktracker.domain.entities import RawCompletion


class LLMPort(ABC):
    """
    Abstraction for a single chat-completion call.

    Implementations translate their SDK's failures into
    ``UpstreamError`` / ``UpstreamAuthError`` and never retry.
    """

    @abstractmethod
    async def complete(
        self,
        system: str,
        user: str,
        temperature: float,
        max_tokens: int,
    ) -> RawCompletion:
        """Send a system/user message pair and return the generated text."""
        ...

    async def aclose(self) -> None:
        """Release network resources held by the adapter."""
        return None
