import logging

import httpx

from booktracker.domain.entities import RawCompletion
from booktracker.domain.errors import (
    CompletionTimeoutError,
    UpstreamAuthError,
    UpstreamError,
)
from booktracker.ports.llm import LLMPort

logger = logging.getLogger(__name__)


class OllamaLLMAdapter(LLMPort):
    """LLM adapter using a local Ollama instance."""

    def __init__(
        self,
        base_url: str,
        model: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._model = model
        self._timeout = timeout
        self._transport = transport

    async def complete(
        self,
        system: str,
        user: str,
        temperature: float,
        max_tokens: int,
    ) -> RawCompletion:
        """Send a chat completion request to Ollama."""
        payload = {
            "model": self._model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            "stream": False,
            "options": {"num_predict": max_tokens, "temperature": temperature},
        }
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                logger.info("Ollama request: model=%s, max_tokens=%d", self._model, max_tokens)
                resp = await client.post(f"{self._base_url}/api/chat", json=payload)
                resp.raise_for_status()
                body = resp.json()
        except httpx.TimeoutException as exc:
            raise CompletionTimeoutError(self._timeout) from exc
        except httpx.HTTPStatusError as exc:
            status_code = exc.response.status_code
            logger.error("Ollama API error: status=%d", status_code)
            if status_code in (401, 403):
                raise UpstreamAuthError(str(exc)) from exc
            raise UpstreamError(status_code, str(exc)) from exc
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Ollama request failed: %s", exc)
            raise UpstreamError(None, str(exc)) from exc

        result = RawCompletion(
            text=(body.get("message") or {}).get("content", ""),
            prompt_tokens=int(body.get("prompt_eval_count") or 0),
            completion_tokens=int(body.get("eval_count") or 0),
        )
        logger.info("Ollama response: %d chars", len(result.text))
        return result
