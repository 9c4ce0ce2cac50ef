import logging

import httpx
import openai
from openai import AsyncAzureOpenAI, AsyncOpenAI

from booktracker.domain.entities import RawCompletion
from booktracker.domain.errors import (
    CompletionTimeoutError,
    UpstreamAuthError,
    UpstreamError,
)
from booktracker.ports.llm import LLMPort

logger = logging.getLogger(__name__)


class OpenAILLMAdapter(LLMPort):
    """LLM adapter using OpenAI API (GPT-4o, GPT-4o-mini, etc.)."""

    def __init__(
        self,
        api_key: str,
        model: str,
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        # SDK retries are disabled: one call, one outcome.
        self._client = AsyncOpenAI(
            api_key=api_key, timeout=timeout, max_retries=0, http_client=http_client
        )
        self._model = model
        self._timeout = timeout

    @property
    def provider_name(self) -> str:
        return "OpenAI"

    async def complete(
        self,
        system: str,
        user: str,
        temperature: float,
        max_tokens: int,
    ) -> RawCompletion:
        """Send a chat completion request and map SDK failures to domain errors."""
        logger.info(
            "%s request: model=%s, max_tokens=%d", self.provider_name, self._model, max_tokens
        )
        try:
            resp = await self._client.chat.completions.create(
                model=self._model,
                messages=[
                    {"role": "system", "content": system},
                    {"role": "user", "content": user},
                ],
                max_tokens=max_tokens,
                temperature=temperature,
            )
        except openai.APITimeoutError as exc:
            raise CompletionTimeoutError(self._timeout) from exc
        except (openai.AuthenticationError, openai.PermissionDeniedError) as exc:
            logger.error("%s rejected credentials: %s", self.provider_name, exc)
            raise UpstreamAuthError(str(exc)) from exc
        except openai.APIStatusError as exc:
            logger.error("%s API error: status=%d", self.provider_name, exc.status_code)
            raise UpstreamError(exc.status_code, str(exc)) from exc
        except openai.APIError as exc:
            logger.error("%s connection error: %s", self.provider_name, exc)
            raise UpstreamError(None, str(exc)) from exc

        text = (resp.choices[0].message.content or "") if resp.choices else ""
        usage = resp.usage
        result = RawCompletion(
            text=text,
            prompt_tokens=usage.prompt_tokens if usage else 0,
            completion_tokens=usage.completion_tokens if usage else 0,
        )
        logger.info("%s response: %d chars", self.provider_name, len(result.text))
        return result

    async def aclose(self) -> None:
        await self._client.close()


class AzureOpenAILLMAdapter(OpenAILLMAdapter):
    """LLM adapter for an Azure OpenAI deployment (API-key auth)."""

    def __init__(
        self,
        endpoint: str,
        api_key: str,
        deployment: str,
        api_version: str,
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._client = AsyncAzureOpenAI(
            azure_endpoint=endpoint,
            api_key=api_key,
            api_version=api_version,
            timeout=timeout,
            max_retries=0,
            http_client=http_client,
        )
        self._model = deployment
        self._timeout = timeout

    @property
    def provider_name(self) -> str:
        return "Azure OpenAI"
