"""
OpenAI Provider
===============

Chat Completions adapter. Supports JSON response mode, which the
conversation answerer relies on.

Version: 0.1.0
"""

import time
from typing import Any

import openai
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from shared.config import settings
from shared.llm.provider import LLMMessage, LLMProvider, LLMResponse, LLMUsage
from shared.logging import get_logger


logger = get_logger(__name__)


class OpenAIProvider(LLMProvider):
    """OpenAI chat model provider."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        client: openai.AsyncOpenAI | None = None,
    ) -> None:
        """
        Initialize OpenAI provider.

        Args:
            api_key: OpenAI API key (default from settings)
            model: Model to use (default from settings)
            client: Pre-built client, mainly for tests
        """
        self._model = model or settings.llm.openai.model

        if client is None:
            api_key = api_key or settings.llm.openai.api_key.get_secret_value()
            if not api_key:
                raise ValueError("OpenAI API key not configured")
            client = openai.AsyncOpenAI(
                api_key=api_key,
                base_url=settings.llm.openai.base_url,
                timeout=settings.llm.timeout_seconds,
            )
        self._client = client

        logger.debug("openai_provider_initialized", model=self._model)

    @property
    def name(self) -> str:
        return "openai"

    @property
    def model(self) -> str:
        return self._model

    @retry(
        retry=retry_if_exception_type(
            (openai.RateLimitError, openai.APIConnectionError, openai.APITimeoutError)
        ),
        stop=stop_after_attempt(settings.llm.max_retries),
        wait=wait_exponential(multiplier=1, min=2, max=60),
        reraise=True,
        before_sleep=lambda retry_state: logger.warning(
            "openai_retry",
            attempt=retry_state.attempt_number,
        ),
    )
    async def complete(
        self,
        messages: list[LLMMessage],
        temperature: float | None = None,
        max_tokens: int | None = None,
        json_mode: bool = False,
    ) -> LLMResponse:
        start_time = time.perf_counter()

        kwargs: dict[str, Any] = {
            "model": self._model,
            "messages": [msg.to_dict() for msg in messages],
            "temperature": temperature if temperature is not None else settings.llm.temperature,
        }
        if max_tokens:
            kwargs["max_tokens"] = max_tokens
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        try:
            response = await self._client.chat.completions.create(**kwargs)
        except (openai.BadRequestError, openai.AuthenticationError) as e:
            logger.error("openai_request_rejected", error=str(e), error_type=type(e).__name__)
            raise

        latency_ms = (time.perf_counter() - start_time) * 1000
        usage = LLMUsage()
        if response.usage:
            usage = LLMUsage(
                prompt_tokens=response.usage.prompt_tokens,
                completion_tokens=response.usage.completion_tokens,
                total_tokens=response.usage.total_tokens,
            )

        logger.debug(
            "openai_completion",
            model=self._model,
            tokens=usage.total_tokens,
            latency_ms=round(latency_ms, 2),
        )

        choice = response.choices[0]
        return LLMResponse(
            content=choice.message.content or "",
            model=response.model,
            provider=self.name,
            usage=usage,
            finish_reason=choice.finish_reason,
            latency_ms=latency_ms,
        )
