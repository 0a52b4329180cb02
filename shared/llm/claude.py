"""
Claude Provider
===============

Anthropic Messages API adapter.

Version: 0.1.0
"""

import time
from typing import Any

import anthropic
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

_JSON_INSTRUCTION = "Respond ONLY with a single valid JSON object. No markdown, no explanation."


class ClaudeProvider(LLMProvider):
    """
    Anthropic Claude provider.

    The Messages API takes the system prompt separately, so system
    messages are pulled out of the history and concatenated.
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        client: anthropic.AsyncAnthropic | None = None,
    ) -> None:
        self._model = model or settings.llm.claude.model
        self._max_tokens = settings.llm.claude.max_tokens

        if client is None:
            api_key = api_key or settings.llm.claude.api_key.get_secret_value()
            if not api_key:
                raise ValueError("Anthropic API key not configured")
            client = anthropic.AsyncAnthropic(
                api_key=api_key,
                timeout=settings.llm.timeout_seconds,
            )
        self._client = client

        logger.debug("claude_provider_initialized", model=self._model)

    @property
    def name(self) -> str:
        return "claude"

    @property
    def model(self) -> str:
        return self._model

    @retry(
        retry=retry_if_exception_type(
            (anthropic.RateLimitError, anthropic.APIConnectionError)
        ),
        stop=stop_after_attempt(settings.llm.max_retries),
        wait=wait_exponential(multiplier=1, min=2, max=60),
        reraise=True,
        before_sleep=lambda retry_state: logger.warning(
            "claude_retry",
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

        system_parts: list[str] = []
        api_messages: list[dict[str, str]] = []
        for msg in messages:
            msg_dict = msg.to_dict()
            if msg_dict["role"] == "system":
                system_parts.append(msg_dict["content"])
            else:
                api_messages.append(msg_dict)

        if json_mode:
            system_parts.append(_JSON_INSTRUCTION)

        kwargs: dict[str, Any] = {
            "model": self._model,
            "messages": api_messages,
            "max_tokens": max_tokens or self._max_tokens,
            "temperature": temperature if temperature is not None else settings.llm.temperature,
        }
        if system_parts:
            kwargs["system"] = "\n\n".join(system_parts)

        try:
            response = await self._client.messages.create(**kwargs)
        except (anthropic.BadRequestError, anthropic.AuthenticationError) as e:
            logger.error("claude_request_rejected", error=str(e), error_type=type(e).__name__)
            raise

        latency_ms = (time.perf_counter() - start_time) * 1000
        content = "".join(block.text for block in response.content if hasattr(block, "text"))
        usage = LLMUsage(
            prompt_tokens=response.usage.input_tokens,
            completion_tokens=response.usage.output_tokens,
            total_tokens=response.usage.input_tokens + response.usage.output_tokens,
        )

        logger.debug(
            "claude_completion",
            model=self._model,
            tokens=usage.total_tokens,
            latency_ms=round(latency_ms, 2),
        )

        return LLMResponse(
            content=content,
            model=response.model,
            provider=self.name,
            usage=usage,
            finish_reason=response.stop_reason,
            latency_ms=latency_ms,
        )
