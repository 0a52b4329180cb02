"""
LLM Provider Base
=================

Abstract completion interface and the message/usage models shared by
every provider adapter.

Version: 0.1.0
"""

import json
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field

from shared.config import LLMProvider as LLMProviderEnum
from shared.config import settings
from shared.logging import get_logger


logger = get_logger(__name__)


class MessageRole(str, Enum):
    """Message role in conversation."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class LLMMessage(BaseModel):
    """A message in the conversation."""

    role: MessageRole | Literal["system", "user", "assistant"]
    content: str

    def to_dict(self) -> dict[str, str]:
        """Convert to dict for API calls."""
        role_str = self.role.value if isinstance(self.role, MessageRole) else self.role
        return {"role": role_str, "content": self.content}


class LLMUsage(BaseModel):
    """Token usage reported by the provider (zero when not reported)."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class LLMResponse(BaseModel):
    """Response from LLM provider."""

    content: str = Field(..., description="Generated text content")
    model: str = Field(..., description="Model used for generation")
    provider: str = Field(..., description="Provider name")
    usage: LLMUsage = Field(default_factory=LLMUsage)
    finish_reason: str | None = None
    latency_ms: float = 0.0

    def parse_json(self) -> dict[str, Any]:
        """
        Parse the content as a JSON object.

        Markdown code fences around the payload are tolerated.

        Raises:
            ValueError: If the content is not a JSON object.
        """
        text = self.content.strip()
        if text.startswith("```json"):
            text = text[7:]
        elif text.startswith("```"):
            text = text[3:]
        if text.endswith("```"):
            text = text[:-3]

        data = json.loads(text.strip())
        if not isinstance(data, dict):
            raise ValueError(f"Expected a JSON object, got {type(data).__name__}")
        return data


class LLMProvider(ABC):
    """
    Abstract base class for completion providers.

    A provider handles both single request/response calls and multi-turn
    conversations: callers pass the whole message history each time.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name."""
        ...

    @property
    @abstractmethod
    def model(self) -> str:
        """Model identifier."""
        ...

    @abstractmethod
    async def complete(
        self,
        messages: list[LLMMessage],
        temperature: float | None = None,
        max_tokens: int | None = None,
        json_mode: bool = False,
    ) -> LLMResponse:
        """
        Generate a completion for the given messages.

        Args:
            messages: Conversation messages, oldest first
            temperature: Sampling temperature (default from settings)
            max_tokens: Maximum tokens to generate
            json_mode: Ask the provider to return a single JSON object

        Returns:
            LLMResponse with generated content and token usage
        """
        ...


def create_llm_provider(
    provider_type: LLMProviderEnum | None = None,
    model: str | None = None,
) -> LLMProvider:
    """
    Build a provider adapter.

    Args:
        provider_type: Provider to build (default from settings)
        model: Model override (default from the provider's settings)
    """
    provider_type = provider_type or settings.llm.provider

    if provider_type == LLMProviderEnum.OPENAI:
        from shared.llm.openai import OpenAIProvider

        provider: LLMProvider = OpenAIProvider(model=model)
    elif provider_type == LLMProviderEnum.CLAUDE:
        from shared.llm.claude import ClaudeProvider

        provider = ClaudeProvider(model=model)
    else:
        raise ValueError(f"Unknown LLM provider: {provider_type}")

    logger.info("llm_provider_created", provider=provider.name, model=provider.model)
    return provider

