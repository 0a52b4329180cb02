"""
LLM Provider Module
===================

Abstraction layer over text-completion services.

Supported providers:
- OpenAI GPT (default)
- Anthropic Claude

Usage:
    from shared.llm import LLMMessage, create_llm_provider

    provider = create_llm_provider()

    response = await provider.complete(
        messages=[
            LLMMessage(role="system", content="Answer only from the statute."),
            LLMMessage(role="user", content="Is a permit required?"),
        ]
    )
    print(response.content, response.usage.total_tokens)
"""

from shared.llm.provider import (
    LLMMessage,
    LLMProvider,
    LLMResponse,
    LLMUsage,
    MessageRole,
    create_llm_provider,
)


__all__ = [
    "LLMMessage",
    "LLMProvider",
    "LLMResponse",
    "LLMUsage",
    "MessageRole",
    "create_llm_provider",
]
