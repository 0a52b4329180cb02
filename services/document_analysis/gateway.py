"""
Model Gateway
=============

Single path for every completion and embedding call. Each call reserves
an estimate against the rate budget, records the usage the provider
reports, and is counted so the orchestrator knows whether a
jurisdiction made any model calls.

Version: 0.1.0
"""

from dataclasses import dataclass

from services.document_analysis.embeddings import EmbeddingProvider, EmbeddingResult
from services.document_analysis.exceptions import ProviderError
from services.document_analysis.rate_budget import RateBudgetManager
from services.document_analysis.tokens import estimate_tokens
from shared.llm import LLMMessage, LLMProvider, LLMResponse
from shared.logging import get_logger


logger = get_logger(__name__)


@dataclass
class UsageStats:
    """Calls and tokens since the stats object was created."""

    completion_calls: int = 0
    embedding_calls: int = 0
    tokens: int = 0

    @property
    def calls(self) -> int:
        return self.completion_calls + self.embedding_calls


class ModelGateway:
    """
    Rate-budgeted access to the completion and embedding providers.

    Args:
        llm: Completion provider
        embeddings: Embedding provider
        budget: Shared rate budget for the whole run
    """

    def __init__(
        self,
        llm: LLMProvider,
        embeddings: EmbeddingProvider,
        budget: RateBudgetManager,
    ) -> None:
        self.llm = llm
        self.embeddings = embeddings
        self.budget = budget
        self.stats = UsageStats()

    @property
    def completion_model(self) -> str:
        return self.llm.model

    async def complete(
        self,
        messages: list[LLMMessage],
        max_tokens: int | None = None,
        json_mode: bool = False,
        temperature: float | None = None,
    ) -> LLMResponse:
        """
        Run one completion.

        The estimate covers every message plus the output allowance.

        Raises:
            ProviderError: If the provider call fails after its retries.
        """
        model = self.llm.model
        estimate = sum(estimate_tokens(m.content) for m in messages) + (max_tokens or 500)
        await self.budget.reserve(estimate, model)

        self.stats.completion_calls += 1
        try:
            response = await self.llm.complete(
                messages,
                temperature=temperature,
                max_tokens=max_tokens,
                json_mode=json_mode,
            )
        except Exception as e:
            # The request may still have consumed provider quota.
            self.budget.record(estimate, model)
            self.stats.tokens += estimate
            logger.warning("completion_failed", model=model, error=str(e))
            raise ProviderError(str(e), model=model) from e

        tokens = response.usage.total_tokens or estimate
        self.budget.record(tokens, model)
        self.stats.tokens += tokens
        return response

    async def embed(self, text: str) -> EmbeddingResult:
        """
        Embed one text.

        Raises:
            ProviderError: If the embedding call fails after its retries.
        """
        model = self.embeddings.model_name
        estimate = estimate_tokens(text)
        await self.budget.reserve(estimate, model)

        self.stats.embedding_calls += 1
        try:
            result = await self.embeddings.embed(text)
        except Exception as e:
            self.budget.record(estimate, model)
            self.stats.tokens += estimate
            logger.warning("embedding_failed", model=model, error=str(e))
            raise ProviderError(str(e), model=model) from e

        tokens = result.token_count or estimate
        self.budget.record(tokens, model)
        self.stats.tokens += tokens
        return result

    async def close(self) -> None:
        await self.embeddings.close()
