"""
Embeddings Module
=================

Text-to-vector adapters used by the document indexer and the
retrieval answerer. Each call reports the tokens it consumed so the
rate budget sees real usage.

Version: 0.1.0
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass

import httpx
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from shared.config import settings
from shared.logging import get_logger


logger = get_logger(__name__)


@dataclass
class EmbeddingResult:
    """Vector for one input text."""

    embedding: list[float]
    model: str
    token_count: int = 0

    @property
    def dimensions(self) -> int:
        return len(self.embedding)


class EmbeddingProvider(ABC):
    """Abstract base class for embedding providers."""

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Model identifier, also the rate-budget key."""
        ...

    @abstractmethod
    async def embed(self, text: str) -> EmbeddingResult:
        """Embed a single text."""
        ...

    async def close(self) -> None:  # noqa: B027
        """Release any held connections."""


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code == 429 or exc.response.status_code >= 500
    return False


class OpenAIEmbeddings(EmbeddingProvider):
    """
    OpenAI embeddings over the REST API.

    Uses text-embedding-3-small by default.
    """

    MODELS = {
        "text-embedding-3-small": 1536,
        "text-embedding-3-large": 3072,
        "text-embedding-ada-002": 1536,
    }

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """
        Args:
            api_key: OpenAI API key (default from settings)
            model: Embedding model (default from settings)
            client: Pre-built HTTP client, mainly for tests
        """
        self._api_key = api_key or settings.llm.openai.api_key.get_secret_value()
        self._model = model or settings.embeddings.model
        self._client = client

        if client is None and not self._api_key:
            raise ValueError("OpenAI API key required for embeddings")

    @property
    def model_name(self) -> str:
        return self._model

    @property
    def dimensions(self) -> int:
        return self.MODELS.get(self._model, settings.embeddings.dimensions)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=settings.llm.openai.base_url,
                headers={
                    "Authorization": f"Bearer {self._api_key}",
                    "Content-Type": "application/json",
                },
                timeout=float(settings.embeddings.timeout_seconds),
            )
        return self._client

    @retry(
        retry=retry_if_exception(_is_retryable),
        stop=stop_after_attempt(settings.llm.max_retries),
        wait=wait_exponential(multiplier=1, min=2, max=60),
        reraise=True,
        before_sleep=lambda retry_state: logger.warning(
            "embedding_retry",
            attempt=retry_state.attempt_number,
        ),
    )
    async def embed(self, text: str) -> EmbeddingResult:
        response = await self._get_client().post(
            "/embeddings",
            json={"model": self._model, "input": text},
        )
        response.raise_for_status()

        data = response.json()
        usage = data.get("usage") or {}
        result = EmbeddingResult(
            embedding=data["data"][0]["embedding"],
            model=self._model,
            token_count=int(usage.get("total_tokens") or 0),
        )

        logger.debug(
            "openai_embedding_generated",
            model=self._model,
            tokens=result.token_count,
            dimensions=result.dimensions,
        )
        return result

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
