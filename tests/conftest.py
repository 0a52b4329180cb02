"""
Test Configuration
==================

Pytest fixtures for RegScore tests: scripted model providers, a manual
clock and a throwaway data directory.
"""

import json
import os
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

# Set test environment
os.environ["ENVIRONMENT"] = "testing"

from services.document_analysis.embeddings import EmbeddingProvider, EmbeddingResult
from services.document_analysis.gateway import ModelGateway
from services.document_analysis.rate_budget import RateBudgetManager
from services.document_analysis.similarity import InMemorySimilarityIndex
from shared.llm import LLMMessage, LLMProvider, LLMResponse, LLMUsage


FAKE_MODEL = "fake-chat"
FAKE_EMBEDDING_MODEL = "fake-embedding"

Responder = Callable[[list[LLMMessage], bool], str]


class FakeLLMProvider(LLMProvider):
    """
    Completion provider driven by a responder function.

    Every call is recorded. A responder that raises simulates a provider
    failure.
    """

    def __init__(self, responder: Responder | None = None, tokens_per_call: int = 100) -> None:
        self.responder = responder or (lambda messages, json_mode: "Section 4.2 requires a permit.")
        self.tokens_per_call = tokens_per_call
        self.calls: list[dict[str, Any]] = []

    @property
    def name(self) -> str:
        return "fake"

    @property
    def model(self) -> str:
        return FAKE_MODEL

    async def complete(
        self,
        messages: list[LLMMessage],
        temperature: float | None = None,
        max_tokens: int | None = None,
        json_mode: bool = False,
    ) -> LLMResponse:
        self.calls.append({"messages": list(messages), "json_mode": json_mode})
        content = self.responder(messages, json_mode)
        return LLMResponse(
            content=content,
            model=FAKE_MODEL,
            provider=self.name,
            usage=LLMUsage(total_tokens=self.tokens_per_call),
        )


class FakeEmbeddings(EmbeddingProvider):
    """Letter-frequency vectors: deterministic and sensitive to wording."""

    def __init__(self) -> None:
        self.calls: list[str] = []

    @property
    def model_name(self) -> str:
        return FAKE_EMBEDDING_MODEL

    async def embed(self, text: str) -> EmbeddingResult:
        self.calls.append(text)
        lower = text.lower()
        vector = [float(lower.count(letter)) for letter in "abcdefghijklmnopqrstuvwxyz"]
        return EmbeddingResult(embedding=vector, model=FAKE_EMBEDDING_MODEL, token_count=10)


class FakeClock:
    """Manual monotonic clock whose ``sleep`` advances time instantly."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_llm() -> FakeLLMProvider:
    return FakeLLMProvider()


@pytest.fixture
def fake_embeddings() -> FakeEmbeddings:
    return FakeEmbeddings()


@pytest.fixture
def budget(clock: FakeClock) -> RateBudgetManager:
    return RateBudgetManager(
        budgets={FAKE_MODEL: 100_000, FAKE_EMBEDDING_MODEL: 1_000_000},
        window_seconds=60.0,
        clock=clock,
        sleep=clock.sleep,
    )


@pytest.fixture
def gateway(
    fake_llm: FakeLLMProvider,
    fake_embeddings: FakeEmbeddings,
    budget: RateBudgetManager,
) -> ModelGateway:
    return ModelGateway(fake_llm, fake_embeddings, budget)


@pytest.fixture
def index() -> InMemorySimilarityIndex:
    return InMemorySimilarityIndex()


@pytest.fixture
def sample_questions() -> list[dict[str, Any]]:
    """Catalog entries in the on-disk format."""
    return [
        {"id": "1", "text": "Is a permit required to remove a tree?", "weight": 3},
        {"id": "2", "text": "What penalties apply to violations?", "weight": 1},
    ]


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    root = tmp_path / "data"
    root.mkdir()
    return root


@pytest.fixture
def write_catalog(data_dir: Path) -> Callable[..., Path]:
    def _write(domain: str, questions: list[dict[str, Any]]) -> Path:
        path = data_dir / domain / "questions.json"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps({"questions": questions}), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def write_jurisdiction(data_dir: Path) -> Callable[..., Path]:
    def _write(
        domain: str,
        jurisdiction: str,
        statute: str,
        metadata: dict[str, Any] | None = None,
        guidance: str | None = None,
        form: str | None = None,
    ) -> Path:
        directory = data_dir / domain / jurisdiction
        directory.mkdir(parents=True, exist_ok=True)
        (directory / "statute.txt").write_text(statute, encoding="utf-8")
        if metadata is not None:
            (directory / "metadata.json").write_text(json.dumps(metadata), encoding="utf-8")
        if guidance is not None:
            (directory / "guidance.txt").write_text(guidance, encoding="utf-8")
        if form is not None:
            (directory / "form.txt").write_text(form, encoding="utf-8")
        return directory

    return _write
