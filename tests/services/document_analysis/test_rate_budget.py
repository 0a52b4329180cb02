"""
Tests for Rate Budgeting and the Model Gateway
==============================================

Version: 0.1.0
"""

import pytest

from services.document_analysis.exceptions import ProviderError
from services.document_analysis.gateway import ModelGateway
from services.document_analysis.rate_budget import RateBudgetManager
from shared.llm import LLMMessage
from tests.conftest import FAKE_EMBEDDING_MODEL, FAKE_MODEL, FakeClock, FakeEmbeddings, FakeLLMProvider


class TestRateBudgetManager:
    """Tests for the sliding-window budget."""

    @pytest.fixture
    def manager(self, clock: FakeClock) -> RateBudgetManager:
        return RateBudgetManager(
            budgets={"model-a": 1000, "model-b": 5000},
            window_seconds=60.0,
            clock=clock,
            sleep=clock.sleep,
        )

    @pytest.mark.asyncio
    async def test_second_reservation_waits_for_window(
        self, manager: RateBudgetManager, clock: FakeClock
    ) -> None:
        """Two 700-token calls against a 1000 budget are a window apart."""
        assert await manager.reserve(700, "model-a") == 0.0
        manager.record(700, "model-a")

        waited = await manager.reserve(700, "model-a")

        assert waited >= 60.0
        assert clock.sleeps == [60.0]
        assert manager.usage("model-a") == 0

    @pytest.mark.asyncio
    async def test_fits_without_waiting(self, manager: RateBudgetManager, clock: FakeClock) -> None:
        manager.record(300, "model-a")
        assert await manager.reserve(700, "model-a") == 0.0
        assert clock.sleeps == []

    @pytest.mark.asyncio
    async def test_empty_window_admits_oversized_request(
        self, manager: RateBudgetManager, clock: FakeClock
    ) -> None:
        assert await manager.reserve(50_000, "model-a") == 0.0
        assert clock.sleeps == []

    @pytest.mark.asyncio
    async def test_entries_expire_after_window(
        self, manager: RateBudgetManager, clock: FakeClock
    ) -> None:
        manager.record(900, "model-a")
        clock.now += 30
        manager.record(100, "model-a")
        clock.now += 31

        assert manager.usage("model-a") == 100

    @pytest.mark.asyncio
    async def test_models_have_separate_windows(
        self, manager: RateBudgetManager, clock: FakeClock
    ) -> None:
        manager.record(1000, "model-a")
        assert await manager.reserve(4000, "model-b") == 0.0
        assert clock.sleeps == []

    def test_unknown_model_gets_smallest_budget(self, manager: RateBudgetManager) -> None:
        assert manager.budget_for("model-b") == 5000
        assert manager.budget_for("something-new") == 1000

    def test_record_ignores_non_positive(self, manager: RateBudgetManager) -> None:
        manager.record(0, "model-a")
        manager.record(-5, "model-a")
        assert manager.usage("model-a") == 0

    def test_requires_a_budget(self, clock: FakeClock) -> None:
        with pytest.raises(ValueError):
            RateBudgetManager(budgets={}, clock=clock, sleep=clock.sleep)


class TestModelGateway:
    """Tests for budgeted model calls."""

    @pytest.mark.asyncio
    async def test_complete_records_reported_tokens(
        self, gateway: ModelGateway, budget: RateBudgetManager
    ) -> None:
        response = await gateway.complete([LLMMessage(role="user", content="hello")], max_tokens=50)

        assert response.content
        assert gateway.stats.completion_calls == 1
        assert gateway.stats.tokens == 100
        assert budget.usage(FAKE_MODEL) == 100

    @pytest.mark.asyncio
    async def test_failed_completion_raises_provider_error(
        self, budget: RateBudgetManager, fake_embeddings: FakeEmbeddings
    ) -> None:
        def boom(messages: list[LLMMessage], json_mode: bool) -> str:
            raise RuntimeError("upstream unavailable")

        gateway = ModelGateway(FakeLLMProvider(boom), fake_embeddings, budget)

        with pytest.raises(ProviderError) as exc_info:
            await gateway.complete([LLMMessage(role="user", content="x" * 400)], max_tokens=100)

        assert exc_info.value.model == FAKE_MODEL
        assert gateway.stats.completion_calls == 1
        # Estimate: 100 prompt tokens plus the output allowance
        assert budget.usage(FAKE_MODEL) == 200

    @pytest.mark.asyncio
    async def test_embed_counts_call(self, gateway: ModelGateway, budget: RateBudgetManager) -> None:
        result = await gateway.embed("tree permit")

        assert result.dimensions == 26
        assert gateway.stats.embedding_calls == 1
        assert gateway.stats.calls == 1
        assert budget.usage(FAKE_EMBEDDING_MODEL) == 10
