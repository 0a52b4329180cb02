"""
Tests for Answering Strategies
==============================

Version: 0.1.0
"""

import json

import pytest

from services.document_analysis.answerers import (
    STATE_CODE_GAP,
    AnalysisContext,
    ConversationAnswerer,
    DirectAnswerer,
    RetrievalAnswerer,
    StateCodeAnswerer,
    parse_conversation_reply,
)
from services.document_analysis.embeddings import EmbeddingResult
from services.document_analysis.gateway import ModelGateway
from services.document_analysis.indexer import DocumentIndexer
from services.document_analysis.patterns import SENTINEL_ANSWER, STATE_CODE_ANSWER
from services.document_analysis.rate_budget import RateBudgetManager
from services.document_analysis.similarity import InMemorySimilarityIndex
from shared.llm import LLMMessage
from shared.models import AnswerRecord, DocumentType, Question
from tests.conftest import FakeEmbeddings, FakeLLMProvider


STATUTE = (
    "Section 4.2. A permit is required to remove any tree over 6 inches in diameter.\n\n"
    "Section 9. Violations are subject to a fine of $500 per tree."
)


@pytest.fixture
def questions() -> list[Question]:
    return [
        Question(id="1", text="Is a permit required?"),
        Question(id="2", text="What penalties apply?"),
        Question(id="3", text="Who enforces the ordinance?", additional_source=DocumentType.FORM),
    ]


@pytest.fixture
def context() -> AnalysisContext:
    return AnalysisContext(jurisdiction_id="springfield", domain_id="trees", document=STATUTE)


def _gateway(llm: FakeLLMProvider, budget: RateBudgetManager, embeddings=None) -> ModelGateway:
    return ModelGateway(llm, embeddings or FakeEmbeddings(), budget)


class FailingEmbeddings(FakeEmbeddings):
    async def embed(self, text: str) -> EmbeddingResult:
        raise RuntimeError("embedding service down")


class TestDirectAnswerer:
    """Tests for whole-document answering."""

    @pytest.mark.asyncio
    async def test_cited_answer_gets_higher_confidence(self, budget, context, questions) -> None:
        llm = FakeLLMProvider(lambda m, j: "Yes. Section 4.2 requires a permit.")

        answers = await DirectAnswerer(_gateway(llm, budget)).answer_all(context, questions[:1])

        assert answers[0].confidence == 90
        assert answers[0].source_refs[0].sections == ["4.2"]
        assert answers[0].score is None
        assert STATUTE in llm.calls[0]["messages"][1].content

    @pytest.mark.asyncio
    async def test_uncited_answer(self, budget, context, questions) -> None:
        llm = FakeLLMProvider(lambda m, j: "Yes, a permit is needed.")

        answers = await DirectAnswerer(_gateway(llm, budget)).answer_all(context, questions[:1])

        assert answers[0].confidence == 80
        assert answers[0].source_refs == []

    @pytest.mark.asyncio
    async def test_sentinel_reply(self, budget, context, questions) -> None:
        llm = FakeLLMProvider(lambda m, j: SENTINEL_ANSWER)

        answers = await DirectAnswerer(_gateway(llm, budget)).answer_all(context, questions[:1])

        assert answers[0].answer_text == SENTINEL_ANSWER
        assert answers[0].confidence == 0
        assert answers[0].error is None

    @pytest.mark.asyncio
    async def test_failure_is_recorded_and_batch_continues(self, budget, context, questions) -> None:
        def flaky(messages: list[LLMMessage], json_mode: bool) -> str:
            if "What penalties apply?" in messages[-1].content:
                raise RuntimeError("rate limited")
            return "Section 4.2 applies."

        answers = await DirectAnswerer(_gateway(FakeLLMProvider(flaky), budget)).answer_all(
            context, questions
        )

        assert [a.question_id for a in answers] == ["1", "2", "3"]
        assert answers[1].answer_text == SENTINEL_ANSWER
        assert answers[1].error == "rate limited"
        assert answers[1].score == 0.0
        assert answers[2].error is None


class TestConversationAnswerer:
    """Tests for the multi-turn strategy."""

    @pytest.mark.asyncio
    async def test_history_grows_and_json_is_parsed(self, budget, context, questions) -> None:
        def reply(messages: list[LLMMessage], json_mode: bool) -> str:
            turn = sum(1 for m in messages if m.role == "assistant") + 1
            return json.dumps(
                {
                    "answer": f"Answer {turn} per Section {turn}.",
                    "sourceReference": f"§ {turn}",
                    "confidence": 88,
                }
            )

        llm = FakeLLMProvider(reply)
        answers = await ConversationAnswerer(_gateway(llm, budget)).answer_all(context, questions)

        assert [a.answer_text for a in answers] == [
            "Answer 1 per Section 1.",
            "Answer 2 per Section 2.",
            "Answer 3 per Section 3.",
        ]
        assert all(call["json_mode"] for call in llm.calls)
        assert [len(call["messages"]) for call in llm.calls] == [3, 5, 7]
        assert answers[0].confidence == 88
        assert answers[0].source_refs[0].sections == ["1"]

    @pytest.mark.asyncio
    async def test_document_sent_once(self, budget, context, questions) -> None:
        llm = FakeLLMProvider(lambda m, j: '{"answer": "Yes.", "confidence": 70}')

        await ConversationAnswerer(_gateway(llm, budget)).answer_all(context, questions)

        last = llm.calls[-1]["messages"]
        assert sum(STATUTE in m.content for m in last) == 1

    @pytest.mark.asyncio
    async def test_form_note_only_for_form_questions(self, budget, questions) -> None:
        llm = FakeLLMProvider(lambda m, j: '{"answer": "Yes.", "confidence": 70}')
        context = AnalysisContext(
            jurisdiction_id="springfield", domain_id="trees", document=STATUTE, form="Form A-1"
        )

        await ConversationAnswerer(_gateway(llm, budget)).answer_all(context, questions)

        turns = [call["messages"][-1].content for call in llm.calls]
        assert ["official form" in t for t in turns] == [False, False, True]

    @pytest.mark.asyncio
    async def test_failed_turn_is_dropped_from_history(self, budget, context, questions) -> None:
        def reply(messages: list[LLMMessage], json_mode: bool) -> str:
            if messages[-1].content.startswith("Question 2:"):
                raise RuntimeError("timeout")
            return '{"answer": "Yes.", "confidence": 70}'

        llm = FakeLLMProvider(reply)
        answers = await ConversationAnswerer(_gateway(llm, budget)).answer_all(context, questions)

        assert answers[1].error == "timeout"
        assert answers[1].answer_text == SENTINEL_ANSWER
        assert answers[2].answer_text == "Yes."
        assert len(llm.calls[2]["messages"]) == 5


class TestParseConversationReply:
    """Tests for reply parsing."""

    def test_non_json_reply_uses_raw_text(self) -> None:
        draft = parse_conversation_reply("A permit is required.", None)
        assert draft.answer_text == "A permit is required."
        assert draft.confidence == 50

    def test_bad_confidence_defaults(self) -> None:
        draft = parse_conversation_reply("", {"answer": "Yes.", "confidence": "high"})
        assert draft.confidence == 50

    def test_confidence_is_clamped(self) -> None:
        assert parse_conversation_reply("", {"answer": "Yes.", "confidence": 140}).confidence == 100

    def test_form_reference(self) -> None:
        draft = parse_conversation_reply("", {"answer": "Yes.", "sourceReference": "Form A-1, Part 2"})
        assert draft.source_refs[-1].type == "form"

    def test_sentinel_answer(self) -> None:
        draft = parse_conversation_reply("", {"answer": SENTINEL_ANSWER, "confidence": 15})
        assert draft.confidence == 0


class TestRetrievalAnswerer:
    """Tests for the retrieval strategy."""

    @pytest.mark.asyncio
    async def test_answers_from_nearest_chunks(self, budget, context, questions) -> None:
        llm = FakeLLMProvider(lambda m, j: "Section 4.2 requires a permit.")
        gateway = _gateway(llm, budget)
        index = InMemorySimilarityIndex()
        kept = [AnswerRecord(question_id="7", answer_text="Enforced by the city forester.")]
        context.kept_answers = kept

        answerer = RetrievalAnswerer(gateway, DocumentIndexer(gateway, index), index)
        answers = await answerer.answer_all(context, questions[:1])

        assert len(index) > 0
        assert 0 < answers[0].confidence <= 100
        prompt = llm.calls[0]["messages"][1].content
        assert "STATUTE CHUNK 1" in prompt
        assert "- Q7: Enforced by the city forester." in prompt

    @pytest.mark.asyncio
    async def test_no_matches_gives_sentinel(self, budget, questions) -> None:
        llm = FakeLLMProvider()
        gateway = _gateway(llm, budget)
        index = InMemorySimilarityIndex()
        context = AnalysisContext(jurisdiction_id="springfield", domain_id="trees", document="   ")

        answers = await RetrievalAnswerer(gateway, DocumentIndexer(gateway, index), index).answer_all(
            context, questions[:1]
        )

        assert answers[0].answer_text == SENTINEL_ANSWER
        assert llm.calls == []

    @pytest.mark.asyncio
    async def test_indexing_failure_fails_every_question(self, budget, context, questions) -> None:
        llm = FakeLLMProvider()
        gateway = _gateway(llm, budget, FailingEmbeddings())
        index = InMemorySimilarityIndex()

        answers = await RetrievalAnswerer(gateway, DocumentIndexer(gateway, index), index).answer_all(
            context, questions
        )

        assert all(a.error and a.answer_text == SENTINEL_ANSWER for a in answers)
        assert llm.calls == []


class TestStateCodeAnswerer:
    """Tests for the fixed state-code answers."""

    @pytest.mark.asyncio
    async def test_no_model_calls(self, gateway: ModelGateway, fake_llm, questions) -> None:
        context = AnalysisContext(
            jurisdiction_id="albany",
            domain_id="property-maintenance",
            document="See state code.",
            source_url="https://up.codes/viewer/new_york/ny-property-maintenance-code-2020",
        )

        answers = await StateCodeAnswerer(gateway).answer_all(context, questions)

        assert fake_llm.calls == []
        assert gateway.stats.calls == 0
        assert all(a.answer_text == STATE_CODE_ANSWER for a in answers)
        assert all(a.confidence == 100 and a.gap == STATE_CODE_GAP for a in answers)
        assert answers[0].source_refs[0].type == "state-code"
