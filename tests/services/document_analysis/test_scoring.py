"""
Tests for Scoring and Normalization
===================================

Version: 0.1.0
"""

from datetime import UTC, datetime

import pytest

from services.document_analysis.patterns import SENTINEL_ANSWER
from services.document_analysis.scoring import (
    KeywordScoringPolicy,
    ScoringPolicy,
    apply_scores,
    build_record,
    normalize,
    score_answer,
)
from shared.models import AnswerRecord, ProcessingMethod, Question


SPECIFIC_ANSWER = (
    "Section 5 requires a permit application before removing trees over 6 inches "
    "in diameter. Violations carry a $500 fine per tree."
)


def _answer(qid: str, score: float | None = None, **kwargs) -> AnswerRecord:
    return AnswerRecord(
        question_id=qid,
        question_text=f"Question {qid}",
        answer_text=kwargs.pop("answer_text", SPECIFIC_ANSWER),
        confidence=kwargs.pop("confidence", 90),
        score=score,
        **kwargs,
    )


@pytest.fixture
def weighted_catalog() -> list[Question]:
    return [
        Question(id="a", text="Question a", weight=3, order=0),
        Question(id="b", text="Question b", weight=1, order=1),
    ]


class TestKeywordScoringPolicy:
    """Tests for the default heuristic."""

    @pytest.fixture
    def policy(self) -> KeywordScoringPolicy:
        return KeywordScoringPolicy()

    def test_specific_answer_scores_high(self, policy: KeywordScoringPolicy) -> None:
        assert policy.score(SPECIFIC_ANSWER, 90) == 1.0

    def test_sentinel_scores_floor(self, policy: KeywordScoringPolicy) -> None:
        assert policy.score(SENTINEL_ANSWER, 0) == 0.1

    def test_missing_provision_scores_floor(self, policy: KeywordScoringPolicy) -> None:
        assert policy.score("The ordinance does not specify removal rules.", 80) == 0.1

    def test_vague_answer(self, policy: KeywordScoringPolicy) -> None:
        assert policy.score("Removal may be allowed as determined by the city.", 80) == 0.3

    def test_plain_answer_gets_base(self, policy: KeywordScoringPolicy) -> None:
        assert policy.score("Trees are regulated.", 80) == 0.5

    def test_low_confidence_is_capped(self, policy: KeywordScoringPolicy) -> None:
        assert policy.score(SPECIFIC_ANSWER, 20) == 0.5

    def test_hedging_is_penalized(self, policy: KeywordScoringPolicy) -> None:
        assert policy.score("Trees are regulated and the city could act.", 80) == 0.45

    def test_scores_stay_in_range(self, policy: KeywordScoringPolicy) -> None:
        for text in (SPECIFIC_ANSWER * 5, "unclear limited might", SENTINEL_ANSWER):
            assert 0.0 <= policy.score(text, 50) <= 1.0


class TestScoreAnswer:
    """Tests for applying a policy to stored answers."""

    def test_failed_answer_scores_zero(self) -> None:
        answer = _answer("a", answer_text=SENTINEL_ANSWER, error="timeout")
        assert score_answer(answer, None, KeywordScoringPolicy()) == 0.0

    def test_custom_policy_is_used(self) -> None:
        class Fixed(ScoringPolicy):
            def score(self, answer_text, confidence, scoring_guidance=None):
                return 0.42

        assert score_answer(_answer("a"), None, Fixed()) == 0.42

    def test_apply_scores_keeps_existing(self, weighted_catalog: list[Question]) -> None:
        answers = [_answer("a", score=0.7), _answer("b")]

        scored = apply_scores(answers, weighted_catalog, KeywordScoringPolicy())

        assert scored[0].score == 0.7
        assert scored[1].score == 1.0

    def test_apply_scores_rescore(self, weighted_catalog: list[Question]) -> None:
        scored = apply_scores(
            [_answer("a", score=0.7)], weighted_catalog, KeywordScoringPolicy(), rescore=True
        )
        assert scored[0].score == 1.0


class TestNormalize:
    """Tests for the weighted roll-up."""

    def test_weighted_aggregate(self, weighted_catalog: list[Question]) -> None:
        result = normalize([_answer("a", 1.0), _answer("b", 0.0)], weighted_catalog)

        assert result.aggregate_score == 0.75
        assert result.display_score == 7.5
        assert result.total_questions == 2

    def test_answers_outside_catalog_are_ignored(self, weighted_catalog: list[Question]) -> None:
        result = normalize(
            [_answer("a", 1.0), _answer("b", 0.0), _answer("zz", 0.0)], weighted_catalog
        )
        assert result.aggregate_score == 0.75

    def test_zero_weight_total(self) -> None:
        catalog = [Question(id="a", text="Question a", weight=0)]
        assert normalize([_answer("a", 1.0)], catalog).aggregate_score == 0.0

    def test_answered_count_excludes_sentinel_and_errors(
        self, weighted_catalog: list[Question]
    ) -> None:
        answers = [
            _answer("a", 1.0),
            _answer("b", 0.0, answer_text=SENTINEL_ANSWER, confidence=0, error="boom"),
        ]

        result = normalize(answers, weighted_catalog)

        assert result.questions_answered == 1
        assert result.average_confidence == 45


class TestBuildRecord:
    """Tests for assembling an analysis record."""

    def test_orders_by_catalog_and_drops_orphans(self, weighted_catalog: list[Question]) -> None:
        now = datetime(2026, 3, 1, tzinfo=UTC)
        record = build_record(
            "springfield",
            "trees",
            [_answer("b", 0.0), _answer("zz", 1.0), _answer("a", 1.0)],
            weighted_catalog,
            ProcessingMethod.CONVERSATION,
            grades={"WEN": "B+"},
            now=now,
        )

        assert [a.question_id for a in record.questions] == ["a", "b"]
        assert record.aggregate_score == 0.75
        assert record.display_score == 7.5
        assert record.processing_method == "conversation"
        assert record.last_updated == now
        assert record.grades == {"WEN": "B+"}

    def test_aggregate_matches_recomputation(self, weighted_catalog: list[Question]) -> None:
        record = build_record(
            "springfield", "trees", [_answer("a", 0.4), _answer("b", 0.9)], weighted_catalog, "direct"
        )
        expected = normalize(record.questions, weighted_catalog).aggregate_score
        assert record.aggregate_score == expected
