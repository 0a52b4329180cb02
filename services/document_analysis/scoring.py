"""
Scoring & Normalization Engine
==============================

Turns answers into 0-1 scores and rolls them up into the aggregate
fields of an analysis record.

Score Components:
- Per-question score from a replaceable ``ScoringPolicy``
- Weighted aggregate over the catalog questions present
- Average confidence and answered-question count

Version: 0.1.0
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import UTC, datetime

from services.document_analysis.patterns import indicates_missing_provision, is_sentinel_answer
from shared.logging import get_logger
from shared.models import AnalysisRecord, AnswerRecord, ProcessingMethod, Question


logger = get_logger(__name__)

_MEASUREMENT = re.compile(r"\d+\s*(inches?|feet|days?|hours?|percent|%|dollars?|\$)")


# =============================================================================
# Scoring Policies
# =============================================================================


class ScoringPolicy(ABC):
    """Maps one answer to a score in [0, 1]."""

    @abstractmethod
    def score(
        self,
        answer_text: str,
        confidence: int,
        scoring_guidance: str | None = None,
    ) -> float:
        """Score an answer. Implementations must return a value in [0, 1]."""
        ...


@dataclass
class KeywordRule:
    """Adds ``bonus`` when any of ``terms`` (or ``pattern``) appears in the answer."""

    terms: tuple[str, ...]
    bonus: float
    pattern: re.Pattern[str] | None = None

    def applies(self, lower_answer: str) -> bool:
        if self.pattern is not None and self.pattern.search(lower_answer):
            return True
        return any(term in lower_answer for term in self.terms)


@dataclass
class KeywordScoringPolicy(ScoringPolicy):
    """
    Heuristic scoring by regulatory specificity.

    Answers saying the document is silent score at the floor; vague or
    deferring answers score low; anything else starts at ``base`` and
    earns bonuses for concrete regulatory elements (measurements,
    permits, enforcement, replacement requirements) and loses points
    for hedged language. Low-confidence answers are capped.
    """

    floor: float = 0.1
    vague_score: float = 0.3
    base: float = 0.5
    low_confidence: int = 30
    low_confidence_cap: float = 0.5

    vague_terms: tuple[str, ...] = (
        "general",
        "state code",
        "by law",
        "as determined",
        "may be",
        "if appropriate",
    )
    rules: list[KeywordRule] = field(
        default_factory=lambda: [
            KeywordRule((), 0.15, _MEASUREMENT),
            KeywordRule(("diameter", "dbh", "height"), 0.1),
            KeywordRule(("permit", "application"), 0.1),
            KeywordRule(("approval", "authorization"), 0.1),
            KeywordRule(("inspection", "review"), 0.1),
            KeywordRule(("fine", "penalty", "violation"), 0.1),
            KeywordRule(("fee",), 0.1, re.compile(r"\$\d+")),
            KeywordRule(("replacement", "replant", "restore"), 0.15),
            KeywordRule(("native", "species", "indigenous"), 0.1),
            KeywordRule(("prohibited", "required", "mandatory"), 0.1),
            KeywordRule(("arborist", "professional"), 0.05),
            KeywordRule(("plan", "schedule", "timeline"), 0.05),
            KeywordRule(("notice", "hearing", "appeal"), 0.05),
        ]
    )
    penalties: list[KeywordRule] = field(
        default_factory=lambda: [
            KeywordRule(("may", "might", "could"), 0.05),
            KeywordRule(("unclear", "vague", "limited"), 0.1),
        ]
    )

    def score(
        self,
        answer_text: str,
        confidence: int,
        scoring_guidance: str | None = None,
    ) -> float:
        lower = answer_text.lower()

        if indicates_missing_provision(answer_text):
            return self.floor
        if any(term in lower for term in self.vague_terms):
            return self.vague_score

        score = self.base + sum(rule.bonus for rule in self.rules if rule.applies(lower))

        if "does not" not in lower:
            if len(answer_text) > 200:
                score += 0.05
            if len(answer_text) > 400:
                score += 0.05

        for penalty in self.penalties:
            if penalty.applies(lower):
                score -= penalty.bonus

        if confidence < self.low_confidence:
            score = min(score, self.low_confidence_cap)

        return round(max(self.floor, min(1.0, score)), 2)


def score_answer(answer: AnswerRecord, question: Question | None, policy: ScoringPolicy) -> float:
    """Score a stored answer. Failed answers always score 0."""
    if answer.error:
        return 0.0
    guidance = question.scoring_guidance if question else None
    value = policy.score(answer.answer_text, answer.confidence, guidance)
    return max(0.0, min(1.0, value))


def apply_scores(
    answers: list[AnswerRecord],
    catalog: list[Question],
    policy: ScoringPolicy,
    rescore: bool = False,
) -> list[AnswerRecord]:
    """
    Return copies of ``answers`` with scores filled in.

    Args:
        answers: Answers to score
        catalog: Catalog questions (for scoring guidance)
        policy: Scoring policy
        rescore: Recompute scores that are already present
    """
    questions = {q.id: q for q in catalog}
    scored: list[AnswerRecord] = []
    for answer in answers:
        if answer.score is not None and not rescore and not answer.error:
            scored.append(answer)
            continue
        value = score_answer(answer, questions.get(answer.question_id), policy)
        scored.append(answer.model_copy(update={"score": value}))
    return scored


# =============================================================================
# Normalization
# =============================================================================


@dataclass
class NormalizedScores:
    """Aggregate fields of an analysis record."""

    aggregate_score: float
    average_confidence: int
    questions_answered: int
    total_questions: int

    @property
    def display_score(self) -> float:
        """Aggregate on the 0-10 scale shown to readers."""
        return round(self.aggregate_score * 10, 1)


def is_answered(answer: AnswerRecord) -> bool:
    return answer.error is None and not is_sentinel_answer(answer.answer_text)


def normalize(answers: list[AnswerRecord], catalog: list[Question]) -> NormalizedScores:
    """
    Weighted roll-up of per-question scores.

    ``aggregate = Σ(score × weight) / Σ(weight)`` over catalog questions
    that have an answer; answers without a catalog question are ignored.
    """
    weights = {q.id: q.weight for q in catalog}
    present = [a for a in answers if a.question_id in weights]

    total_weight = sum(weights[a.question_id] for a in present)
    weighted = sum((a.score or 0.0) * weights[a.question_id] for a in present)
    aggregate = weighted / total_weight if total_weight > 0 else 0.0

    average_confidence = round(sum(a.confidence for a in present) / len(present)) if present else 0

    return NormalizedScores(
        aggregate_score=round(max(0.0, min(1.0, aggregate)), 4),
        average_confidence=average_confidence,
        questions_answered=sum(1 for a in present if is_answered(a)),
        total_questions=len(catalog),
    )


def build_record(
    jurisdiction_id: str,
    domain_id: str,
    answers: list[AnswerRecord],
    catalog: list[Question],
    processing_method: ProcessingMethod | str,
    grades: dict[str, str] | None = None,
    now: datetime | None = None,
) -> AnalysisRecord:
    """
    Assemble an analysis record with freshly computed aggregates.

    Answers are ordered by catalog order and answers without a catalog
    question are dropped.
    """
    position = {q.id: (q.order, i) for i, q in enumerate(catalog)}
    ordered = sorted(
        (a for a in answers if a.question_id in position),
        key=lambda a: position[a.question_id],
    )
    scores = normalize(ordered, catalog)
    method = (
        processing_method.value
        if isinstance(processing_method, ProcessingMethod)
        else processing_method
    )

    record = AnalysisRecord(
        jurisdiction_id=jurisdiction_id,
        domain_id=domain_id,
        questions=ordered,
        aggregate_score=scores.aggregate_score,
        display_score=scores.display_score,
        average_confidence=scores.average_confidence,
        questions_answered=scores.questions_answered,
        total_questions=scores.total_questions,
        processing_method=method,
        last_updated=now or datetime.now(UTC),
        grades=grades or None,
    )

    logger.debug(
        "record_scored",
        jurisdiction=jurisdiction_id,
        domain=domain_id,
        aggregate_score=record.aggregate_score,
        questions_answered=record.questions_answered,
        total_questions=record.total_questions,
    )
    return record
