"""
Gap Commentary
==============

One-sentence improvement suggestions for answers scoring below the
near-perfect threshold. ``reconcile`` keeps the ``gap`` field in step
with the current score: present exactly when the score is below the
threshold.

Version: 0.1.0
"""

from services.document_analysis.exceptions import ProviderError
from services.document_analysis.gateway import ModelGateway
from services.document_analysis.patterns import indicates_missing_provision, question_type_guidance
from shared.config import settings
from shared.llm import LLMMessage
from shared.logging import get_logger
from shared.models import AnswerRecord, Question


logger = get_logger(__name__)

_GENERIC_MARKERS = ("establish comprehensive regulations", "Gap analysis not available")
_MIN_GAP_CHARS = 20


def fallback_gap(question_text: str) -> str:
    """Deterministic gap used when no usable model suggestion is available."""
    return f"Consider adding explicit provisions that address: {question_text.strip()}"


def is_usable_gap(gap: str | None) -> bool:
    """Reject empty, generic or answer-restating suggestions."""
    if not gap:
        return False
    text = gap.strip()
    if len(text) < _MIN_GAP_CHARS:
        return False
    if any(marker in text for marker in _GENERIC_MARKERS):
        return False
    return not text.lower().startswith("the answer")


def build_gap_prompt(question: Question, answer: AnswerRecord, domain_id: str) -> str:
    guidance = question_type_guidance(question.text)
    if indicates_missing_provision(answer.answer_text) or answer.confidence < 50:
        return (
            "Analyze what appears to be missing from a local statute based on this "
            "question and result:\n\n"
            f"Question: {question.text}\n"
            f"Jurisdiction Result: {answer.answer_text}\n"
            f"Domain: {domain_id}\n\n"
            "The statute appears to not address this topic. Provide specific regulatory "
            "recommendations for what the jurisdiction should establish:\n\n"
            f"{guidance}\n\n"
            'IMPORTANT: Start your response with "Consider adding..." and provide one '
            "concrete, actionable recommendation (1 sentence max)."
        )
    return (
        "Analyze this statute answer for specific improvement opportunities:\n\n"
        f"Question: {question.text}\n"
        f"Jurisdiction Answer: {answer.answer_text}\n"
        f"Confidence: {answer.confidence}% | Score: {answer.score or 0:.2f}/1.0\n\n"
        "Identify SPECIFIC gaps and improvements (not generic advice). Focus on what is "
        "missing or could be strengthened in the existing regulation:\n\n"
        f"{guidance}\n\n"
        'IMPORTANT: Start your response with "Consider adding..." and provide one '
        "concrete, actionable gap (1 sentence max)."
    )


class GapAnalyzer:
    """
    Generates and reconciles gap commentary.

    Args:
        gateway: Rate-budgeted model access
        threshold: Scores at or above this get no gap
        max_tokens: Output allowance for each suggestion
    """

    def __init__(
        self,
        gateway: ModelGateway,
        threshold: float | None = None,
        max_tokens: int | None = None,
    ) -> None:
        self.gateway = gateway
        if threshold is None:
            threshold = settings.analysis.near_perfect_score
        self.threshold = threshold
        self.max_tokens = max_tokens or settings.analysis.gap_max_tokens

    def needs_gap(self, answer: AnswerRecord) -> bool:
        return (answer.score or 0.0) < self.threshold

    async def generate(self, question: Question, answer: AnswerRecord, domain_id: str) -> str:
        """Suggest a gap for one answer, falling back to a fixed template."""
        if answer.error:
            return fallback_gap(question.text)

        prompt = build_gap_prompt(question, answer, domain_id)
        try:
            response = await self.gateway.complete(
                [LLMMessage(role="user", content=prompt)],
                max_tokens=self.max_tokens,
            )
        except ProviderError as e:
            logger.warning("gap_generation_failed", question_id=question.id, error=str(e))
            return fallback_gap(question.text)

        gap = response.content.strip()
        if not is_usable_gap(gap):
            logger.debug("gap_rejected", question_id=question.id, gap=gap[:100])
            return fallback_gap(question.text)
        return gap

    async def reconcile(
        self,
        answers: list[AnswerRecord],
        catalog: list[Question],
        domain_id: str,
    ) -> list[AnswerRecord]:
        """
        Return copies of scored ``answers`` with consistent gaps.

        Gaps are dropped at or above the threshold and generated where
        missing below it. Existing gaps below the threshold are kept.
        """
        questions = {q.id: q for q in catalog}
        result: list[AnswerRecord] = []

        for answer in answers:
            if not self.needs_gap(answer):
                result.append(answer.model_copy(update={"gap": None}) if answer.gap else answer)
                continue
            if answer.gap:
                result.append(answer)
                continue

            question = questions.get(answer.question_id)
            if question is None:
                gap = fallback_gap(answer.question_text or answer.question_id)
            else:
                gap = await self.generate(question, answer, domain_id)
            result.append(answer.model_copy(update={"gap": gap}))

        return result
