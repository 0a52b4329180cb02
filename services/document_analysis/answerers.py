"""
Answerers
=========

The three answering strategies plus the fixed state-code answerer.

- ``DirectAnswerer``: one call per question with the whole document
- ``ConversationAnswerer``: one multi-turn exchange for all questions
- ``RetrievalAnswerer``: per question, nearest chunks only
- ``StateCodeAnswerer``: no model calls; the jurisdiction defers to a
  state code

Provider failures never abort a batch: the affected question gets the
sentinel answer with ``error`` set.

Version: 0.1.0
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import UTC, datetime

from services.document_analysis import prompts
from services.document_analysis.exceptions import ProviderError
from services.document_analysis.gateway import ModelGateway
from services.document_analysis.indexer import DocumentIndexer
from services.document_analysis.patterns import (
    SENTINEL_ANSWER,
    STATE_CODE_ANSWER,
    cites_structural_reference,
    expand_query,
    extract_section_references,
    is_sentinel_answer,
)
from services.document_analysis.similarity import SimilarityIndex, SimilarityMatch
from services.document_analysis.tokens import estimate_tokens, truncate_to_token_budget
from shared.config import AnalysisSettings, settings
from shared.llm import LLMMessage
from shared.logging import get_logger
from shared.models import AnswerRecord, DocumentType, ProcessingMethod, Question, SourceRef


logger = get_logger(__name__)

DEFAULT_CONVERSATION_CONFIDENCE = 50
STATE_CODE_GAP = (
    "Consider adopting a local ordinance if requirements beyond the state code are needed."
)


@dataclass
class AnalysisContext:
    """Everything an answerer may read for one jurisdiction."""

    jurisdiction_id: str
    domain_id: str
    document: str
    guidance: str | None = None
    form: str | None = None
    kept_answers: list[AnswerRecord] = field(default_factory=list)
    source_url: str | None = None

    @property
    def word_count(self) -> int:
        return len(self.document.split())


@dataclass
class AnswerDraft:
    """An answerer's result before scoring."""

    answer_text: str
    confidence: int
    source_refs: list[SourceRef] = field(default_factory=list)
    error: str | None = None

    @classmethod
    def not_specified(cls, error: str | None = None) -> "AnswerDraft":
        return cls(answer_text=SENTINEL_ANSWER, confidence=0, error=error)

    def to_record(self, question: Question, analyzed_at: datetime | None = None) -> AnswerRecord:
        return AnswerRecord(
            question_id=question.id,
            question_text=question.text,
            answer_text=self.answer_text,
            confidence=max(0, min(100, self.confidence)),
            source_refs=self.source_refs,
            score=0.0 if self.error else None,
            analyzed_at=analyzed_at or datetime.now(UTC),
            error=self.error,
        )


def _statute_refs(text: str) -> list[SourceRef]:
    sections = extract_section_references(text)
    if not sections:
        return []
    return [SourceRef(type=DocumentType.STATUTE.value, name="Statute", sections=sections)]


class Answerer(ABC):
    """Answers a batch of questions for one jurisdiction."""

    method: ProcessingMethod

    def __init__(self, gateway: ModelGateway, config: AnalysisSettings | None = None) -> None:
        self.gateway = gateway
        self.config = config or settings.analysis

    @abstractmethod
    async def answer_all(
        self,
        context: AnalysisContext,
        questions: list[Question],
    ) -> list[AnswerRecord]:
        """Return one answer record per question, in the given order."""
        ...


class PerQuestionAnswerer(Answerer):
    """Answerer making independent calls for each question."""

    @abstractmethod
    async def answer(self, context: AnalysisContext, question: Question) -> AnswerDraft:
        """Answer one question. May raise ProviderError."""
        ...

    async def answer_all(
        self,
        context: AnalysisContext,
        questions: list[Question],
    ) -> list[AnswerRecord]:
        records: list[AnswerRecord] = []
        for position, question in enumerate(questions, start=1):
            logger.info(
                "question_analysis_started",
                method=self.method.value,
                question_id=question.id,
                position=position,
                total=len(questions),
            )
            try:
                draft = await self.answer(context, question)
            except ProviderError as e:
                logger.warning("question_analysis_failed", question_id=question.id, error=str(e))
                draft = AnswerDraft.not_specified(error=str(e))
            records.append(draft.to_record(question))
        return records


# =============================================================================
# Direct
# =============================================================================


class DirectAnswerer(PerQuestionAnswerer):
    """Whole document in every call; for short documents."""

    method = ProcessingMethod.DIRECT

    async def answer(self, context: AnalysisContext, question: Question) -> AnswerDraft:
        messages = [
            LLMMessage(
                role="system",
                content=prompts.with_guidance(prompts.STATUTE_ANALYST, question.scoring_guidance),
            ),
            LLMMessage(role="user", content=prompts.direct_user_prompt(context.document, question)),
        ]
        response = await self.gateway.complete(messages, max_tokens=self.config.answer_max_tokens)

        text = response.content.strip()
        if not text or is_sentinel_answer(text):
            return AnswerDraft.not_specified()

        confidence = (
            self.config.cited_confidence
            if cites_structural_reference(text)
            else self.config.direct_confidence
        )
        return AnswerDraft(answer_text=text, confidence=confidence, source_refs=_statute_refs(text))


# =============================================================================
# Conversation
# =============================================================================


def parse_conversation_reply(content: str, raw_reply: dict | None) -> AnswerDraft:
    """Turn one JSON conversation reply into a draft."""
    if raw_reply is None:
        text = content.strip()
        confidence = DEFAULT_CONVERSATION_CONFIDENCE
        reference = ""
    else:
        text = str(raw_reply.get("answer") or "").strip()
        reference = str(raw_reply.get("sourceReference") or "")
        try:
            confidence = round(float(raw_reply.get("confidence", DEFAULT_CONVERSATION_CONFIDENCE)))
        except (TypeError, ValueError):
            confidence = DEFAULT_CONVERSATION_CONFIDENCE

    if not text or is_sentinel_answer(text):
        return AnswerDraft.not_specified()

    refs = _statute_refs(f"{reference} {text}")
    if "form" in reference.lower():
        refs.append(SourceRef(type=DocumentType.FORM.value, name=reference.strip()))
    return AnswerDraft(
        answer_text=text,
        confidence=max(0, min(100, confidence)),
        source_refs=refs,
    )


class ConversationAnswerer(Answerer):
    """
    One exchange for all pending questions.

    The document is sent once; each question and its reply are appended
    to the history so later questions reuse the same context. A failed
    turn is recorded for that question and dropped from the history.
    """

    method = ProcessingMethod.CONVERSATION

    async def answer_all(
        self,
        context: AnalysisContext,
        questions: list[Question],
    ) -> list[AnswerRecord]:
        history = [
            LLMMessage(role="system", content=prompts.conversation_system_prompt(questions)),
            LLMMessage(
                role="user",
                content=prompts.conversation_opening(
                    context.jurisdiction_id,
                    context.domain_id,
                    context.document,
                    len(questions),
                    guidance=context.guidance,
                    form=context.form,
                ),
            ),
        ]
        records: list[AnswerRecord] = []

        for position, question in enumerate(questions, start=1):
            include_form = bool(context.form) and question.additional_source == DocumentType.FORM
            turn = LLMMessage(
                role="user",
                content=prompts.conversation_question(position, question, include_form),
            )
            logger.info(
                "question_analysis_started",
                method=self.method.value,
                question_id=question.id,
                position=position,
                total=len(questions),
            )

            try:
                response = await self.gateway.complete(
                    [*history, turn],
                    max_tokens=self.config.answer_max_tokens,
                    json_mode=True,
                )
            except ProviderError as e:
                logger.warning("question_analysis_failed", question_id=question.id, error=str(e))
                records.append(AnswerDraft.not_specified(error=str(e)).to_record(question))
                continue

            try:
                reply = response.parse_json()
            except ValueError:
                logger.warning("conversation_reply_not_json", question_id=question.id)
                reply = None

            history.extend([turn, LLMMessage(role="assistant", content=response.content)])
            records.append(parse_conversation_reply(response.content, reply).to_record(question))

        return records


# =============================================================================
# Retrieval
# =============================================================================


def format_matches(matches: list[SimilarityMatch]) -> str:
    blocks = []
    for position, match in enumerate(matches, start=1):
        sections = extract_section_references(match.text)
        section_info = f" ({', '.join(sections)})" if sections else ""
        chunk_index = match.metadata.get("chunkIndex", "unknown")
        blocks.append(
            f"--- STATUTE CHUNK {position} (score: {match.score:.3f}, chunk: {chunk_index}"
            f"{section_info}) ---\n{match.text}"
        )
    return "\n\n".join(blocks)


class RetrievalAnswerer(PerQuestionAnswerer):
    """
    Per-question answers from the nearest indexed chunks.

    ``answer_all`` re-indexes the statute (and guidance, when present)
    before answering.
    """

    method = ProcessingMethod.RETRIEVAL

    def __init__(
        self,
        gateway: ModelGateway,
        indexer: DocumentIndexer,
        index: SimilarityIndex,
        config: AnalysisSettings | None = None,
    ) -> None:
        super().__init__(gateway, config)
        self.indexer = indexer
        self.index = index

    async def prepare(self, context: AnalysisContext) -> None:
        await self.indexer.index(
            context.document, context.jurisdiction_id, context.domain_id, DocumentType.STATUTE
        )
        if context.guidance:
            await self.indexer.index(
                context.guidance, context.jurisdiction_id, context.domain_id, DocumentType.GUIDANCE
            )

    async def answer_all(
        self,
        context: AnalysisContext,
        questions: list[Question],
    ) -> list[AnswerRecord]:
        try:
            await self.prepare(context)
        except ProviderError as e:
            logger.error("retrieval_indexing_failed", error=str(e))
            return [AnswerDraft.not_specified(error=str(e)).to_record(q) for q in questions]
        return await super().answer_all(context, questions)

    async def answer(self, context: AnalysisContext, question: Question) -> AnswerDraft:
        query = expand_query(question.text, context.domain_id)
        embedding = await self.gateway.embed(query)
        matches = await self.index.query(
            embedding.embedding,
            top_k=self.config.retrieval_top_k,
            where={"jurisdictionId": context.jurisdiction_id, "domainId": context.domain_id},
        )
        if not matches:
            logger.info("retrieval_no_matches", question_id=question.id)
            return AnswerDraft.not_specified()

        system_prompt = prompts.with_guidance(prompts.STATUTE_ANALYST, question.scoring_guidance)
        prefix = prompts.retrieval_user_prefix(question)
        available = (
            self.config.retrieval_context_tokens
            - estimate_tokens(system_prompt)
            - estimate_tokens(prefix)
        )
        context_text = truncate_to_token_budget(format_matches(matches), max(available, 0))
        hint = prompts.kept_answers_hint(context.kept_answers)

        response = await self.gateway.complete(
            [
                LLMMessage(role="system", content=system_prompt),
                LLMMessage(role="user", content=f"{prefix}{context_text}{hint}"),
            ],
            max_tokens=self.config.answer_max_tokens,
        )

        text = response.content.strip()
        if not text or is_sentinel_answer(text):
            return AnswerDraft.not_specified()

        mean_score = sum(m.score for m in matches) / len(matches)
        refs = _statute_refs(" ".join(m.text for m in matches))
        if any(m.metadata.get("documentType") == DocumentType.GUIDANCE.value for m in matches):
            refs.append(SourceRef(type=DocumentType.GUIDANCE.value, name="Guidance"))

        return AnswerDraft(
            answer_text=text,
            confidence=max(0, min(100, round(mean_score * 100))),
            source_refs=refs,
        )


# =============================================================================
# State Code
# =============================================================================


class StateCodeAnswerer(Answerer):
    """Fixed answers for jurisdictions that defer to a state code."""

    method = ProcessingMethod.STATE_CODE

    async def answer_all(
        self,
        context: AnalysisContext,
        questions: list[Question],
    ) -> list[AnswerRecord]:
        ref = SourceRef(type="state-code", name=context.source_url or "State code")
        draft = AnswerDraft(answer_text=STATE_CODE_ANSWER, confidence=100, source_refs=[ref])
        return [
            draft.to_record(question).model_copy(update={"gap": STATE_CODE_GAP})
            for question in questions
        ]
