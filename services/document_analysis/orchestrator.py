"""
Analysis Orchestrator
=====================

Drives domains and jurisdictions through the pipeline:

    load -> validate -> skip-recent -> freshness -> plan -> answer
         -> score -> gaps -> archive -> persist

Jurisdictions are processed strictly one at a time. A pause follows a
jurisdiction only when it made model calls.

Also hosts the maintenance passes that reuse the same loop: rescoring,
answer re-ordering and grade import.

Version: 0.1.0
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import Any

from services.document_analysis.answerers import AnalysisContext, StateCodeAnswerer
from services.document_analysis.exceptions import (
    CatalogError,
    DocumentNotFoundError,
    InputError,
    InvalidDocumentError,
    ProviderError,
)
from services.document_analysis.gaps import GapAnalyzer
from services.document_analysis.gateway import ModelGateway
from services.document_analysis.indexer import DocumentIndexer
from services.document_analysis.patterns import (
    extract_grade,
    has_binary_content,
    is_html_content,
    uses_state_code,
)
from services.document_analysis.planner import ResetReason, freshness_reset_reason, plan
from services.document_analysis.scoring import (
    KeywordScoringPolicy,
    ScoringPolicy,
    apply_scores,
    build_record,
)
from services.document_analysis.similarity import SimilarityIndex
from services.document_analysis.storage import DocumentStore, QuestionCatalogStore
from services.document_analysis.strategy import StrategySelector
from services.document_analysis.versioning import VersionManager
from shared.config import AnalysisSettings, settings
from shared.logging import bind_context, clear_context, get_logger
from shared.models import AnalysisRecord, AnswerRecord, DocumentType, ProcessingMethod, Question


logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class OutcomeStatus(str, Enum):
    """What happened to one jurisdiction."""

    ANALYZED = "analyzed"
    REINDEXED = "reindexed"
    PRUNED = "pruned"
    RESCORED = "rescored"
    UPDATED = "updated"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class AnalysisOptions:
    """Run options, mostly straight from the command line."""

    domain: str | None = None
    jurisdiction: str | None = None
    force: bool = False
    reindex: bool = False
    question_id: str | None = None
    skip_recent: timedelta | None = None
    color_grades: bool = False

    def __post_init__(self) -> None:
        if self.question_id is not None and not (self.domain and self.jurisdiction):
            raise ValueError("question_id requires both domain and jurisdiction")


@dataclass
class JurisdictionOutcome:
    """Result of processing one jurisdiction."""

    domain_id: str
    jurisdiction_id: str
    status: OutcomeStatus
    reason: str | None = None
    method: str | None = None
    questions_analyzed: int = 0
    model_calls: int = 0
    tokens: int = 0
    archive: Path | None = None


@dataclass
class RunSummary:
    """All outcomes of one run."""

    outcomes: list[JurisdictionOutcome] = field(default_factory=list)

    def count(self, status: OutcomeStatus) -> int:
        return sum(1 for o in self.outcomes if o.status == status)

    @property
    def model_calls(self) -> int:
        return sum(o.model_calls for o in self.outcomes)

    @property
    def tokens(self) -> int:
        return sum(o.tokens for o in self.outcomes)

    def as_dict(self) -> dict[str, Any]:
        return {
            **{status.value: self.count(status) for status in OutcomeStatus},
            "model_calls": self.model_calls,
            "tokens": self.tokens,
        }


def validate_document_text(text: str, max_chars: int) -> None:
    """
    Reject text that is not a usable plain-text document.

    Raises:
        InvalidDocumentError: Empty, oversized, HTML or binary content.
    """
    if not text.strip():
        raise InvalidDocumentError("document is empty")
    if len(text) > max_chars:
        raise InvalidDocumentError(f"document has {len(text)} characters (limit {max_chars})")
    if is_html_content(text):
        raise InvalidDocumentError("document is HTML, not extracted text")
    if has_binary_content(text):
        raise InvalidDocumentError("document contains binary or control characters")


def _catalog_answers(
    catalog: list[Question], answers: list[AnswerRecord]
) -> list[AnswerRecord]:
    """Stored answers whose question is still in the catalog, edited or not."""
    catalog_ids = {q.id for q in catalog}
    return [a for a in answers if a.question_id in catalog_ids]


Handler = Callable[[str, str, list[Question], AnalysisOptions], Awaitable[JurisdictionOutcome]]


class AnalysisOrchestrator:
    """
    Runs analysis and maintenance passes over the document store.

    Args:
        store: Source documents and analysis records
        catalogs: Question catalogs
        gateway: Rate-budgeted model access
        index: Similarity index for retrieval mode
        scoring_policy: Per-question scoring (default keyword heuristic)
        versions: Record archiver
        config: Analysis thresholds (default from settings)
        sleep: Awaitable sleep used for inter-jurisdiction pacing
        now: Wall-clock source for skip-recent checks and timestamps
    """

    def __init__(
        self,
        store: DocumentStore,
        catalogs: QuestionCatalogStore,
        gateway: ModelGateway,
        index: SimilarityIndex,
        scoring_policy: ScoringPolicy | None = None,
        versions: VersionManager | None = None,
        config: AnalysisSettings | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.catalogs = catalogs
        self.gateway = gateway
        self.config = config or settings.analysis
        self.scoring_policy = scoring_policy or KeywordScoringPolicy()
        self.versions = versions or VersionManager()
        self.indexer = DocumentIndexer(gateway, index)
        self.selector = StrategySelector(gateway, self.indexer, index, self.config)
        self.state_code = StateCodeAnswerer(gateway, self.config)
        self.gaps = GapAnalyzer(gateway, self.config.near_perfect_score, self.config.gap_max_tokens)
        self._sleep = sleep
        self._now = now

    # =========================================================================
    # Run Loop
    # =========================================================================

    async def run(self, options: AnalysisOptions) -> RunSummary:
        """Analyze every selected jurisdiction."""
        return await self._run_each(options, self._analyze)

    async def rescore(self, options: AnalysisOptions) -> RunSummary:
        """Recompute scores and gaps of stored records without re-answering."""
        return await self._run_each(options, self._rescore)

    async def fix_order(self, options: AnalysisOptions) -> RunSummary:
        """Re-order stored answers by catalog order and drop orphaned answers."""
        return await self._run_each(options, self._fix_order)

    async def set_grades(self, options: AnalysisOptions) -> RunSummary:
        """Copy reviewer grades from jurisdiction metadata into stored records."""
        return await self._run_each(options, self._set_grades)

    def _work_list(
        self, options: AnalysisOptions, summary: RunSummary
    ) -> list[tuple[str, list[Question], str]]:
        domains = [options.domain] if options.domain else self.store.list_domains()
        work: list[tuple[str, list[Question], str]] = []

        for domain_id in domains:
            try:
                catalog = self.catalogs.load(domain_id)
            except CatalogError as e:
                logger.error("domain_skipped", domain=domain_id, reason=str(e))
                summary.outcomes.append(
                    JurisdictionOutcome(domain_id, "*", OutcomeStatus.SKIPPED, reason=str(e))
                )
                continue

            jurisdictions = (
                [options.jurisdiction]
                if options.jurisdiction
                else self.store.list_jurisdictions(domain_id)
            )
            logger.info(
                "domain_started",
                domain=domain_id,
                questions=len(catalog),
                jurisdictions=len(jurisdictions),
            )
            work.extend((domain_id, catalog, jurisdiction_id) for jurisdiction_id in jurisdictions)

        return work

    async def _run_each(self, options: AnalysisOptions, handler: Handler) -> RunSummary:
        summary = RunSummary()
        work = self._work_list(options, summary)

        for position, (domain_id, catalog, jurisdiction_id) in enumerate(work, start=1):
            outcome = await self._guarded(handler, domain_id, jurisdiction_id, catalog, options)
            summary.outcomes.append(outcome)

            if outcome.model_calls > 0 and position < len(work):
                await self._sleep(self.config.jurisdiction_pause_seconds)

        logger.info("run_completed", **summary.as_dict())
        return summary

    async def _guarded(
        self,
        handler: Handler,
        domain_id: str,
        jurisdiction_id: str,
        catalog: list[Question],
        options: AnalysisOptions,
    ) -> JurisdictionOutcome:
        bind_context(domain=domain_id, jurisdiction=jurisdiction_id)
        calls_before = self.gateway.stats.calls
        tokens_before = self.gateway.stats.tokens

        try:
            outcome = await handler(domain_id, jurisdiction_id, catalog, options)
        except InputError as e:
            logger.warning("jurisdiction_skipped", reason=str(e))
            outcome = JurisdictionOutcome(
                domain_id, jurisdiction_id, OutcomeStatus.SKIPPED, reason=str(e)
            )
        except OSError as e:
            logger.error(
                "jurisdiction_storage_failed",
                path=getattr(e, "filename", None),
                error=str(e),
                exc_info=True,
            )
            outcome = JurisdictionOutcome(
                domain_id, jurisdiction_id, OutcomeStatus.FAILED, reason=str(e)
            )
        except Exception as e:
            logger.error("jurisdiction_failed", error=str(e), exc_info=True)
            outcome = JurisdictionOutcome(
                domain_id, jurisdiction_id, OutcomeStatus.FAILED, reason=f"unexpected error: {e}"
            )
        finally:
            clear_context()

        outcome.model_calls = self.gateway.stats.calls - calls_before
        outcome.tokens = self.gateway.stats.tokens - tokens_before
        logger.info(
            "jurisdiction_completed",
            domain=domain_id,
            jurisdiction=jurisdiction_id,
            status=outcome.status.value,
            reason=outcome.reason,
            model_calls=outcome.model_calls,
            tokens=outcome.tokens,
        )
        return outcome

    # =========================================================================
    # Analysis
    # =========================================================================

    async def _analyze(
        self,
        domain_id: str,
        jurisdiction_id: str,
        catalog: list[Question],
        options: AnalysisOptions,
    ) -> JurisdictionOutcome:
        statute = self.store.load_document(domain_id, jurisdiction_id, DocumentType.STATUTE)
        if statute is None:
            raise DocumentNotFoundError("no statute document")
        validate_document_text(statute.text, self.config.max_document_chars)

        metadata = self.store.load_metadata(domain_id, jurisdiction_id)
        stored = self.store.load_record(domain_id, jurisdiction_id)
        now = self._now()

        def outcome(status: OutcomeStatus, **kwargs: Any) -> JurisdictionOutcome:
            return JurisdictionOutcome(domain_id, jurisdiction_id, status, **kwargs)

        if (
            options.skip_recent is not None
            and not options.force
            and stored.record is not None
            and stored.modified_at is not None
            and now - stored.modified_at < options.skip_recent
        ):
            logger.info("record_recent", age_seconds=(now - stored.modified_at).total_seconds())
            return outcome(OutcomeStatus.SKIPPED, reason="analyzed recently")

        state_code = uses_state_code(metadata, self.config.state_code_markers)
        reset = freshness_reset_reason(
            stored.record,
            stored.corrupt,
            stored.modified_at,
            statute.modified_at,
        )
        was_state_code = (
            stored.record is not None
            and stored.record.processing_method == ProcessingMethod.STATE_CODE.value
        )
        if reset is None and was_state_code != state_code:
            reset = ResetReason.STATE_CODE_CHANGED

        existing = stored.record.questions if stored.record is not None else []
        if reset is not None and options.question_id is not None and existing:
            # Other answers are never touched by a targeted run.
            logger.info("record_reset_ignored", reason=reset.value)
        elif reset is not None:
            logger.info("record_reset", reason=reset.value)
            existing = []

        work = plan(catalog, existing, force=options.force, target_question_id=options.question_id)
        logger.info("analysis_planned", **work.summary())

        if work.is_idle:
            if options.reindex and not state_code:
                await self._reindex(domain_id, jurisdiction_id, statute.text)
            if not work.changes_record:
                if options.reindex and not state_code:
                    return outcome(OutcomeStatus.REINDEXED)
                return outcome(OutcomeStatus.SKIPPED, reason="up to date")

            answers = list(work.to_keep)
            method: str = stored.record.processing_method  # type: ignore[union-attr]
            status = OutcomeStatus.PRUNED
        else:
            guidance = self.store.load_document(domain_id, jurisdiction_id, DocumentType.GUIDANCE)
            form = self.store.load_document(domain_id, jurisdiction_id, DocumentType.FORM)
            context = AnalysisContext(
                jurisdiction_id=jurisdiction_id,
                domain_id=domain_id,
                document=statute.text,
                guidance=guidance.text if guidance else None,
                form=form.text if form else None,
                kept_answers=work.to_keep,
                source_url=metadata.get("sourceUrl"),
            )

            if state_code:
                logger.info("state_code_detected", source_url=context.source_url)
                new_answers = await self.state_code.answer_all(context, work.to_analyze)
                method = ProcessingMethod.STATE_CODE.value
            else:
                used, new_answers = await self.selector.analyze(context, work.to_analyze)
                method = used.value
                if options.reindex and used != ProcessingMethod.RETRIEVAL:
                    await self._reindex(domain_id, jurisdiction_id, statute.text)

            answers = [*work.to_keep, *new_answers]
            status = OutcomeStatus.ANALYZED

        record = await self._finalize(
            domain_id, jurisdiction_id, answers, catalog, method, stored.record, metadata, options
        )
        archive = self._persist(domain_id, jurisdiction_id, record)

        return outcome(
            status,
            method=method,
            questions_analyzed=len(work.to_analyze),
            archive=archive,
        )

    async def _reindex(self, domain_id: str, jurisdiction_id: str, statute_text: str) -> None:
        try:
            await self.indexer.index(statute_text, jurisdiction_id, domain_id, DocumentType.STATUTE)
            guidance = self.store.load_document(domain_id, jurisdiction_id, DocumentType.GUIDANCE)
            if guidance is not None:
                await self.indexer.index(
                    guidance.text, jurisdiction_id, domain_id, DocumentType.GUIDANCE
                )
        except ProviderError as e:
            # The previous vectors are left in place.
            logger.error("reindex_failed", error=str(e))

    async def _finalize(
        self,
        domain_id: str,
        jurisdiction_id: str,
        answers: list[AnswerRecord],
        catalog: list[Question],
        method: str,
        previous: AnalysisRecord | None,
        metadata: dict[str, Any],
        options: AnalysisOptions,
        rescore: bool = False,
    ) -> AnalysisRecord:
        scored = apply_scores(answers, catalog, self.scoring_policy, rescore=rescore)
        reconciled = await self.gaps.reconcile(scored, catalog, domain_id)

        grades = dict(previous.grades or {}) if previous is not None else {}
        grade = extract_grade(metadata, color_grades=options.color_grades)
        if grade:
            grades[self.config.grade_key] = grade

        return build_record(
            jurisdiction_id,
            domain_id,
            reconciled,
            catalog,
            method,
            grades=grades,
            now=self._now(),
        )

    def _persist(self, domain_id: str, jurisdiction_id: str, record: AnalysisRecord) -> Path | None:
        archive = self.versions.snapshot(self.store.record_path(domain_id, jurisdiction_id))
        self.store.save_record(domain_id, jurisdiction_id, record)
        logger.info(
            "record_persisted",
            aggregate_score=record.aggregate_score,
            questions_answered=record.questions_answered,
            total_questions=record.total_questions,
            archived=archive.name if archive else None,
        )
        return archive

    # =========================================================================
    # Maintenance Passes
    # =========================================================================

    def _require_record(self, domain_id: str, jurisdiction_id: str) -> AnalysisRecord:
        stored = self.store.load_record(domain_id, jurisdiction_id)
        if stored.record is None:
            reason = "stored record is unreadable" if stored.corrupt else "no stored record"
            raise InputError(reason)
        return stored.record

    async def _rescore(
        self,
        domain_id: str,
        jurisdiction_id: str,
        catalog: list[Question],
        options: AnalysisOptions,
    ) -> JurisdictionOutcome:
        record = self._require_record(domain_id, jurisdiction_id)
        metadata = self.store.load_metadata(domain_id, jurisdiction_id)

        rebuilt = await self._finalize(
            domain_id,
            jurisdiction_id,
            _catalog_answers(catalog, record.questions),
            catalog,
            record.processing_method,
            record,
            metadata,
            options,
            rescore=True,
        )
        archive = self._persist(domain_id, jurisdiction_id, rebuilt)
        logger.info(
            "record_rescored",
            previous_score=record.aggregate_score,
            aggregate_score=rebuilt.aggregate_score,
        )
        return JurisdictionOutcome(
            domain_id,
            jurisdiction_id,
            OutcomeStatus.RESCORED,
            method=rebuilt.processing_method,
            archive=archive,
        )

    async def _fix_order(
        self,
        domain_id: str,
        jurisdiction_id: str,
        catalog: list[Question],
        options: AnalysisOptions,
    ) -> JurisdictionOutcome:
        record = self._require_record(domain_id, jurisdiction_id)
        catalog_order = [q.id for q in catalog]
        stored_order = [a.question_id for a in record.questions]
        if [qid for qid in catalog_order if qid in stored_order] == stored_order:
            return JurisdictionOutcome(
                domain_id, jurisdiction_id, OutcomeStatus.SKIPPED, reason="already ordered"
            )

        metadata = self.store.load_metadata(domain_id, jurisdiction_id)
        rebuilt = await self._finalize(
            domain_id,
            jurisdiction_id,
            _catalog_answers(catalog, record.questions),
            catalog,
            record.processing_method,
            record,
            metadata,
            options,
        )
        archive = self._persist(domain_id, jurisdiction_id, rebuilt)
        return JurisdictionOutcome(
            domain_id, jurisdiction_id, OutcomeStatus.UPDATED, reason="reordered", archive=archive
        )

    async def _set_grades(
        self,
        domain_id: str,
        jurisdiction_id: str,
        catalog: list[Question],
        options: AnalysisOptions,
    ) -> JurisdictionOutcome:
        record = self._require_record(domain_id, jurisdiction_id)
        metadata = self.store.load_metadata(domain_id, jurisdiction_id)

        grade = extract_grade(metadata, color_grades=options.color_grades)
        if grade is None:
            return JurisdictionOutcome(
                domain_id, jurisdiction_id, OutcomeStatus.SKIPPED, reason="no grade in metadata"
            )
        if (record.grades or {}).get(self.config.grade_key) == grade:
            return JurisdictionOutcome(
                domain_id, jurisdiction_id, OutcomeStatus.SKIPPED, reason="grade unchanged"
            )

        grades = {**(record.grades or {}), self.config.grade_key: grade}
        archive = self._persist(
            domain_id, jurisdiction_id, record.model_copy(update={"grades": grades})
        )
        logger.info("grade_set", grade=grade)
        return JurisdictionOutcome(
            domain_id, jurisdiction_id, OutcomeStatus.UPDATED, reason="grade set", archive=archive
        )
