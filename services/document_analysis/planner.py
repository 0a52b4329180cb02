"""
Change-Detection Planner
========================

Decides which questions need (re-)analysis for one jurisdiction.

Two levels:
- ``freshness_reset_reason`` looks at the stored record as a whole and
  says when it must be discarded (empty, corrupt, stale, outdated).
- ``plan`` diffs the catalog against the stored answers question by
  question.

Both are pure functions over their inputs.

Version: 0.1.0
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from shared.logging import get_logger
from shared.models import AnalysisRecord, AnswerRecord, Question


logger = get_logger(__name__)


class PlanReason(str, Enum):
    """Why a question was scheduled for analysis."""

    NEW = "new"
    TEXT_CHANGED = "text_changed"
    TARGETED = "targeted"
    FORCED = "forced"


class ResetReason(str, Enum):
    """Why a stored record is treated as absent."""

    NO_RECORD = "no_record"
    CORRUPT = "corrupt"
    EMPTY = "empty"
    DOCUMENT_NEWER = "document_newer"
    STATE_CODE_CHANGED = "state_code_changed"


@dataclass
class AnalysisPlan:
    """Partition of the catalog against the stored answers."""

    to_analyze: list[Question] = field(default_factory=list)
    to_keep: list[AnswerRecord] = field(default_factory=list)
    to_remove: list[AnswerRecord] = field(default_factory=list)
    reasons: dict[str, PlanReason] = field(default_factory=dict)

    @property
    def is_idle(self) -> bool:
        """True when no question needs a model call."""
        return not self.to_analyze

    @property
    def changes_record(self) -> bool:
        return bool(self.to_analyze or self.to_remove)

    def summary(self) -> dict[str, int]:
        return {
            "to_analyze": len(self.to_analyze),
            "to_keep": len(self.to_keep),
            "to_remove": len(self.to_remove),
        }


def _same_text(a: str, b: str) -> bool:
    return " ".join(a.split()) == " ".join(b.split())


def plan(
    catalog: list[Question],
    existing: list[AnswerRecord],
    force: bool = False,
    target_question_id: str | None = None,
) -> AnalysisPlan:
    """
    Partition catalog questions into analyze / keep / remove.

    Args:
        catalog: Current questions for the domain
        existing: Answers from the stored record (empty to start fresh)
        force: Re-analyze every question (ignored for non-target
            questions when a target is set)
        target_question_id: Only this question may be re-analyzed

    Returns:
        AnalysisPlan. Stored answers whose question left the catalog are
        always in ``to_remove``.
    """
    answers = {answer.question_id: answer for answer in existing}
    catalog_ids = {question.id for question in catalog}
    result = AnalysisPlan()

    for question in catalog:
        answer = answers.get(question.id)

        if target_question_id is not None and question.id != target_question_id:
            if answer is not None:
                result.to_keep.append(answer)
            continue

        reason: PlanReason | None = None
        if answer is None:
            reason = PlanReason.NEW
        elif target_question_id is not None:
            reason = PlanReason.TARGETED
        elif not _same_text(answer.question_text, question.text):
            reason = PlanReason.TEXT_CHANGED
        elif force:
            reason = PlanReason.FORCED

        if reason is None:
            result.to_keep.append(answer)  # type: ignore[arg-type]
        else:
            result.to_analyze.append(question)
            result.reasons[question.id] = reason

    result.to_remove = [a for a in existing if a.question_id not in catalog_ids]

    if result.to_remove:
        logger.info(
            "orphaned_answers_pruned",
            question_ids=[a.question_id for a in result.to_remove],
        )
    if target_question_id is not None and target_question_id not in catalog_ids:
        logger.warning("target_question_not_in_catalog", question_id=target_question_id)

    return result


def freshness_reset_reason(
    record: AnalysisRecord | None,
    record_corrupt: bool,
    record_modified: datetime | None,
    document_modified: datetime | None,
) -> ResetReason | None:
    """
    Decide whether the stored record must be treated as absent.

    Args:
        record: Parsed stored record, if any
        record_corrupt: The record file exists but could not be parsed
        record_modified: Modification time of the record file
        document_modified: Modification time of the source document

    Returns:
        The reason to start from empty, or ``None`` to diff per question.
    """
    if record_corrupt:
        return ResetReason.CORRUPT
    if record is None:
        return ResetReason.NO_RECORD
    if not record.questions:
        return ResetReason.EMPTY
    if record_modified is not None and document_modified is not None:
        if document_modified > record_modified:
            return ResetReason.DOCUMENT_NEWER
    return None
