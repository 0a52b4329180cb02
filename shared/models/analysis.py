"""
Analysis Models
===============

Entity model for question catalogs, per-question answers and the
per-jurisdiction analysis record consumed by the presentation layer.

Records are serialized with camelCase keys. Older files written with
the legacy key names (``question``, ``answer``, ``scoreInstructions``,
``municipality``) are accepted on read.

Version: 0.1.0
"""

import math
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class DocumentType(str, Enum):
    """Kind of source document held for a jurisdiction."""

    STATUTE = "statute"
    GUIDANCE = "guidance"
    FORM = "form"


class ProcessingMethod(str, Enum):
    """How the answers in a record were produced."""

    DIRECT = "direct"
    CONVERSATION = "conversation"
    RETRIEVAL = "retrieval"
    STATE_CODE = "state-code"


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> dict[str, Any]:
        """Dump to a JSON-ready dict using the on-disk key names."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def _rename(data: dict[str, Any], legacy: str, current: str) -> None:
    if current not in data and legacy in data:
        data[current] = data.pop(legacy)


# =============================================================================
# Question Catalog
# =============================================================================


class Question(CamelModel):
    """A catalog question. Identity is ``id``."""

    model_config = ConfigDict(frozen=True)

    id: str
    text: str
    category: str = "general"
    weight: float = Field(default=1.0, ge=0)
    order: int = 0
    scoring_guidance: str | None = None
    additional_source: DocumentType | None = None

    @model_validator(mode="before")
    @classmethod
    def _accept_legacy_keys(cls, data: Any) -> Any:
        if isinstance(data, dict):
            data = dict(data)
            _rename(data, "question", "text")
            _rename(data, "scoreInstructions", "scoringGuidance")
            if data.get("weight") is None:
                data.pop("weight", None)
            source = data.get("additionalSource")
            if source is not None and source not in [t.value for t in DocumentType]:
                data.pop("additionalSource")
        return data

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_string(cls, v: Any) -> str:
        return str(v)


# =============================================================================
# Answers
# =============================================================================


class SourceRef(CamelModel):
    """Where in the source documents an answer came from."""

    type: str = DocumentType.STATUTE.value
    name: str = ""
    sections: list[str] = Field(default_factory=list)


class AnswerRecord(CamelModel):
    """One answer per question per jurisdiction/domain."""

    question_id: str
    question_text: str = ""
    answer_text: str
    confidence: int = Field(default=0, ge=0, le=100)
    source_refs: list[SourceRef] = Field(default_factory=list)
    score: float | None = Field(default=None, ge=0, le=1)
    analyzed_at: datetime | None = None
    gap: str | None = None
    error: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _accept_legacy_keys(cls, data: Any) -> Any:
        if isinstance(data, dict):
            data = dict(data)
            _rename(data, "id", "questionId")
            _rename(data, "question", "questionText")
            _rename(data, "answer", "answerText")
            _rename(data, "lastUpdated", "analyzedAt")
            if "sourceRefs" not in data and data.get("sourceReference"):
                data["sourceRefs"] = [data.pop("sourceReference")]
        return data

    @field_validator("question_id", mode="before")
    @classmethod
    def _id_as_string(cls, v: Any) -> str:
        return str(v)

    @field_validator("confidence", mode="before")
    @classmethod
    def _round_confidence(cls, v: Any) -> int:
        if v is None:
            return 0
        try:
            value = float(v)
        except TypeError as e:
            raise ValueError(f"confidence must be a number, not {type(v).__name__}") from e
        if not math.isfinite(value):
            raise ValueError("confidence must be finite")
        return max(0, min(100, round(value)))

    @field_validator("source_refs", mode="before")
    @classmethod
    def _lift_string_refs(cls, v: Any) -> Any:
        if isinstance(v, list):
            return [SourceRef(name=item) if isinstance(item, str) else item for item in v]
        return v


# =============================================================================
# Analysis Record
# =============================================================================


class AnalysisRecord(CamelModel):
    """
    Current analysis of one jurisdiction's document for one domain.

    Build instances with ``scoring.build_record`` so the aggregate fields
    always agree with ``questions``.
    """

    jurisdiction_id: str
    domain_id: str
    questions: list[AnswerRecord] = Field(default_factory=list)
    aggregate_score: float = Field(default=0.0, ge=0, le=1)
    display_score: float = Field(default=0.0, ge=0, le=10)
    average_confidence: int = 0
    questions_answered: int = 0
    total_questions: int = 0
    processing_method: str = ProcessingMethod.DIRECT.value
    last_updated: datetime = Field(default_factory=lambda: datetime.now(UTC))
    grades: dict[str, str] | None = None

    @model_validator(mode="before")
    @classmethod
    def _accept_legacy_keys(cls, data: Any) -> Any:
        if isinstance(data, dict):
            data = dict(data)
            for legacy, current in (("municipality", "jurisdictionId"), ("domain", "domainId")):
                value = data.pop(legacy, None)
                if current not in data and value is not None:
                    data[current] = value.get("id") if isinstance(value, dict) else value
            # Aggregates are recomputed on every write; stale ones are dropped.
            for key, ceiling in (("aggregateScore", 1), ("displayScore", 10)):
                score = data.get(key)
                if isinstance(score, int | float) and not 0 <= score <= ceiling:
                    data.pop(key)
        return data


# =============================================================================
# Retrieval Chunks
# =============================================================================


class DocumentChunk(CamelModel):
    """An embedded slice of a source document."""

    jurisdiction_id: str
    domain_id: str
    document_type: DocumentType
    chunk_index: int
    text: str
    embedding: list[float] = Field(default_factory=list)

    @property
    def vector_id(self) -> str:
        return chunk_vector_id(
            self.jurisdiction_id, self.domain_id, self.document_type, self.chunk_index
        )

    def metadata(self) -> dict[str, Any]:
        return {
            "jurisdictionId": self.jurisdiction_id,
            "domainId": self.domain_id,
            "documentType": self.document_type.value,
            "chunkIndex": self.chunk_index,
            "content": self.text,
        }


def chunk_vector_id(
    jurisdiction_id: str,
    domain_id: str,
    document_type: DocumentType,
    chunk_index: int,
) -> str:
    """Similarity-index key for a chunk."""
    return f"{jurisdiction_id}-{domain_id}-{document_type.value}-chunk-{chunk_index}"
