"""
Shared Models
=============

Pydantic models shared across services.

Models:
- Question catalog (Question)
- Answers (AnswerRecord, SourceRef)
- Analysis records (AnalysisRecord, ProcessingMethod)
- Retrieval chunks (DocumentChunk, DocumentType)
"""

from shared.models.analysis import (
    AnalysisRecord,
    AnswerRecord,
    DocumentChunk,
    DocumentType,
    ProcessingMethod,
    Question,
    SourceRef,
    chunk_vector_id,
)


__all__ = [
    "AnalysisRecord",
    "AnswerRecord",
    "DocumentChunk",
    "DocumentType",
    "ProcessingMethod",
    "Question",
    "SourceRef",
    "chunk_vector_id",
]
