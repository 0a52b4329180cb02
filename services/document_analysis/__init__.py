"""
Document Analysis Service
=========================

Answers a domain's question catalog against each jurisdiction's statute,
scores the answers into a weighted aggregate and records gap commentary.

Features:
- Strategy selection by document size (direct, conversation, retrieval)
- Incremental re-analysis of changed or targeted questions only
- Per-model token budgets over a sliding window
- Chunking and embedding with token-limit handling
- Timestamped archives before every record overwrite
"""

from services.document_analysis.orchestrator import (
    AnalysisOptions,
    AnalysisOrchestrator,
    JurisdictionOutcome,
    OutcomeStatus,
    RunSummary,
)


__version__ = "0.1.0"

__all__ = [
    "AnalysisOptions",
    "AnalysisOrchestrator",
    "JurisdictionOutcome",
    "OutcomeStatus",
    "RunSummary",
]
