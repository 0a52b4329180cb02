"""
Strategy Selector
=================

Chooses how a document is analyzed, by size:

1. Fewer words than the short-document threshold: direct
2. Under the conversation size limit with several pending questions:
   conversation
3. Otherwise: retrieval

Version: 0.1.0
"""

from services.document_analysis.answerers import (
    AnalysisContext,
    Answerer,
    ConversationAnswerer,
    DirectAnswerer,
    RetrievalAnswerer,
)
from services.document_analysis.gateway import ModelGateway
from services.document_analysis.indexer import DocumentIndexer
from services.document_analysis.similarity import SimilarityIndex
from shared.config import AnalysisSettings, settings
from shared.logging import get_logger
from shared.models import AnswerRecord, ProcessingMethod, Question


logger = get_logger(__name__)


def select_strategy(
    document: str,
    pending_questions: int,
    config: AnalysisSettings | None = None,
) -> ProcessingMethod:
    """
    Pick the analysis strategy for a document.

    Args:
        document: Full document text
        pending_questions: Number of questions to analyze
        config: Thresholds (default from settings)
    """
    config = config or settings.analysis

    if len(document.split()) < config.short_document_words:
        return ProcessingMethod.DIRECT
    if len(document) < config.conversation_char_limit and pending_questions > 1:
        return ProcessingMethod.CONVERSATION
    return ProcessingMethod.RETRIEVAL


class StrategySelector:
    """Selects a strategy and runs the matching answerer."""

    def __init__(
        self,
        gateway: ModelGateway,
        indexer: DocumentIndexer,
        index: SimilarityIndex,
        config: AnalysisSettings | None = None,
    ) -> None:
        self.config = config or settings.analysis
        self._answerers: dict[ProcessingMethod, Answerer] = {
            ProcessingMethod.DIRECT: DirectAnswerer(gateway, self.config),
            ProcessingMethod.CONVERSATION: ConversationAnswerer(gateway, self.config),
            ProcessingMethod.RETRIEVAL: RetrievalAnswerer(gateway, indexer, index, self.config),
        }

    def answerer_for(self, method: ProcessingMethod) -> Answerer:
        return self._answerers[method]

    async def analyze(
        self,
        context: AnalysisContext,
        questions: list[Question],
    ) -> tuple[ProcessingMethod, list[AnswerRecord]]:
        """
        Answer ``questions`` against ``context``.

        Returns:
            The strategy used and one answer per question
        """
        method = select_strategy(context.document, len(questions), self.config)
        logger.info(
            "strategy_selected",
            method=method.value,
            words=context.word_count,
            chars=len(context.document),
            questions=len(questions),
        )
        answers = await self.answerer_for(method).answer_all(context, questions)
        return method, answers
