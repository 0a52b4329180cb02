"""
Document Indexer
================

Chunks a source document, embeds each chunk and replaces the
jurisdiction's previous vectors in the similarity index.

Version: 0.1.0
"""

from dataclasses import dataclass, field

from services.document_analysis.chunking import DocumentChunker
from services.document_analysis.gateway import ModelGateway
from services.document_analysis.similarity import SimilarityIndex, VectorRecord
from services.document_analysis.tokens import estimate_chunk_tokens
from shared.config import EmbeddingSettings, settings
from shared.logging import get_logger
from shared.models import DocumentChunk, DocumentType


logger = get_logger(__name__)

TRUNCATION_MARKER = "\n\n[Content truncated to fit embedding model limit]"


@dataclass
class IndexReport:
    """Outcome of one ``index`` call."""

    document_type: DocumentType
    indexed: int = 0
    truncated: int = 0
    skipped: list[int] = field(default_factory=list)
    replaced: int = 0


class DocumentIndexer:
    """
    Embeds documents into the similarity index.

    Re-indexing a (jurisdiction, domain, document type) first deletes its
    existing vectors, so a shorter document never leaves stale tail chunks.
    """

    def __init__(
        self,
        gateway: ModelGateway,
        index: SimilarityIndex,
        chunker: DocumentChunker | None = None,
        config: EmbeddingSettings | None = None,
    ) -> None:
        self.gateway = gateway
        self.similarity = index
        self.chunker = chunker or DocumentChunker()
        self.config = config or settings.embeddings

    def prepare(self, text: str) -> str | None:
        """
        Fit chunk text to the embedding model.

        Returns:
            The text (truncated with a marker when over the soft limit),
            or ``None`` when it is over the hard limit and must be skipped.
        """
        tokens = estimate_chunk_tokens(text)
        if tokens > self.config.hard_token_limit:
            return None
        if tokens > self.config.soft_token_limit:
            return text[: self.config.soft_token_limit * 3] + TRUNCATION_MARKER
        return text

    async def index(
        self,
        document_text: str,
        jurisdiction_id: str,
        domain_id: str,
        document_type: DocumentType = DocumentType.STATUTE,
    ) -> IndexReport:
        """
        Index one document.

        Args:
            document_text: Full document text
            jurisdiction_id: Jurisdiction the document belongs to
            domain_id: Domain the document belongs to
            document_type: Statute or guidance

        Returns:
            IndexReport with counts of indexed, truncated and skipped chunks

        Raises:
            ProviderError: If an embedding call fails. Nothing is replaced
                in the index in that case.
        """
        report = IndexReport(document_type=document_type)
        vectors: list[VectorRecord] = []

        for chunk in self.chunker.chunk(document_text):
            text = self.prepare(chunk.content)
            if text is None:
                logger.warning(
                    "chunk_skipped_over_limit",
                    jurisdiction=jurisdiction_id,
                    domain=domain_id,
                    chunk_index=chunk.index,
                    estimated_tokens=chunk.estimated_tokens,
                    limit=self.config.hard_token_limit,
                )
                report.skipped.append(chunk.index)
                continue
            if text is not chunk.content:
                report.truncated += 1
                logger.info(
                    "chunk_truncated",
                    jurisdiction=jurisdiction_id,
                    chunk_index=chunk.index,
                    estimated_tokens=chunk.estimated_tokens,
                )

            embedding = await self.gateway.embed(text)
            doc_chunk = DocumentChunk(
                jurisdiction_id=jurisdiction_id,
                domain_id=domain_id,
                document_type=document_type,
                chunk_index=chunk.index,
                text=text,
                embedding=embedding.embedding,
            )
            vectors.append(
                VectorRecord(
                    id=doc_chunk.vector_id,
                    values=doc_chunk.embedding,
                    metadata=doc_chunk.metadata(),
                )
            )

        report.replaced = await self.similarity.delete(
            {
                "jurisdictionId": jurisdiction_id,
                "domainId": domain_id,
                "documentType": document_type.value,
            }
        )
        if vectors:
            await self.similarity.upsert(vectors)
        report.indexed = len(vectors)

        logger.info(
            "document_indexed",
            jurisdiction=jurisdiction_id,
            domain=domain_id,
            document_type=document_type.value,
            indexed=report.indexed,
            truncated=report.truncated,
            skipped=len(report.skipped),
            replaced=report.replaced,
        )
        return report
