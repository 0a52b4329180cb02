"""
Document Chunking Module
========================

Splits statutes into bounded chunks for embedding. Boundaries are
chosen from the coarsest break that works: paragraphs, then section
headings, then lines, then sentences, then whitespace. No chunk ever
exceeds the configured character ceiling.

Version: 0.1.0
"""

import re
from dataclasses import dataclass

from services.document_analysis.tokens import estimate_chunk_tokens
from shared.config import settings
from shared.logging import get_logger


logger = get_logger(__name__)


@dataclass
class Chunk:
    """A slice of a document ready for embedding."""

    content: str
    index: int
    estimated_tokens: int = 0

    def __post_init__(self) -> None:
        if not self.estimated_tokens:
            self.estimated_tokens = estimate_chunk_tokens(self.content)

    @property
    def char_count(self) -> int:
        return len(self.content)


class DocumentChunker:
    """
    Recursive, boundary-aware chunker.

    Args:
        max_chunk_size: Hard ceiling in characters
        min_chunk_size: Chunks shorter than this are merged into a neighbour
            when the result still fits
    """

    # Coarsest first; each level has the joiner used when packing its parts.
    SEPARATORS: list[tuple[re.Pattern[str], str]] = [
        (re.compile(r"\n\s*\n"), "\n\n"),
        (
            re.compile(
                r"\n(?=\s*(?:§\s*\d|Section\s+\d|Article\s+[IVXLCDM\d]+\b|Chapter\s+\d))",
                re.IGNORECASE,
            ),
            "\n",
        ),
        (re.compile(r"\n"), "\n"),
        (re.compile(r"(?<=[.!?;])\s+"), " "),
        (re.compile(r"\s+"), " "),
    ]

    def __init__(
        self,
        max_chunk_size: int | None = None,
        min_chunk_size: int | None = None,
    ) -> None:
        self.max_chunk_size = max_chunk_size or settings.analysis.chunk_char_limit
        self.min_chunk_size = (
            min_chunk_size if min_chunk_size is not None else settings.analysis.min_chunk_chars
        )
        if self.max_chunk_size <= 0:
            raise ValueError("max_chunk_size must be positive")

    def chunk(self, text: str) -> list[Chunk]:
        """
        Chunk ``text``.

        Returns:
            Chunks in document order, indexed from 0
        """
        if not text.strip():
            return []

        pieces = self._merge_small(self._split(text, 0))
        chunks = [Chunk(content=piece, index=i) for i, piece in enumerate(pieces)]

        logger.debug(
            "document_chunked",
            chars=len(text),
            chunks=len(chunks),
            max_chunk_size=self.max_chunk_size,
        )
        return chunks

    def _split(self, text: str, level: int) -> list[str]:
        text = text.strip()
        if not text:
            return []
        if len(text) <= self.max_chunk_size:
            return [text]
        if level >= len(self.SEPARATORS):
            size = self.max_chunk_size
            return [text[i : i + size] for i in range(0, len(text), size)]

        pattern, joiner = self.SEPARATORS[level]
        parts = [part for part in pattern.split(text) if part.strip()]
        if len(parts) <= 1:
            return self._split(text, level + 1)

        packed: list[str] = []
        current = ""
        for part in parts:
            for piece in self._split(part, level + 1):
                candidate = f"{current}{joiner}{piece}" if current else piece
                if len(candidate) <= self.max_chunk_size:
                    current = candidate
                else:
                    packed.append(current)
                    current = piece
        if current:
            packed.append(current)
        return packed

    def _merge_small(self, pieces: list[str]) -> list[str]:
        merged: list[str] = []
        for piece in pieces:
            if (
                merged
                and (len(piece) < self.min_chunk_size or len(merged[-1]) < self.min_chunk_size)
                and len(merged[-1]) + 2 + len(piece) <= self.max_chunk_size
            ):
                merged[-1] = f"{merged[-1]}\n\n{piece}"
            else:
                merged.append(piece)
        return merged
