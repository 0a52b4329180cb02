"""
Similarity Index
================

Nearest-neighbour lookup over chunk embeddings with metadata filters.

``InMemorySimilarityIndex`` keeps vectors in process and can persist
them to a JSON file so a later run can answer retrieval questions
without re-indexing.

Version: 0.1.0
"""

import json
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import numpy as np

from shared.logging import get_logger


logger = get_logger(__name__)

MetadataFilter = dict[str, Any]


@dataclass
class VectorRecord:
    """A stored vector and its metadata."""

    id: str
    values: list[float]
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class SimilarityMatch:
    """A query hit."""

    id: str
    score: float
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def text(self) -> str:
        return str(self.metadata.get("content", ""))


def _matches(metadata: dict[str, Any], where: MetadataFilter | None) -> bool:
    if not where:
        return True
    return all(metadata.get(key) == value for key, value in where.items())


class SimilarityIndex(ABC):
    """Upsert-by-key vector store with filtered nearest-neighbour queries."""

    @abstractmethod
    async def upsert(self, vectors: list[VectorRecord]) -> None:
        """Insert or replace vectors by id (last write wins)."""
        ...

    @abstractmethod
    async def delete(self, where: MetadataFilter) -> int:
        """Delete every vector whose metadata matches ``where``. Returns the count."""
        ...

    @abstractmethod
    async def query(
        self,
        vector: list[float],
        top_k: int,
        where: MetadataFilter | None = None,
    ) -> list[SimilarityMatch]:
        """Return up to ``top_k`` matches, best first."""
        ...


class InMemorySimilarityIndex(SimilarityIndex):
    """
    Cosine-similarity index held in memory.

    Args:
        path: Optional JSON file to load from and save to after each write
    """

    def __init__(self, path: Path | None = None) -> None:
        self._path = path
        self._records: dict[str, VectorRecord] = {}

        if path is not None and path.exists():
            self._load(path)

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, vector_id: object) -> bool:
        return vector_id in self._records

    async def upsert(self, vectors: list[VectorRecord]) -> None:
        for record in vectors:
            self._records[record.id] = record
        self._save()

    async def delete(self, where: MetadataFilter) -> int:
        doomed = [rid for rid, rec in self._records.items() if _matches(rec.metadata, where)]
        for rid in doomed:
            del self._records[rid]
        if doomed:
            self._save()
        return len(doomed)

    async def query(
        self,
        vector: list[float],
        top_k: int,
        where: MetadataFilter | None = None,
    ) -> list[SimilarityMatch]:
        candidates = [rec for rec in self._records.values() if _matches(rec.metadata, where)]
        if not candidates or top_k <= 0:
            return []

        matrix = np.asarray([rec.values for rec in candidates], dtype=float)
        query = np.asarray(vector, dtype=float)

        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
        with np.errstate(divide="ignore", invalid="ignore"):
            scores = np.where(norms > 0, matrix @ query / norms, 0.0)

        order = np.argsort(-scores)[:top_k]
        return [
            SimilarityMatch(
                id=candidates[i].id,
                score=float(scores[i]),
                metadata=dict(candidates[i].metadata),
            )
            for i in order
        ]

    def _load(self, path: Path) -> None:
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("similarity_index_unreadable", path=str(path), error=str(e))
            return
        for item in payload.get("vectors", []):
            record = VectorRecord(id=item["id"], values=item["values"], metadata=item["metadata"])
            self._records[record.id] = record
        logger.info("similarity_index_loaded", path=str(path), vectors=len(self._records))

    def _save(self) -> None:
        if self._path is None:
            return
        payload = {
            "vectors": [
                {"id": rec.id, "values": rec.values, "metadata": rec.metadata}
                for rec in self._records.values()
            ]
        }
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(payload), encoding="utf-8")
        os.replace(tmp_path, self._path)
