"""
Document and Catalog Stores
===========================

Read access to source documents, jurisdiction metadata and question
catalogs; read/write access to analysis records.

``FileDocumentStore`` layout::

    {data_dir}/{domain}/questions.json
    {data_dir}/{domain}/{jurisdiction}/statute.txt   (or policy.txt)
    {data_dir}/{domain}/{jurisdiction}/guidance.txt
    {data_dir}/{domain}/{jurisdiction}/form.txt
    {data_dir}/{domain}/{jurisdiction}/metadata.json
    {data_dir}/{domain}/{jurisdiction}/analysis.json

Version: 0.1.0
"""

import json
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from services.document_analysis.exceptions import CatalogError, InvalidDocumentError
from shared.config import StorageSettings, settings
from shared.logging import get_logger
from shared.models import AnalysisRecord, DocumentType, Question


logger = get_logger(__name__)

RECORD_FILENAME = "analysis.json"
METADATA_FILENAME = "metadata.json"
CATALOG_FILENAME = "questions.json"


def file_modified_at(path: Path) -> datetime:
    return datetime.fromtimestamp(path.stat().st_mtime, UTC)


@dataclass
class SourceDocument:
    """A source document's text and when it last changed."""

    text: str
    modified_at: datetime
    document_type: DocumentType
    path: Path | None = None


@dataclass
class StoredRecord:
    """The current analysis record as found on disk."""

    record: AnalysisRecord | None = None
    modified_at: datetime | None = None
    corrupt: bool = False

    @property
    def exists(self) -> bool:
        return self.record is not None or self.corrupt


class DocumentStore(ABC):
    """Source documents in, analysis records out."""

    @abstractmethod
    def list_domains(self) -> list[str]: ...

    @abstractmethod
    def list_jurisdictions(self, domain_id: str) -> list[str]: ...

    @abstractmethod
    def load_document(
        self,
        domain_id: str,
        jurisdiction_id: str,
        document_type: DocumentType,
    ) -> SourceDocument | None:
        """Return the document, or ``None`` when it does not exist."""
        ...

    @abstractmethod
    def load_metadata(self, domain_id: str, jurisdiction_id: str) -> dict[str, Any]: ...

    @abstractmethod
    def load_record(self, domain_id: str, jurisdiction_id: str) -> StoredRecord: ...

    @abstractmethod
    def save_record(self, domain_id: str, jurisdiction_id: str, record: AnalysisRecord) -> Path:
        """Replace the current record. Raises OSError on storage failure."""
        ...

    @abstractmethod
    def record_path(self, domain_id: str, jurisdiction_id: str) -> Path: ...


class QuestionCatalogStore(ABC):
    """Read-only question catalogs, one per domain."""

    @abstractmethod
    def load(self, domain_id: str) -> list[Question]:
        """
        Load a domain's questions in catalog order.

        Raises:
            CatalogError: If the catalog is missing or malformed.
        """
        ...


class FileDocumentStore(DocumentStore):
    """Flat-file store rooted at a data directory."""

    DOCUMENT_FILENAMES = {
        DocumentType.GUIDANCE: "guidance.txt",
        DocumentType.FORM: "form.txt",
    }

    def __init__(self, data_dir: Path | None = None, config: StorageSettings | None = None) -> None:
        self.config = config or settings.storage
        self.data_dir = Path(data_dir or self.config.data_dir)

    def _jurisdiction_dir(self, domain_id: str, jurisdiction_id: str) -> Path:
        return self.data_dir / domain_id / jurisdiction_id

    def list_domains(self) -> list[str]:
        if not self.data_dir.is_dir():
            return []
        return sorted(
            entry.name
            for entry in self.data_dir.iterdir()
            if entry.is_dir() and (entry / CATALOG_FILENAME).is_file()
        )

    def list_jurisdictions(self, domain_id: str) -> list[str]:
        domain_dir = self.data_dir / domain_id
        if not domain_dir.is_dir():
            return []
        return sorted(
            entry.name
            for entry in domain_dir.iterdir()
            if entry.is_dir() and not entry.name.startswith((".", "_"))
        )

    def _document_path(self, directory: Path, document_type: DocumentType) -> Path | None:
        if document_type == DocumentType.STATUTE:
            for name in self.config.statute_filenames:
                if (directory / name).is_file():
                    return directory / name
            return None
        path = directory / self.DOCUMENT_FILENAMES[document_type]
        return path if path.is_file() else None

    def load_document(
        self,
        domain_id: str,
        jurisdiction_id: str,
        document_type: DocumentType,
    ) -> SourceDocument | None:
        directory = self._jurisdiction_dir(domain_id, jurisdiction_id)
        path = self._document_path(directory, document_type)
        if path is None:
            return None
        try:
            text = path.read_text(encoding="utf-8")
        except UnicodeDecodeError as e:
            raise InvalidDocumentError(f"{path.name} is not UTF-8 text: {e}") from e
        return SourceDocument(
            text=text,
            modified_at=file_modified_at(path),
            document_type=document_type,
            path=path,
        )

    def load_metadata(self, domain_id: str, jurisdiction_id: str) -> dict[str, Any]:
        path = self._jurisdiction_dir(domain_id, jurisdiction_id) / METADATA_FILENAME
        if not path.is_file():
            return {}
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning("metadata_unreadable", path=str(path), error=str(e))
            return {}
        return data if isinstance(data, dict) else {}

    def record_path(self, domain_id: str, jurisdiction_id: str) -> Path:
        return self._jurisdiction_dir(domain_id, jurisdiction_id) / RECORD_FILENAME

    def load_record(self, domain_id: str, jurisdiction_id: str) -> StoredRecord:
        path = self.record_path(domain_id, jurisdiction_id)
        if not path.is_file():
            return StoredRecord()

        modified_at = file_modified_at(path)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            record = AnalysisRecord.model_validate(
                {"jurisdictionId": jurisdiction_id, "domainId": domain_id, **data}
                if isinstance(data, dict)
                else data
            )
        except (json.JSONDecodeError, UnicodeDecodeError, ValidationError, TypeError) as e:
            logger.warning("record_unreadable", path=str(path), error=str(e)[:200])
            return StoredRecord(modified_at=modified_at, corrupt=True)

        return StoredRecord(record=record, modified_at=modified_at)

    def save_record(self, domain_id: str, jurisdiction_id: str, record: AnalysisRecord) -> Path:
        path = self.record_path(domain_id, jurisdiction_id)
        path.parent.mkdir(parents=True, exist_ok=True)

        payload = json.dumps(record.to_json_dict(), indent=2, ensure_ascii=False)
        tmp_path = path.with_name(f".{path.name}.tmp")
        tmp_path.write_text(payload + "\n", encoding="utf-8")
        os.replace(tmp_path, path)

        logger.info("record_saved", path=str(path), questions=len(record.questions))
        return path


class FileQuestionCatalog(QuestionCatalogStore):
    """Catalogs read from ``{data_dir}/{domain}/questions.json``."""

    def __init__(self, data_dir: Path | None = None) -> None:
        self.data_dir = Path(data_dir or settings.storage.data_dir)

    def load(self, domain_id: str) -> list[Question]:
        path = self.data_dir / domain_id / CATALOG_FILENAME
        if not path.is_file():
            raise CatalogError(f"No question catalog for domain {domain_id!r}")

        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise CatalogError(f"Question catalog {path} is not valid JSON: {e}") from e

        items = data.get("questions") if isinstance(data, dict) else data
        if not isinstance(items, list):
            raise CatalogError(f"Question catalog {path} has no question list")

        questions: list[Question] = []
        try:
            for position, item in enumerate(items):
                if isinstance(item, dict) and "order" not in item:
                    item = {**item, "order": position}
                questions.append(Question.model_validate(item))
        except (ValidationError, TypeError) as e:
            raise CatalogError(f"Question catalog {path} is malformed: {e}") from e

        ids = [q.id for q in questions]
        if len(ids) != len(set(ids)):
            raise CatalogError(f"Question catalog {path} has duplicate ids")

        return sorted(questions, key=lambda q: q.order)
