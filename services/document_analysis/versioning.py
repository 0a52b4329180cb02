"""
Version Manager
===============

Archives the current analysis record before it is overwritten. The
archive name is stamped with the record's own modification time, so
the same record always archives under the same name.

Version: 0.1.0
"""

import shutil
from datetime import UTC, datetime
from pathlib import Path

from shared.logging import get_logger


logger = get_logger(__name__)

STAMP_FORMAT = "%Y-%m-%dT%H-%M-%S"


class VersionManager:
    """Copies records to ``{stem}-backup-{mtime}{suffix}`` beside the original."""

    def archive_name(self, record_path: Path, modified_at: datetime, attempt: int = 0) -> Path:
        stamp = modified_at.astimezone(UTC).strftime(STAMP_FORMAT)
        suffix = f"-{attempt}" if attempt else ""
        return record_path.with_name(
            f"{record_path.stem}-backup-{stamp}{suffix}{record_path.suffix}"
        )

    def snapshot(self, record_path: Path) -> Path | None:
        """
        Archive ``record_path`` if it exists.

        Returns:
            The archive path, or ``None`` when there was nothing to archive.

        Raises:
            OSError: If the copy fails.
        """
        if not record_path.is_file():
            return None

        modified_at = datetime.fromtimestamp(record_path.stat().st_mtime, UTC)
        attempt = 0
        archive = self.archive_name(record_path, modified_at)
        while archive.exists():
            attempt += 1
            archive = self.archive_name(record_path, modified_at, attempt)

        shutil.copy2(record_path, archive)
        logger.info("record_archived", record=str(record_path), archive=archive.name)
        return archive

    def list_archives(self, record_path: Path) -> list[Path]:
        """Archives of ``record_path``, oldest stamp first."""
        pattern = f"{record_path.stem}-backup-*{record_path.suffix}"
        return sorted(record_path.parent.glob(pattern))
