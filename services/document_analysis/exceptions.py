"""
Analysis Errors
===============

Input errors skip a jurisdiction; provider errors are recorded per
question. Neither aborts a run.

Version: 0.1.0
"""


class AnalysisError(Exception):
    """Base class for analysis engine errors."""


class InputError(AnalysisError):
    """A source document, catalog or record could not be used."""


class DocumentNotFoundError(InputError):
    """The primary source document for a jurisdiction is missing."""


class InvalidDocumentError(InputError):
    """The source document is present but is not usable plain text."""


class CatalogError(InputError):
    """The domain's question catalog is missing or malformed."""


class ProviderError(AnalysisError):
    """A completion or embedding call failed after retries."""

    def __init__(self, message: str, model: str | None = None) -> None:
        super().__init__(message)
        self.model = model
