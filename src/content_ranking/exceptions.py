"""Exceptions raised by the content ranking engine."""


class ContentRankingError(Exception):
    """Base class for all content ranking errors."""


class DocumentNotFoundError(ContentRankingError, KeyError):
    """Raised when a document identifier is not present in the corpus."""

    def __init__(self, doc_id: str):
        super().__init__(doc_id)
        self.doc_id = doc_id

    def __str__(self) -> str:
        return f"No document with id {self.doc_id!r}"


class DuplicateDocumentError(ContentRankingError, ValueError):
    """Raised when two documents share an identifier."""


class InvalidConfigurationError(ContentRankingError, ValueError):
    """Raised for malformed configuration or request arguments (e.g. negative k)."""


class RecordFormatError(ContentRankingError, ValueError):
    """Raised when a record file cannot be interpreted at all."""
