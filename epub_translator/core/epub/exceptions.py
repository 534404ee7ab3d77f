"""
Custom exceptions for the EPUB translation pipeline.

Structural failures here abort a single document; they never abort the run.
"""

from typing import Optional


class EpubTranslationError(Exception):
    """Base exception for all EPUB translation errors."""
    pass


class DocumentError(EpubTranslationError):
    """Unrecoverable structural failure on one markup document.

    Attributes:
        document: Archive path of the document, when known
        original_error: The underlying parser/serializer error
        content_preview: First 200 chars of problematic content
    """
    def __init__(
        self,
        message: str,
        document: Optional[str] = None,
        original_error: Exception = None,
        content_preview: str = None
    ):
        super().__init__(message)
        self.document = document
        self.original_error = original_error
        self.content_preview = content_preview


class ExtractionError(DocumentError):
    """Raised when a document cannot be parsed into a traversable tree."""
    pass


class SerializationError(DocumentError):
    """Raised when a rewritten document cannot be serialized back to markup."""
    pass


class ArchiveError(EpubTranslationError):
    """Raised when the input archive cannot be read or the output cannot be written."""
    pass
