"""
Error taxonomy for the document lifecycle.

Every failure surfaced to callers derives from DocumentError. Each class
carries the HTTP status code the API layer answers with, so the FastAPI
exception handler never needs a lookup table of its own.
"""

from __future__ import annotations


class DocumentError(Exception):
    """Base class for all document lifecycle failures."""

    status_code = 500

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class ValidationError(DocumentError):
    """Caller supplied bad or incomplete input."""

    status_code = 400


class MissingInput(ValidationError):
    """A required payload (e.g. the uploaded file) was not supplied."""


class UnsupportedMediaType(DocumentError):
    status_code = 415


class DocumentNotFound(DocumentError):
    status_code = 404


class InvalidState(DocumentError):
    """The operation is not allowed from the document's current state."""

    status_code = 409


class BackendError(DocumentError):
    """
    The external signing service failed.

    Attributes:
        transient: True for timeouts, transport faults and 5xx/429 answers,
            False for logical failures (4xx, malformed payloads).
    """

    status_code = 502

    def __init__(self, detail: str, *, transient: bool = False) -> None:
        super().__init__(detail)
        self.transient = transient


class NotReady(DocumentError):
    """The remote artifact is not complete yet."""

    status_code = 409


class NotAvailable(DocumentError):
    """The signed artifact has not been retrieved; re-check the status to retry."""

    status_code = 409


class AnnotationError(DocumentError):
    status_code = 422


class InvalidFieldPage(AnnotationError):
    """A field references a page that does not exist in the target PDF."""


class StorageError(DocumentError):
    """The blob store failed."""

    status_code = 500


class BlobNotFound(StorageError):
    status_code = 404
