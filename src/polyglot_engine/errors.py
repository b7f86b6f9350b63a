"""
Exception hierarchy for polyglot-engine.

Branch-local failures (one page, one subtree, one best-effort call) are logged
and swallowed where they occur. The errors below that reach a pipeline stage
boundary halt that stage.
"""

from __future__ import annotations


class PolyglotError(Exception):
    """Base class for all engine errors."""


class ValidationError(PolyglotError):
    """Request fields are missing or malformed."""

    def __init__(self, message: str, errors: list[str] | None = None):
        super().__init__(message)
        self.errors = errors or []


class AuthRetrievalError(PolyglotError):
    """Library key/secret could not be retrieved or used to sign a request."""


class LibraryAPIError(PolyglotError):
    """A content-platform API call failed or returned an unusable payload."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class DiscoveryError(PolyglotError):
    """A page or subtree could not be discovered, or the root is not a cover."""


class PageCycleError(DiscoveryError):
    """The same page identity was reached twice while walking the hierarchy."""


class TransformError(PolyglotError):
    """Content retrieval or rewriting failed for a single page."""


class ExportError(PolyglotError):
    """One or more objects could not be written to storage."""


class SubmissionError(PolyglotError):
    """The batch translation job could not be submitted."""


class ObjectNotFoundError(PolyglotError):
    """A requested storage object does not exist."""


class CorrelationError(PolyglotError):
    """A completed job could not be linked back to its stored metadata."""

    def __init__(self, message: str, job_id: str | None = None):
        super().__init__(message)
        self.job_id = job_id


class ReconstructionError(PolyglotError):
    """The translated hierarchy could not be rebuilt."""


class WriteError(PolyglotError):
    """A page could not be created on the destination library."""
