"""
Base classes for external services.

Defines the abstract interfaces the pipeline uses for object storage, batch
translation, secrets, email and queueing. Only their I/O contracts matter to
the document-tree pipeline.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from polyglot_engine.auth import LibraryCredentials


@dataclass
class BatchJobRequest:
    """Parameters of a batch translation job."""

    job_name: str
    input_uri: str
    output_uri: str
    source_language: str
    target_language: str
    content_type: str = "text/html"


@dataclass
class SubmittedJob:
    """Response to a batch job submission."""

    job_id: str
    status: str = ""


@dataclass
class JobOutputLocation:
    """Where a finished job wrote its output."""

    job_id: str
    output_uri: str
    target_languages: list[str] = field(default_factory=list)
    job_name: str = ""


def split_s3_uri(uri: str) -> tuple[str, str]:
    """
    Split an `s3://bucket/key` URI into bucket and key.

    Raises:
        ValueError: If the URI has no bucket.
    """
    if not uri.startswith("s3://"):
        raise ValueError(f"Not an S3 URI: {uri!r}")
    bucket, _, key = uri[len("s3://") :].partition("/")
    if not bucket:
        raise ValueError(f"S3 URI has no bucket: {uri!r}")
    return bucket, key


class ObjectStore(ABC):
    """Key/value object storage."""

    @abstractmethod
    async def put_object(
        self,
        bucket: str,
        key: str,
        body: str | bytes,
        content_type: str = "application/octet-stream",
    ) -> None:
        """Write an object, replacing any existing one."""
        ...

    @abstractmethod
    async def get_object(self, bucket: str, key: str) -> str:
        """
        Read an object as UTF-8 text.

        Raises:
            ObjectNotFoundError: If the object does not exist.
        """
        ...


class TranslationService(ABC):
    """Asynchronous batch machine-translation service."""

    @abstractmethod
    async def start_batch_job(self, request: BatchJobRequest) -> SubmittedJob:
        """Submit a batch job over an input prefix."""
        ...

    @abstractmethod
    async def describe_job(self, job_id: str) -> JobOutputLocation:
        """Look up the output location of a job."""
        ...


class SecretStore(ABC):
    """Store holding per-library key/secret pairs."""

    @abstractmethod
    async def get_library_credentials(self, lib: str) -> LibraryCredentials:
        """
        Get the key/secret pair for a library.

        Raises:
            AuthRetrievalError: If the pair is missing or unreadable.
        """
        ...


class EmailSender(ABC):
    """Outbound email."""

    @abstractmethod
    async def send_html(self, to: list[str], subject: str, html: str) -> None:
        """Send one HTML message to all recipients."""
        ...


class WorkQueue(ABC):
    """Durable queue of translation requests."""

    @abstractmethod
    async def send_message(self, body: str) -> None:
        """Enqueue a message."""
        ...

    @abstractmethod
    async def delete_message(self, receipt_handle: str) -> None:
        """Remove a received message from the queue."""
        ...


@dataclass
class Services:
    """The external services one invocation works with."""

    object_store: ObjectStore
    translation: TranslationService
    secrets: SecretStore
    email: EmailSender | None = None
    queue: WorkQueue | None = None
