"""
External service layer.

Abstract interfaces for storage, batch translation, secrets, email and
queueing, with AWS implementations built by create_services().
"""

from polyglot_engine.services.base import (
    BatchJobRequest,
    EmailSender,
    JobOutputLocation,
    ObjectStore,
    SecretStore,
    Services,
    SubmittedJob,
    TranslationService,
    WorkQueue,
    split_s3_uri,
)
from polyglot_engine.services.factory import create_secret_store, create_services

__all__ = [
    "BatchJobRequest",
    "EmailSender",
    "JobOutputLocation",
    "ObjectStore",
    "SecretStore",
    "Services",
    "SubmittedJob",
    "TranslationService",
    "WorkQueue",
    "create_secret_store",
    "create_services",
    "split_s3_uri",
]
