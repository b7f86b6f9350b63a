"""
Job correlation.

Links a completed translation job back to the text it translated, using only
the job identifier: the job's own output manifest names the input prefix, the
input prefix encodes the root key, and the root key locates the metadata
record written at export time.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

from polyglot_engine.errors import CorrelationError, ObjectNotFoundError
from polyglot_engine.export.exporter import metadata_key
from polyglot_engine.models import (
    JobMetadataRecord,
    TranslatedFileDetail,
    TranslationJobDetails,
    decode_root_key,
)
from polyglot_engine.services.base import ObjectStore, TranslationService, split_s3_uri

logger = logging.getLogger(__name__)

MANIFEST_SUFFIX = ".auxiliary-translation-details.json"


@dataclass
class CorrelatedJob:
    """A completed job with its manifest details and stored metadata."""

    job_id: str
    details: TranslationJobDetails
    metadata: JobMetadataRecord


def manifest_uri(output_uri: str, target_language: str) -> str:
    """Location of the job manifest under a job's output URI."""
    base = output_uri if output_uri.endswith("/") else f"{output_uri}/"
    return f"{base}details/{target_language}{MANIFEST_SUFFIX}"


def root_key_from_prefix(input_prefix: str) -> str:
    """Take the root key from an `s3://bucket/<rootKey>/` input prefix."""
    components = input_prefix.replace("s3://", "", 1).split("/")
    if len(components) < 2 or not components[1]:
        raise ValueError(f"No root key in input prefix {input_prefix!r}")
    return components[1]


def _as_count(value: Any, name: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Manifest field {name} is not a count: {value!r}") from e


def parse_manifest(data: Any) -> TranslationJobDetails:
    """
    Parse a job manifest.

    Raises:
        ValueError: If the manifest is malformed.
        CorrelationError: If the input prefix does not encode a valid root key.
    """
    if not isinstance(data, dict):
        raise ValueError("Manifest is not an object")
    details = data.get("details")
    if not isinstance(details, list):
        raise ValueError("Manifest has no list of files")
    input_prefix = data.get("inputDataPrefix")
    output_prefix = data.get("outputDataPrefix")
    if not isinstance(input_prefix, str) or not isinstance(output_prefix, str):
        raise ValueError("Manifest has no input or output prefix")

    lib, page_id = decode_root_key(root_key_from_prefix(input_prefix))

    files = []
    for entry in details:
        if not isinstance(entry, dict) or not entry.get("targetFile"):
            continue
        chars = entry.get("charactersTranslated")
        files.append(
            TranslatedFileDetail(
                source_file=entry.get("sourceFile", ""),
                target_file=entry["targetFile"],
                characters_translated=int(chars) if chars is not None else None,
            )
        )

    chars_total = data.get("charactersTranslated")
    return TranslationJobDetails(
        lib=lib,
        id=page_id,
        source_language=data.get("sourceLanguageCode", ""),
        target_language=data.get("targetLanguageCode", ""),
        input_prefix=input_prefix,
        output_prefix=output_prefix,
        client_errors=_as_count(
            data.get("documentCountWithCustomerError"), "documentCountWithCustomerError"
        ),
        server_errors=_as_count(
            data.get("documentCountWithServerError"), "documentCountWithServerError"
        ),
        characters_translated=int(chars_total) if chars_total is not None else None,
        files=files,
    )


class JobCorrelator:
    """Resolves a job identifier to its manifest and metadata record."""

    def __init__(
        self,
        translation: TranslationService,
        object_store: ObjectStore,
        output_bucket: str,
    ):
        """
        Initialize correlator.

        Args:
            translation: Translation service that ran the job.
            object_store: Storage holding manifests and metadata records.
            output_bucket: Bucket metadata records are stored in.
        """
        self._translation = translation
        self._store = object_store
        self._output_bucket = output_bucket

    async def correlate(self, job_id: str) -> CorrelatedJob:
        """
        Correlate a completed job.

        Raises:
            CorrelationError: If any step fails; carries the job id.
        """
        if not isinstance(job_id, str) or not job_id.strip():
            raise CorrelationError("Job identifier not found or invalid", job_id=job_id)
        logger.info("Correlating translation job %s", job_id)

        try:
            location = await self._translation.describe_job(job_id)
        except Exception as e:
            raise CorrelationError(f"Could not describe job {job_id}: {e}", job_id=job_id) from e
        if not location.target_languages:
            raise CorrelationError(f"Job {job_id} has no target language", job_id=job_id)

        manifest_location = manifest_uri(location.output_uri, location.target_languages[0])
        try:
            bucket, key = split_s3_uri(manifest_location)
            manifest = json.loads(await self._store.get_object(bucket, key))
            details = parse_manifest(manifest)
        except CorrelationError as e:
            raise CorrelationError(str(e), job_id=job_id) from e
        except (ValueError, ObjectNotFoundError) as e:
            raise CorrelationError(
                f"Could not read manifest {manifest_location}: {e}", job_id=job_id
            ) from e

        logger.info(
            "Job %s translated %s-%s into %s (%d files, %d client errors, %d server errors)",
            job_id,
            details.lib,
            details.id,
            details.target_language,
            len(details.files),
            details.client_errors,
            details.server_errors,
        )

        meta_key = metadata_key(details.root_key)
        try:
            raw = await self._store.get_object(self._output_bucket, meta_key)
            metadata = JobMetadataRecord.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError, ObjectNotFoundError) as e:
            raise CorrelationError(
                f"Could not read metadata record {meta_key}: {e}", job_id=job_id
            ) from e

        return CorrelatedJob(job_id=job_id, details=details, metadata=metadata)
