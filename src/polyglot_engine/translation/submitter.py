"""
Translation job submission.

Submits one batch translation job over a job's input prefix. The job is named
after the root key so it can be correlated with its stored input and metadata.
"""

from __future__ import annotations

import logging
import re

from polyglot_engine.errors import SubmissionError, ValidationError
from polyglot_engine.services.base import BatchJobRequest, SubmittedJob, TranslationService

logger = logging.getLogger(__name__)

LANGUAGE_CODE_PATTERN = re.compile(r"^[a-z]{2,3}(-[A-Za-z]{2,4})?$", re.IGNORECASE)


def validate_language_code(language: str) -> str:
    """
    Check a target language code, e.g. "es", "fr-CA" or "zh-TW".

    Raises:
        ValidationError: If the code is malformed.
    """
    if not isinstance(language, str) or not LANGUAGE_CODE_PATTERN.match(language.strip()):
        raise ValidationError(
            f"Invalid target language code: {language!r}",
            errors=["Invalid language code"],
        )
    return language.strip()


class TranslationSubmitter:
    """Starts batch translation jobs for exported texts."""

    def __init__(
        self,
        translation: TranslationService,
        input_bucket: str,
        output_bucket: str,
        source_language: str = "en",
        content_type: str = "text/html",
    ):
        self._translation = translation
        self._input_bucket = input_bucket
        self._output_bucket = output_bucket
        self._source_language = source_language
        self._content_type = content_type

    def build_request(self, root_key: str, target_language: str) -> BatchJobRequest:
        """Build the job request for an exported text."""
        return BatchJobRequest(
            job_name=root_key,
            input_uri=f"s3://{self._input_bucket}/{root_key}/",
            output_uri=f"s3://{self._output_bucket}/{root_key}/",
            source_language=self._source_language,
            target_language=target_language,
            content_type=self._content_type,
        )

    async def submit(self, root_key: str, target_language: str) -> SubmittedJob:
        """
        Submit a translation job.

        Args:
            root_key: `<lib>-<id>` key of the exported text.
            target_language: Language to translate into.

        Returns:
            The submitted job.

        Raises:
            ValidationError: If the language code is malformed.
            SubmissionError: If the service rejects the job.
        """
        language = validate_language_code(target_language)
        request = self.build_request(root_key, language)
        logger.info(
            "Submitting translation job %s (%s -> %s)", root_key, request.source_language, language
        )
        try:
            job = await self._translation.start_batch_job(request)
        except Exception as e:
            raise SubmissionError(f"Could not start translation job {root_key}: {e}") from e
        if not job.job_id:
            raise SubmissionError(f"Translation job {root_key} was not assigned an identifier")
        logger.info(
            "Started translation job %s for %s (status %s)", job.job_id, root_key, job.status
        )
        return job
