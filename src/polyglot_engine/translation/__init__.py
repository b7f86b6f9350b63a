"""
Batch translation for polyglot-engine.

Provides:
- Submission of batch translation jobs over an exported text
- Correlation of completed jobs with their stored metadata
"""

from polyglot_engine.translation.correlator import (
    CorrelatedJob,
    JobCorrelator,
    manifest_uri,
    parse_manifest,
)
from polyglot_engine.translation.submitter import TranslationSubmitter, validate_language_code

__all__ = [
    "CorrelatedJob",
    "JobCorrelator",
    "manifest_uri",
    "parse_manifest",
    "TranslationSubmitter",
    "validate_language_code",
]
