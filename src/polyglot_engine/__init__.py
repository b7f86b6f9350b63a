"""
polyglot-engine: machine translation of hierarchical library texts.

This package provides tools for:
- Discovering a text (a cover page and its subpages) on a source library
- Shielding template tokens and math notation from translation
- Exporting pages for batch translation and submitting the job
- Rebuilding the translated hierarchy and writing it to a target library
"""

__version__ = "0.1.0"

from polyglot_engine.config import Settings, load_config
from polyglot_engine.errors import (
    CorrelationError,
    DiscoveryError,
    ExportError,
    PolyglotError,
    ReconstructionError,
    SubmissionError,
    ValidationError,
    WriteError,
)
from polyglot_engine.handlers import (
    enqueue_request,
    handle_job_event,
    handle_queue_event,
    validate_request_params,
)
from polyglot_engine.models import (
    DiscoveredNode,
    FetchedNode,
    FlatMeta,
    JobMetadataRecord,
    MergedNode,
    TranslationRequest,
)
from polyglot_engine.pipeline import (
    ProcessTranslatedPipeline,
    StageResult,
    StartTranslationPipeline,
)

__all__ = [
    # Config
    "Settings",
    "load_config",
    # Errors
    "PolyglotError",
    "ValidationError",
    "DiscoveryError",
    "ExportError",
    "SubmissionError",
    "CorrelationError",
    "ReconstructionError",
    "WriteError",
    # Models
    "DiscoveredNode",
    "FetchedNode",
    "FlatMeta",
    "MergedNode",
    "JobMetadataRecord",
    "TranslationRequest",
    # Pipelines
    "StartTranslationPipeline",
    "ProcessTranslatedPipeline",
    "StageResult",
    # Entry points
    "validate_request_params",
    "enqueue_request",
    "handle_queue_event",
    "handle_job_event",
]
