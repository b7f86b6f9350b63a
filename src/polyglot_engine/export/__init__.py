"""
Export module for polyglot-engine.

Stores transformed pages and the job metadata record for batch translation.
"""

from polyglot_engine.export.exporter import BatchExporter, ExportResult, content_key, metadata_key

__all__ = ["BatchExporter", "ExportResult", "content_key", "metadata_key"]
