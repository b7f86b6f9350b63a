"""
Batch exporter.

Writes one HTML object per page under the job's input prefix, then the job
metadata record under the output prefix. The metadata record is only written
once every page object has been stored, so a record always describes a
complete input set.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field

from polyglot_engine.errors import ExportError
from polyglot_engine.models import FetchedNode, JobMetadataRecord, root_key
from polyglot_engine.services.base import ObjectStore
from polyglot_engine.tree.flatten import flatten_tree, iter_nodes

logger = logging.getLogger(__name__)

HTML_CONTENT_TYPE = "text/html"
JSON_CONTENT_TYPE = "application/json"


def content_key(root: str, lib: str, page_id: str) -> str:
    """Storage key of a page's HTML under a job's input prefix."""
    return f"{root}/{root_key(lib, page_id)}.html"


def metadata_key(root: str) -> str:
    """Storage key of a job's metadata record under its output prefix."""
    return f"{root}/{root}.metadata.json"


@dataclass
class ExportResult:
    """What an export wrote."""

    root_key: str
    content_keys: list[str] = field(default_factory=list)
    metadata_key: str = ""
    page_count: int = 0


class BatchExporter:
    """Stores a transformed tree and its metadata record."""

    def __init__(
        self,
        object_store: ObjectStore,
        input_bucket: str,
        output_bucket: str,
        max_concurrent: int = 8,
    ):
        """
        Initialize exporter.

        Args:
            object_store: Object storage backend.
            input_bucket: Bucket the translation job reads from.
            output_bucket: Bucket the translation job writes to.
            max_concurrent: Maximum number of uploads in flight.
        """
        self._store = object_store
        self._input_bucket = input_bucket
        self._output_bucket = output_bucket
        self._max_concurrent = max_concurrent

    async def export(
        self,
        root: FetchedNode,
        target_lib: str,
        target_path: str,
        notify_addrs: list[str] | None = None,
    ) -> ExportResult:
        """
        Export a transformed tree.

        Args:
            root: Root of the transformed tree.
            target_lib: Destination library, stored for the write stage.
            target_path: Destination path, stored for the write stage.
            notify_addrs: Addresses to notify on completion.

        Returns:
            ExportResult describing the stored objects.

        Raises:
            ExportError: If any page object or the metadata record cannot be written.
        """
        key = root_key(root.lib, root.id)
        nodes = iter_nodes(root)
        logger.info("Exporting %d pages of %s", len(nodes), key)

        semaphore = asyncio.Semaphore(self._max_concurrent)

        async def upload(node: FetchedNode) -> str:
            object_key = content_key(key, node.lib, node.id)
            async with semaphore:
                await self._store.put_object(
                    self._input_bucket, object_key, node.contents, HTML_CONTENT_TYPE
                )
            return object_key

        results = await asyncio.gather(*(upload(node) for node in nodes), return_exceptions=True)
        failures = [r for r in results if isinstance(r, BaseException)]
        if failures:
            for failure in failures:
                logger.error("Page upload for %s failed: %s", key, failure)
            raise ExportError(f"{len(failures)} of {len(nodes)} page uploads failed for {key}")

        record = JobMetadataRecord(
            lib=root.lib,
            id=root.id,
            all_pages=flatten_tree(root),
            target_lib=target_lib,
            target_path=target_path,
            notify_addrs=list(notify_addrs or []),
        )
        meta_key = metadata_key(key)
        try:
            await self._store.put_object(
                self._output_bucket,
                meta_key,
                json.dumps(record.to_dict()),
                JSON_CONTENT_TYPE,
            )
        except Exception as e:
            raise ExportError(f"Could not store metadata record for {key}: {e}") from e

        logger.info("Exported %s: %d pages, metadata at %s", key, record.page_count, meta_key)
        return ExportResult(
            root_key=key,
            content_keys=[r for r in results if isinstance(r, str)],
            metadata_key=meta_key,
            page_count=record.page_count,
        )
