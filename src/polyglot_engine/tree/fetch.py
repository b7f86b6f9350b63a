"""
Content fetching.

Retrieves each page's HTML body and properties. A page whose body or
properties cannot be retrieved keeps what was retrieved; its siblings are not
affected.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from polyglot_engine.config import PlatformConfig
from polyglot_engine.errors import LibraryAPIError, TransformError
from polyglot_engine.library.client import LibraryClient, LibraryClientPool
from polyglot_engine.models import DiscoveredNode, FetchedNode, PageProp

logger = logging.getLogger(__name__)

OVERVIEW_PROPERTY = "mindtouch.page#overview"
EDIT_TRACKING_MARKER = "editedby"


def process_properties(entries: list[dict[str, Any]]) -> tuple[str | None, list[PageProp]]:
    """
    Turn raw property entries into (summary, props).

    Entries without a name or value are skipped, edit-tracking properties are
    dropped and the page overview property becomes the summary.
    """
    summary: str | None = None
    props: list[PageProp] = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        name = entry.get("@name")
        contents = entry.get("contents")
        value = contents.get("#text") if isinstance(contents, dict) else None
        if not isinstance(name, str) or not name.strip():
            continue
        if not isinstance(value, str) or not value.strip():
            continue
        if EDIT_TRACKING_MARKER in name:
            continue
        if name == OVERVIEW_PROPERTY and summary is None:
            summary = value
            continue
        props.append(PageProp(name=name, value=value))
    return summary, props


class ContentFetcher:
    """Populates contents, summary and properties for a discovered tree."""

    def __init__(self, clients: LibraryClientPool, platform: PlatformConfig):
        """
        Initialize fetcher.

        Args:
            clients: Library client pool for the source library.
            platform: Platform configuration (concurrency cap).
        """
        self._clients = clients
        self._platform = platform

    async def fetch_tree(self, root: DiscoveredNode) -> FetchedNode:
        """Fetch content for a node and all of its subpages."""
        logger.info("Retrieving page contents under %s-%s", root.lib, root.id)
        fetched = await self._fetch_node(root)
        logger.info("Finished retrieving page contents under %s-%s", root.lib, root.id)
        return fetched

    async def _fetch_node(self, node: DiscoveredNode) -> FetchedNode:
        client = await self._clients.get(node.lib)

        try:
            contents = await self._fetch_contents(client, node)
        except TransformError as e:
            logger.warning("%s; continuing with an empty body", e)
            contents = ""

        try:
            summary, props = await self._fetch_properties(client, node)
        except TransformError as e:
            logger.warning("%s; continuing without properties", e)
            summary, props = None, []

        semaphore = asyncio.Semaphore(self._platform.max_concurrent)

        async def fetch_child(child: DiscoveredNode) -> FetchedNode:
            async with semaphore:
                return await self._fetch_node(child)

        subpages = await asyncio.gather(*(fetch_child(c) for c in node.subpages))
        return FetchedNode.from_discovered(
            node,
            contents=contents,
            summary=summary,
            props=props,
            subpages=list(subpages),
        )

    async def _fetch_contents(self, client: LibraryClient, node: DiscoveredNode) -> str:
        logger.debug("Retrieving contents of %s-%s", node.lib, node.id)
        try:
            return await client.get_contents(node.id)
        except LibraryAPIError as e:
            raise TransformError(f"Could not retrieve contents of {node.lib}-{node.id}: {e}") from e

    async def _fetch_properties(
        self, client: LibraryClient, node: DiscoveredNode
    ) -> tuple[str | None, list[PageProp]]:
        logger.debug("Retrieving properties of %s-%s", node.lib, node.id)
        try:
            entries = await client.get_properties(node.id)
        except LibraryAPIError as e:
            raise TransformError(
                f"Could not retrieve properties of {node.lib}-{node.id}: {e}"
            ) from e
        return process_properties(entries)
