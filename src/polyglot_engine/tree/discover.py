"""
Tree discovery.

Walks a cover page and its subpages recursively and builds the in-memory page
hierarchy. Children are resolved with a small per-parent concurrency cap and
with pauses between request bursts to stay under the platform's rate limits.
"""

from __future__ import annotations

import asyncio
import logging

from polyglot_engine.config import PlatformConfig, RateLimitConfig
from polyglot_engine.errors import DiscoveryError, LibraryAPIError, PageCycleError
from polyglot_engine.library.client import LibraryClientPool, extract_tag_values
from polyglot_engine.library.paths import parse_library_url, parse_page_path
from polyglot_engine.models import DiscoveredNode

logger = logging.getLogger(__name__)


class TreeDiscoverer:
    """Builds the DiscoveredNode tree rooted at a cover page."""

    def __init__(
        self,
        clients: LibraryClientPool,
        platform: PlatformConfig,
        rate_limit: RateLimitConfig,
    ):
        """
        Initialize discoverer.

        Args:
            clients: Library client pool for the source library.
            platform: Platform configuration (cover tag, concurrency cap).
            rate_limit: Pauses between request bursts.
        """
        self._clients = clients
        self._platform = platform
        self._rate_limit = rate_limit

    async def discover(self, lib: str, path: str) -> DiscoveredNode:
        """
        Discover the full page hierarchy under a cover page.

        Args:
            lib: Source library name.
            path: Path of the cover page, relative to the library.

        Returns:
            The root node with all reachable subpages attached.

        Raises:
            DiscoveryError: If the root cannot be retrieved or is not a cover.
            PageCycleError: If a page is reached twice.
        """
        logger.info("Discovering pages under %s/%s", lib, path)
        visited: set[tuple[str, str]] = set()
        root = await self._discover_node(lib, path, None, visited)
        logger.info("Finished discovering %d pages under %s-%s", len(visited), root.lib, root.id)
        return root

    async def _discover_node(
        self,
        lib: str,
        path: str,
        parent: str | None,
        visited: set[tuple[str, str]],
    ) -> DiscoveredNode:
        logger.debug("Retrieving %s/%s", lib, path)
        client = await self._clients.get(lib)
        try:
            info = await client.get_page_info(path)
        except LibraryAPIError as e:
            raise DiscoveryError(f"Could not retrieve page {lib}/{path}: {e}") from e

        page_id = str(info["@id"])
        if (lib, page_id) in visited:
            raise PageCycleError(f"Page {lib}-{page_id} was reached more than once")
        visited.add((lib, page_id))

        tags = extract_tag_values(info.get("tags"))
        if parent is None and self._platform.cover_tag not in tags:
            raise DiscoveryError(
                f"{lib}/{path} is not a coverpage. "
                "Translation of more than one text at a time has been disabled."
            )

        try:
            subpages = await client.get_subpages(page_id)
        except LibraryAPIError as e:
            raise DiscoveryError(f"Could not list subpages of {lib}-{page_id}: {e}") from e
        await asyncio.sleep(self._rate_limit.after_subpage_listing)

        child_refs: list[tuple[str, str]] = []
        for subpage in subpages:
            parsed = parse_library_url(subpage.get("uri.ui"), self._platform.base_domain)
            if parsed is None:
                logger.warning(
                    "Skipping subpage of %s-%s with unusable URL %r",
                    lib,
                    page_id,
                    subpage.get("uri.ui"),
                )
                continue
            child_refs.append(parsed)

        semaphore = asyncio.Semaphore(self._platform.max_concurrent)

        async def discover_child(child_lib: str, child_path: str) -> DiscoveredNode | None:
            async with semaphore:
                try:
                    return await self._discover_node(child_lib, child_path, page_id, visited)
                except PageCycleError:
                    raise
                except DiscoveryError as e:
                    logger.warning("Dropping branch %s/%s: %s", child_lib, child_path, e)
                    return None

        tasks = [asyncio.create_task(discover_child(cl, cp)) for cl, cp in child_refs]
        try:
            children = await asyncio.gather(*tasks)
        except Exception:
            # A cycle aborts discovery; stop sibling subtrees from issuing more requests.
            for task in tasks:
                task.cancel()
            raise
        if child_refs:
            await asyncio.sleep(self._rate_limit.after_subtree)

        hint = parse_page_path(path)
        return DiscoveredNode(
            lib=lib,
            id=page_id,
            path=path,
            url=info.get("uri.ui") or "",
            title=info.get("title") or "",
            tags=tags,
            parent=parent,
            url_num_prefix=hint.num_prefix,
            url_title_extract=hint.title_extract,
            subpages=[child for child in children if child is not None],
        )
