"""
Hierarchical writer.

Recreates a translated page hierarchy on the destination library. Page paths
are composed from the destination root path, the accumulated parent path and
the page's own segment, so section numbering and nesting survive translation.

After a page is created, its tags, properties and thumbnail are saved as
separate best-effort steps: a failing step is logged and recorded in the
report but never stops the page's subtree.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable
from dataclasses import dataclass, field

from polyglot_engine.config import PlatformConfig, RateLimitConfig
from polyglot_engine.errors import AuthRetrievalError, LibraryAPIError, WriteError
from polyglot_engine.library.client import LibraryClient, LibraryClientPool
from polyglot_engine.library.paths import assemble_path, compute_page_segment
from polyglot_engine.library.xml import create_properties_xml, create_tags_xml
from polyglot_engine.models import MergedNode, PageProp

logger = logging.getLogger(__name__)

OVERVIEW_PROPERTY = "mindtouch.page#overview"
GUIDE_TABS_PROPERTY = "idf.guideTabs"
THUMBNAIL_TAGS = ("article:topic-category", "article:topic-guide")


@dataclass
class WrittenPage:
    """A page created on the destination library."""

    source_lib: str
    source_id: str
    target_id: str
    path: str


@dataclass
class WriteReport:
    """Outcome of writing one translated tree."""

    pages: list[WrittenPage] = field(default_factory=list)
    failed_subtrees: list[str] = field(default_factory=list)
    step_failures: list[str] = field(default_factory=list)

    @property
    def pages_created(self) -> int:
        return len(self.pages)


def source_tag(node: MergedNode) -> str:
    """Tag linking a translated page back to its source page."""
    return f"source[translate]-{node.lib}-{node.id}"


def build_page_props(node: MergedNode) -> list[PageProp]:
    """
    Properties to save on the new page.

    The guide tabs value is stored as escaped JSON and is re-encoded compactly.
    The summary is saved as the page overview.

    Raises:
        ValueError: If the guide tabs value is not valid JSON.
    """
    props = []
    for prop in node.props:
        value = prop.value
        if GUIDE_TABS_PROPERTY in prop.name:
            value = json.dumps(json.loads(value), separators=(",", ":"), ensure_ascii=False)
        props.append(PageProp(name=prop.name, value=value))
    if node.summary and node.summary.strip():
        props.append(PageProp(name=OVERVIEW_PROPERTY, value=node.summary))
    return props


class HierarchicalWriter:
    """Writes a MergedNode tree under a destination path."""

    def __init__(
        self,
        clients: LibraryClientPool,
        platform: PlatformConfig,
        rate_limit: RateLimitConfig,
    ):
        """
        Initialize writer.

        Args:
            clients: Library client pool (destination and source libraries).
            platform: Platform configuration (concurrency cap).
            rate_limit: Pauses between writes.
        """
        self._clients = clients
        self._platform = platform
        self._rate_limit = rate_limit

    async def write_tree(self, root: MergedNode, target_lib: str, target_path: str) -> WriteReport:
        """
        Write a translated tree to the destination library.

        Args:
            root: Root of the translated tree.
            target_lib: Destination library name.
            target_path: Destination path the tree is placed under.

        Returns:
            Report of created pages and failures.

        Raises:
            WriteError: If the root page itself cannot be created.
        """
        if not target_lib.strip():
            raise WriteError("Target library not provided or invalid")
        if not target_path.strip():
            raise WriteError("Target path not provided or invalid")

        logger.info(
            "Writing translated tree %s-%s to %s/%s", root.lib, root.id, target_lib, target_path
        )
        try:
            client = await self._clients.get(target_lib)
        except AuthRetrievalError as e:
            raise WriteError(f"Could not access target library {target_lib}: {e}") from e

        report = WriteReport()
        await self._write_node(client, root, target_path, "", report)
        logger.info(
            "Finished writing %s-%s: %d pages created, %d subtrees failed, %d steps failed",
            root.lib,
            root.id,
            report.pages_created,
            len(report.failed_subtrees),
            len(report.step_failures),
        )
        return report

    async def _write_node(
        self,
        client: LibraryClient,
        node: MergedNode,
        target_path: str,
        parent_path: str,
        report: WriteReport,
    ) -> None:
        segment = compute_page_segment(node.title, node.url_num_prefix)
        path = assemble_path([target_path, parent_path, segment])
        logger.debug("Saving translated page %s-%s to %s", node.lib, node.id, path)
        try:
            new_id = await client.create_page(path, node.title.strip(), node.contents.strip())
        except LibraryAPIError as e:
            raise WriteError(f"Could not create page {path} for {node.lib}-{node.id}: {e}") from e
        report.pages.append(
            WrittenPage(source_lib=node.lib, source_id=node.id, target_id=new_id, path=path)
        )
        await asyncio.sleep(self._rate_limit.between_writes)

        await self._run_step("tags", node, new_id, report, self._save_tags(client, node, new_id))
        await self._run_step(
            "properties", node, new_id, report, self._save_properties(client, node, new_id)
        )
        if any(tag in node.tags for tag in THUMBNAIL_TAGS):
            await asyncio.sleep(self._rate_limit.before_thumbnail)
            await self._run_step(
                "thumbnail", node, new_id, report, self._copy_thumbnail(client, node, new_id)
            )

        child_parent_path = assemble_path([parent_path, segment])
        semaphore = asyncio.Semaphore(self._platform.max_concurrent)

        async def write_child(child: MergedNode) -> None:
            async with semaphore:
                try:
                    await self._write_node(client, child, target_path, child_parent_path, report)
                except WriteError as e:
                    logger.error("Skipping subtree of %s-%s: %s", child.lib, child.id, e)
                    report.failed_subtrees.append(f"{child.lib}-{child.id}")

        await asyncio.gather(*(write_child(child) for child in node.subpages))

    async def _run_step(
        self,
        name: str,
        node: MergedNode,
        new_id: str,
        report: WriteReport,
        step: Awaitable[None],
    ) -> None:
        try:
            await step
        except Exception as e:
            logger.warning(
                "Could not save %s of %s-%s to new page %s: %s",
                name,
                node.lib,
                node.id,
                new_id,
                e,
            )
            report.step_failures.append(f"{name}:{node.lib}-{node.id}")
        else:
            await asyncio.sleep(self._rate_limit.between_writes)

    async def _save_tags(self, client: LibraryClient, node: MergedNode, new_id: str) -> None:
        await client.put_tags(new_id, create_tags_xml([*node.tags, source_tag(node)]))

    async def _save_properties(self, client: LibraryClient, node: MergedNode, new_id: str) -> None:
        body = create_properties_xml(build_page_props(node))
        if body:
            await client.put_properties(new_id, body)

    async def _copy_thumbnail(self, client: LibraryClient, node: MergedNode, new_id: str) -> None:
        source = await self._clients.get(node.lib)
        thumbnail = await source.get_thumbnail(node.id)
        if thumbnail is None:
            logger.debug("Page %s-%s has no thumbnail", node.lib, node.id)
            return
        data, content_type = thumbnail
        await client.put_thumbnail(new_id, data, content_type)
