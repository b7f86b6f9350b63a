"""
Tree reconstruction.

Reads the flat translated output of a job and rebuilds the page hierarchy by
joining each translated file against the stored page metadata. A translated
file identifies its page through the provenance title marker, not its name.
"""

from __future__ import annotations

import asyncio
import logging

from bs4 import BeautifulSoup

from polyglot_engine.errors import ObjectNotFoundError, ReconstructionError
from polyglot_engine.models import FlatMeta, MergedNode, TranslatedFragment
from polyglot_engine.services.base import ObjectStore, split_s3_uri

logger = logging.getLogger(__name__)


def parse_fragment(document: str) -> TranslatedFragment | None:
    """
    Parse one translated file.

    The title marker and the summary paragraph are removed from the body.

    Returns:
        The fragment, or None if the file carries no usable title marker.
    """
    soup = BeautifulSoup(document, "html.parser")
    title_el = soup.find("span", attrs={"data-libre-pagetitle": "true"})
    if title_el is None:
        return None
    lib = (title_el.get("data-libre-lib") or "").strip()
    page_id = (title_el.get("data-libre-pageid") or "").strip()
    if not lib or not page_id:
        return None
    title = title_el.get_text().strip()
    title_el.decompose()

    summary = None
    summary_el = soup.find("p", attrs={"data-libre-pagesummary": "true"})
    if summary_el is not None:
        summary = summary_el.get_text().strip() or None
        summary_el.decompose()

    return TranslatedFragment(
        lib=lib,
        id=page_id,
        title=title,
        contents=str(soup).strip(),
        summary=summary,
    )


def merge_fragments(
    fragments: list[TranslatedFragment],
    all_pages: list[FlatMeta],
) -> list[MergedNode]:
    """
    Join fragments with their metadata entries.

    The result follows the order of all_pages. Fragments without a metadata
    entry are dropped.
    """
    by_key = {fragment.key: fragment for fragment in fragments}
    known = {meta.key for meta in all_pages}
    for fragment in fragments:
        if fragment.key not in known:
            logger.warning(
                "Translated page %s-%s has no metadata entry, dropping it",
                fragment.lib,
                fragment.id,
            )

    merged = []
    for meta in all_pages:
        fragment = by_key.get(meta.key)
        if fragment is None:
            logger.warning("No translated output found for %s-%s", meta.lib, meta.id)
            continue
        merged.append(MergedNode.merge(fragment, meta))
    return merged


def build_tree(nodes: list[MergedNode]) -> MergedNode:
    """
    Attach merged nodes to their parents.

    Raises:
        ReconstructionError: If no root node is present.
    """
    root = next((node for node in nodes if node.root), None)
    if root is None:
        raise ReconstructionError("Root page not found among translated pages")

    children: dict[str, list[MergedNode]] = {}
    for node in nodes:
        if node is root or node.parent is None:
            continue
        children.setdefault(node.parent, []).append(node)

    def attach(node: MergedNode, seen: set[str]) -> MergedNode:
        seen.add(node.id)
        node.subpages = [
            attach(child, seen) for child in children.get(node.id, []) if child.id not in seen
        ]
        return node

    return attach(root, set())


class TreeReconstructor:
    """Rebuilds a translated page hierarchy from a job's output files."""

    def __init__(self, object_store: ObjectStore, max_concurrent: int = 2):
        """
        Initialize reconstructor.

        Args:
            object_store: Storage holding the translated output files.
            max_concurrent: Maximum number of files read at once.
        """
        self._store = object_store
        self._max_concurrent = max_concurrent

    async def _read_fragment(
        self, uri: str, semaphore: asyncio.Semaphore
    ) -> TranslatedFragment | None:
        async with semaphore:
            try:
                bucket, key = split_s3_uri(uri)
                document = await self._store.get_object(bucket, key)
            except (ValueError, ObjectNotFoundError) as e:
                logger.error("Could not read translated file %s: %s", uri, e)
                return None
        fragment = parse_fragment(document)
        if fragment is None:
            logger.error("Translated file %s has no page identity marker", uri)
        return fragment

    async def reconstruct(self, output_uris: list[str], all_pages: list[FlatMeta]) -> MergedNode:
        """
        Read all translated files and rebuild the hierarchy.

        Args:
            output_uris: Locations of the translated files.
            all_pages: Pre-order page metadata stored at export time.

        Returns:
            The translated root node with its subpages attached.

        Raises:
            ReconstructionError: If the root cannot be rebuilt.
        """
        logger.info("Reconstructing %d translated files", len(output_uris))
        semaphore = asyncio.Semaphore(self._max_concurrent)
        results = await asyncio.gather(
            *(self._read_fragment(uri, semaphore) for uri in output_uris)
        )
        fragments = [fragment for fragment in results if fragment is not None]
        merged = merge_fragments(fragments, all_pages)
        root = build_tree(merged)
        logger.info(
            "Reconstructed %d of %d pages under %s-%s",
            len(merged),
            len(all_pages),
            root.lib,
            root.id,
        )
        return root
