"""
Tree flattening.

The flat, content-free list of pages is what survives the asynchronous
translation step; it is stored in the job metadata and later used to rebuild
the hierarchy.
"""

from __future__ import annotations

from polyglot_engine.models import DiscoveredNode, FetchedNode, FlatMeta, MergedNode


def flatten_tree(root: DiscoveredNode | FetchedNode | MergedNode) -> list[FlatMeta]:
    """List every page of the tree in pre-order, without contents or children."""
    pages: list[FlatMeta] = []
    stack = [root]
    while stack:
        node = stack.pop()
        pages.append(FlatMeta.from_node(node))
        stack.extend(reversed(node.subpages))
    return pages


def iter_nodes(root: FetchedNode) -> list[FetchedNode]:
    """List every page of the tree in pre-order, keeping contents."""
    nodes: list[FetchedNode] = []
    stack = [root]
    while stack:
        node = stack.pop()
        nodes.append(node)
        stack.extend(reversed(node.subpages))
    return nodes


def count_nodes(root: DiscoveredNode | FetchedNode) -> int:
    """Count the pages in a tree, root included."""
    return 1 + sum(count_nodes(child) for child in root.subpages)
