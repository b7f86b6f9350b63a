"""
Document-tree pipeline.

Provides:
- Recursive discovery of a cover page and its subpages
- Content and property retrieval
- Shielding of template tokens and math from translation
- Flattening into job metadata and reconstruction from translated output
- Structure-preserving writes to the destination library
"""

from polyglot_engine.tree.discover import TreeDiscoverer
from polyglot_engine.tree.fetch import ContentFetcher, process_properties
from polyglot_engine.tree.flatten import count_nodes, flatten_tree, iter_nodes
from polyglot_engine.tree.reconstruct import (
    TreeReconstructor,
    build_tree,
    merge_fragments,
    parse_fragment,
)
from polyglot_engine.tree.transform import (
    prepend_provenance,
    shield_display_math,
    shield_inline_math,
    shield_template_tokens,
    transform_contents,
    transform_tree,
)
from polyglot_engine.tree.writer import HierarchicalWriter, WriteReport, WrittenPage

__all__ = [
    "TreeDiscoverer",
    "ContentFetcher",
    "process_properties",
    "count_nodes",
    "flatten_tree",
    "iter_nodes",
    "TreeReconstructor",
    "build_tree",
    "merge_fragments",
    "parse_fragment",
    "prepend_provenance",
    "shield_display_math",
    "shield_inline_math",
    "shield_template_tokens",
    "transform_contents",
    "transform_tree",
    "HierarchicalWriter",
    "WriteReport",
    "WrittenPage",
]
