"""
Content-platform access.

Provides:
- API client for one library (pages, subpages, properties, contents, files)
- URL and page-path parsing, section hints and destination path building
- XML bodies for tag and property updates
"""

from polyglot_engine.library.client import (
    LibraryClient,
    LibraryClientPool,
    as_list,
    extract_tag_values,
)
from polyglot_engine.library.paths import (
    assemble_path,
    compute_page_segment,
    parse_library_url,
    parse_page_path,
)

__all__ = [
    "LibraryClient",
    "LibraryClientPool",
    "as_list",
    "extract_tag_values",
    "assemble_path",
    "compute_page_segment",
    "parse_library_url",
    "parse_page_path",
]
