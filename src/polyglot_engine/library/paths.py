"""
Library URL and page-path helpers.

Handles:
- Splitting a library URL into its library name and relative path
- Recovering section numbering ("2.03: Title") from a page path
- Building destination page paths from titles and section numbers
"""

from __future__ import annotations

import re
from urllib.parse import quote

from polyglot_engine.models import SectionHint

# Delimiter between section number and title in an encoded page path
SECTION_DELIMITER = "%3A"

# A section number contains a digit; "zz" marks back matter
_SECTION_NUMBER = re.compile(r"\d|zz")


def parse_library_url(url: str, base_domain: str = "libretexts.org") -> tuple[str, str] | None:
    """
    Split a library URL into (library name, relative path).

    Args:
        url: Full page URL, e.g. "https://chem.libretexts.org/Bookshelves/X".
        base_domain: Domain the libraries are served under.

    Returns:
        The library subdomain and path, or None if the URL is not a library URL
        or has no path.
    """
    if not isinstance(url, str) or not url.strip():
        return None
    pattern = rf"^https?://([^./]+)\.{re.escape(base_domain)}/(.*)$"
    match = re.match(pattern, url.strip())
    if not match:
        return None
    lib, path = match.group(1), match.group(2)
    if not lib or not path:
        return None
    return lib, path


def parse_page_path(path: str | None) -> SectionHint:
    """
    Determine a page's section numbering from its path.

    Only the final path segment is considered. "2.03%3ASome_Title" yields
    num_prefix "2.03" and title_extract "Some Title".
    """
    if not isinstance(path, str):
        return SectionHint(success=False)
    segment = path.split("/")[-1]
    parts = segment.split(SECTION_DELIMITER, 1)
    if len(parts) > 1 and _SECTION_NUMBER.search(parts[0]):
        return SectionHint(
            success=True,
            num_prefix=parts[0],
            title_extract=parts[1].replace("_", " ").strip(),
        )
    return SectionHint(success=False)


def compute_page_segment(title: str, num_prefix: str | None = None) -> str:
    """
    Build the path segment of a page on the destination library.

    With a section number the segment becomes "<num>: <title>", dropping any
    "<num>:" already present at the start of the title. Spaces become
    underscores.
    """
    trimmed = title.strip()
    segment = trimmed
    if num_prefix and num_prefix.strip():
        url_title = trimmed
        split_title = url_title.split(":", 1)
        if len(split_title) > 1:
            url_title = split_title[1].strip()
        segment = f"{num_prefix}: {url_title}"
    return segment.replace(" ", "_")


def assemble_path(parts: list[str | None]) -> str:
    """Join non-empty path parts with single slashes."""
    path = ""
    for part in parts:
        if not isinstance(part, str) or not part.strip():
            continue
        if path and not path.endswith("/"):
            path = f"{path}/"
        path = f"{path}{part.lstrip('/') if path else part}"
    return path


def encode_page_path(path: str) -> str:
    """Double-encode a page path for use as a `=<path>` page reference."""
    return quote(quote(path, safe=""), safe="")
