"""
Content transformation.

Prepares page HTML for machine translation: a provenance block identifying the
page is prepended, and template tokens and math notation are wrapped in
elements marked translate="no". Every rewrite is a pure function of its input,
and the shielding rewrites leave already-shielded regions alone, so applying
them twice gives the same result as applying them once.
"""

from __future__ import annotations

import html
import re
from dataclasses import replace

from polyglot_engine.models import FetchedNode

NO_TRANSLATE_DIV = '<div translate="no">'
NO_TRANSLATE_SPAN = '<span translate="no">'

TEMPLATE_TOKEN_PATTERN = re.compile(
    rf"(?<!{re.escape(NO_TRANSLATE_DIV)})\{{\{{[A-Za-z.()]*\}}\}}"
)
INLINE_MATH_PATTERN = re.compile(
    rf"(?<!{re.escape(NO_TRANSLATE_SPAN)})\\\(.*?(?<!\\\\)\\\)"
)
DISPLAY_MATH_PATTERN = re.compile(
    rf"(?<!{re.escape(NO_TRANSLATE_SPAN)})\\\[.*?(?<!\\\\)\\\]"
)


def prepend_provenance(
    contents: str,
    lib: str,
    page_id: str,
    title: str,
    summary: str | None = None,
) -> str:
    """
    Prepend the title marker and, when present, the summary paragraph.

    The title marker carries the page identity so a translated file can be
    matched back to its page without relying on file names.
    """
    block = (
        f'<span data-libre-pagetitle="true" data-libre-lib="{html.escape(lib)}" '
        f'data-libre-pageid="{html.escape(page_id)}">{html.escape(title, quote=False)}</span>'
    )
    if summary:
        block += f'<p data-libre-pagesummary="true">{html.escape(summary, quote=False)}</p>'
    return f"{block}{contents}"


def shield_template_tokens(contents: str) -> str:
    """Wrap `{{template.tokens()}}` in a non-translatable div."""
    return TEMPLATE_TOKEN_PATTERN.sub(lambda m: f"{NO_TRANSLATE_DIV}{m.group(0)}</div>", contents)


def shield_inline_math(contents: str) -> str:
    r"""Wrap `\( ... \)` inline math in a non-translatable span."""
    return INLINE_MATH_PATTERN.sub(lambda m: f"{NO_TRANSLATE_SPAN}{m.group(0)}</span>", contents)


def shield_display_math(contents: str) -> str:
    r"""Wrap `\[ ... \]` display math in a non-translatable span."""
    return DISPLAY_MATH_PATTERN.sub(lambda m: f"{NO_TRANSLATE_SPAN}{m.group(0)}</span>", contents)


def transform_contents(node: FetchedNode) -> str:
    """Apply all content rewrites to one page, in order."""
    contents = prepend_provenance(node.contents, node.lib, node.id, node.title, node.summary)
    contents = shield_template_tokens(contents)
    contents = shield_inline_math(contents)
    return shield_display_math(contents)


def transform_tree(node: FetchedNode) -> FetchedNode:
    """Return a copy of the tree with every page's contents transformed."""
    return replace(
        node,
        contents=transform_contents(node),
        subpages=[transform_tree(child) for child in node.subpages],
    )
