"""
XML request bodies for the page tags and properties endpoints.
"""

from __future__ import annotations

from xml.sax.saxutils import escape, quoteattr

from polyglot_engine.models import PageProp

PROPERTY_CONTENT_TYPE = "text/plain; charset=utf-8;"


def create_tags_xml(tags: list[str]) -> str:
    """
    Create a tags document from tag strings in "name:value" form.

    Raises:
        TypeError: If tags is not a list.
    """
    if not isinstance(tags, list):
        raise TypeError("Invalid tags provided.")
    tag_values = "".join(f"<tag value={quoteattr(tag)} />" for tag in tags)
    return f'<?xml version="1.0" encoding="UTF-8"?><tags>{tag_values}</tags>'


def create_properties_xml(props: list[PageProp]) -> str:
    """Create a properties document. Returns an empty string when there is nothing to save."""
    if not props:
        return ""
    entries = "".join(
        f"<property name={quoteattr(prop.name)}>"
        f'<contents type="{PROPERTY_CONTENT_TYPE}">{escape(prop.value)}</contents>'
        "</property>"
        for prop in props
    )
    return f"<properties>{entries}</properties>"
