"""
Data model for the document-tree pipeline.

Each pipeline stage has its own node shape so that a node can only carry the
fields that are meaningful at that point:

- DiscoveredNode: identity and structure, as found while walking the library
- FetchedNode: a discovered node plus its HTML body, summary and properties
- FlatMeta: a fetched node without body or children, stored across the
  asynchronous translation boundary
- TranslatedFragment: what can be read back from one translated output file
- MergedNode: a fragment re-joined with its FlatMeta entry, ready to write
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from polyglot_engine.errors import CorrelationError

_ROOT_KEY_PART = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]*$")
_PAGE_ID = re.compile(r"^[A-Za-z0-9]+$")


def root_key(lib: str, page_id: str) -> str:
    """Build the `<lib>-<id>` key that names a job's storage prefix and job."""
    return f"{lib}-{page_id}"


def decode_root_key(key: str) -> tuple[str, str]:
    """
    Split a `<lib>-<id>` key back into its parts.

    The page id is always the segment after the last hyphen, so library names
    containing hyphens survive the round trip.

    Raises:
        CorrelationError: If the key does not have a well-formed lib and id.
    """
    if not isinstance(key, str) or "-" not in key:
        raise CorrelationError(f"Malformed root key: {key!r}")
    lib, page_id = key.rsplit("-", 1)
    if not lib or not _ROOT_KEY_PART.match(lib):
        raise CorrelationError(f"Malformed library in root key: {key!r}")
    if not page_id or not _PAGE_ID.match(page_id):
        raise CorrelationError(f"Malformed page id in root key: {key!r}")
    return lib, page_id


@dataclass(frozen=True)
class PageProp:
    """A page property (name/value pair)."""

    name: str
    value: str

    def to_dict(self) -> dict[str, str]:
        return {"name": self.name, "value": self.value}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PageProp:
        return cls(name=str(data["name"]), value=str(data["value"]))


@dataclass(frozen=True)
class SectionHint:
    """Section numbering parsed from a page path."""

    success: bool
    num_prefix: str | None = None
    title_extract: str | None = None


@dataclass
class DiscoveredNode:
    """A page found while walking the source hierarchy."""

    lib: str
    id: str
    path: str
    url: str = ""
    title: str = ""
    tags: list[str] = field(default_factory=list)
    parent: str | None = None
    url_num_prefix: str | None = None
    url_title_extract: str | None = None
    subpages: list[DiscoveredNode] = field(default_factory=list)

    @property
    def root(self) -> bool:
        return self.parent is None

    @property
    def key(self) -> tuple[str, str]:
        return (self.lib, self.id)


@dataclass
class FetchedNode:
    """A discovered page with its body, summary and properties."""

    lib: str
    id: str
    path: str
    url: str = ""
    title: str = ""
    tags: list[str] = field(default_factory=list)
    parent: str | None = None
    url_num_prefix: str | None = None
    url_title_extract: str | None = None
    contents: str = ""
    summary: str | None = None
    props: list[PageProp] = field(default_factory=list)
    subpages: list[FetchedNode] = field(default_factory=list)

    @property
    def root(self) -> bool:
        return self.parent is None

    @property
    def key(self) -> tuple[str, str]:
        return (self.lib, self.id)

    @classmethod
    def from_discovered(
        cls,
        node: DiscoveredNode,
        *,
        contents: str,
        summary: str | None,
        props: list[PageProp],
        subpages: list[FetchedNode],
    ) -> FetchedNode:
        return cls(
            lib=node.lib,
            id=node.id,
            path=node.path,
            url=node.url,
            title=node.title,
            tags=list(node.tags),
            parent=node.parent,
            url_num_prefix=node.url_num_prefix,
            url_title_extract=node.url_title_extract,
            contents=contents,
            summary=summary,
            props=list(props),
            subpages=subpages,
        )


@dataclass
class FlatMeta:
    """Content-free page record stored in the job metadata."""

    lib: str
    id: str
    path: str
    root: bool
    parent: str | None
    url: str = ""
    title: str = ""
    tags: list[str] = field(default_factory=list)
    props: list[PageProp] = field(default_factory=list)
    summary: str | None = None
    url_num_prefix: str | None = None
    url_title_extract: str | None = None

    @property
    def key(self) -> tuple[str, str]:
        return (self.lib, self.id)

    @classmethod
    def from_node(cls, node: DiscoveredNode | FetchedNode | MergedNode) -> FlatMeta:
        return cls(
            lib=node.lib,
            id=node.id,
            path=node.path,
            root=node.root,
            parent=node.parent,
            url=node.url,
            title=node.title,
            tags=list(node.tags),
            props=list(getattr(node, "props", [])),
            summary=getattr(node, "summary", None),
            url_num_prefix=node.url_num_prefix,
            url_title_extract=node.url_title_extract,
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "lib": self.lib,
            "id": self.id,
            "path": self.path,
            "url": self.url,
            "title": self.title,
            "tags": list(self.tags),
            "props": [p.to_dict() for p in self.props],
            "root": self.root,
            "parent": self.parent,
        }
        if self.summary is not None:
            data["summary"] = self.summary
        if self.url_num_prefix is not None:
            data["urlNumPrefix"] = self.url_num_prefix
            data["urlTitleExtract"] = self.url_title_extract
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FlatMeta:
        parent = data.get("parent")
        return cls(
            lib=str(data["lib"]),
            id=str(data["id"]),
            path=data.get("path") or "",
            root=bool(data.get("root", False)),
            parent=str(parent) if parent is not None else None,
            url=data.get("url") or "",
            title=data.get("title") or "",
            tags=list(data.get("tags") or []),
            props=[PageProp.from_dict(p) for p in data.get("props") or []],
            summary=data.get("summary"),
            url_num_prefix=data.get("urlNumPrefix"),
            url_title_extract=data.get("urlTitleExtract"),
        )


@dataclass
class TranslatedFragment:
    """One page parsed back from a translated output file."""

    lib: str
    id: str
    title: str
    contents: str
    summary: str | None = None

    @property
    def key(self) -> tuple[str, str]:
        return (self.lib, self.id)


@dataclass
class MergedNode:
    """A translated page re-joined with its original structure."""

    lib: str
    id: str
    title: str
    contents: str
    root: bool
    parent: str | None
    path: str = ""
    url: str = ""
    summary: str | None = None
    tags: list[str] = field(default_factory=list)
    props: list[PageProp] = field(default_factory=list)
    url_num_prefix: str | None = None
    url_title_extract: str | None = None
    subpages: list[MergedNode] = field(default_factory=list)

    @classmethod
    def merge(cls, fragment: TranslatedFragment, meta: FlatMeta) -> MergedNode:
        """Combine translated text fields with the stored structural fields."""
        return cls(
            lib=fragment.lib,
            id=fragment.id,
            title=fragment.title,
            contents=fragment.contents,
            summary=fragment.summary,
            root=meta.root,
            parent=meta.parent,
            path=meta.path,
            url=meta.url,
            tags=list(meta.tags),
            props=list(meta.props),
            url_num_prefix=meta.url_num_prefix,
            url_title_extract=meta.url_title_extract,
        )


@dataclass
class JobMetadataRecord:
    """Write-once correlation record for one translation job."""

    lib: str
    id: str
    all_pages: list[FlatMeta]
    target_lib: str
    target_path: str
    notify_addrs: list[str] = field(default_factory=list)
    uploaded: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat(timespec="milliseconds")
    )

    @property
    def page_count(self) -> int:
        return len(self.all_pages)

    @property
    def root_key(self) -> str:
        return root_key(self.lib, self.id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "lib": self.lib,
            "id": self.id,
            "pageCount": self.page_count,
            "uploaded": self.uploaded,
            "allPages": [p.to_dict() for p in self.all_pages],
            "targetLib": self.target_lib,
            "targetPath": self.target_path,
            "notifyAddrs": list(self.notify_addrs),
        }

    @classmethod
    def from_dict(cls, data: Any) -> JobMetadataRecord:
        """
        Parse and validate a stored record.

        Raises:
            ValueError: If required fields are missing or invalid.
        """
        if not isinstance(data, dict):
            raise ValueError("Metadata record is not an object")
        target_lib = data.get("targetLib")
        target_path = data.get("targetPath")
        all_pages = data.get("allPages")
        if not isinstance(target_lib, str) or not target_lib.strip():
            raise ValueError("Target library not found or invalid")
        if not isinstance(target_path, str) or not target_path.strip():
            raise ValueError("Target path not found or invalid")
        if not isinstance(all_pages, list):
            raise ValueError("Input pages not found or invalid")
        notify_addrs = data.get("notifyAddrs") or []
        if not isinstance(notify_addrs, list):
            raise ValueError("Notification addresses invalid")
        if not all(isinstance(p, dict) for p in all_pages):
            raise ValueError("Input page entry invalid: not an object")
        try:
            pages = [FlatMeta.from_dict(p) for p in all_pages]
        except (KeyError, TypeError) as e:
            raise ValueError(f"Input page entry invalid: {e!r}") from e
        return cls(
            lib=str(data.get("lib", "")),
            id=str(data.get("id", "")),
            all_pages=pages,
            target_lib=target_lib,
            target_path=target_path,
            notify_addrs=[str(addr) for addr in notify_addrs],
            uploaded=data.get("uploaded") or "",
        )


@dataclass
class TranslatedFileDetail:
    """One input/output pair listed in a translation job manifest."""

    source_file: str
    target_file: str
    characters_translated: int | None = None


@dataclass
class TranslationJobDetails:
    """Job facts read from the translation service's own output manifest."""

    lib: str
    id: str
    source_language: str
    target_language: str
    input_prefix: str
    output_prefix: str
    client_errors: int = 0
    server_errors: int = 0
    characters_translated: int | None = None
    files: list[TranslatedFileDetail] = field(default_factory=list)

    @property
    def root_key(self) -> str:
        return root_key(self.lib, self.id)

    def output_uris(self) -> list[str]:
        return [f"{self.output_prefix}{f.target_file}" for f in self.files]


@dataclass
class TranslationRequest:
    """A validated request to translate one text."""

    lib: str
    path: str
    target_lib: str
    target_path: str
    language: str
    notify_addrs: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "lib": self.lib,
            "path": self.path,
            "targetLib": self.target_lib,
            "targetPath": self.target_path,
            "language": self.language,
            "notifyAddrs": list(self.notify_addrs),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TranslationRequest:
        notify_addrs = data.get("notifyAddrs") or []
        if not isinstance(notify_addrs, list):
            raise ValueError("Notification addresses invalid")
        return cls(
            lib=data["lib"],
            path=data["path"],
            target_lib=data["targetLib"],
            target_path=data["targetPath"],
            language=data["language"],
            notify_addrs=[str(addr) for addr in notify_addrs],
        )
