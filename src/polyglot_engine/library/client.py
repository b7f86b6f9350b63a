"""
Content-platform (CXone Expert "deki") API client.

One LibraryClient talks to one library with that library's credentials. Every
request is signed with freshly generated token headers.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from polyglot_engine.auth import CredentialsProvider, LibraryCredentials, generate_request_headers
from polyglot_engine.config import PlatformConfig
from polyglot_engine.errors import LibraryAPIError
from polyglot_engine.library.paths import encode_page_path

logger = logging.getLogger(__name__)

JSON_FORMAT = {"dream.out.format": "json"}
XML_CONTENT_TYPE = "text/xml; charset=utf-8;"
THUMBNAIL_FILE = "=mindtouch.page%2523thumbnail"


def as_list(value: Any) -> list[Any]:
    """Normalize an API field that holds either one object or a list of them."""
    if isinstance(value, list):
        return value
    if isinstance(value, dict):
        return [value]
    return []


def extract_tag_values(tags_obj: Any) -> list[str]:
    """Extract tag values ("name:value" strings) from a page's tags object."""
    if not isinstance(tags_obj, dict):
        return []
    values: list[str] = []
    for tag in as_list(tags_obj.get("tag")):
        value = tag.get("@value") if isinstance(tag, dict) else None
        if isinstance(value, str) and value not in values:
            values.append(value)
    return values


class LibraryClient:
    """API client for a single library."""

    def __init__(
        self,
        credentials: LibraryCredentials,
        http: httpx.AsyncClient,
        platform: PlatformConfig,
    ):
        """
        Initialize library client.

        Args:
            credentials: Key/secret pair of the library.
            http: Shared async HTTP client.
            platform: Platform configuration (domain, bot user).
        """
        self._credentials = credentials
        self._http = http
        self._platform = platform
        self._root = platform.pages_api_url(credentials.lib)

    @property
    def lib(self) -> str:
        return self._credentials.lib

    def _headers(self, content_type: str | None = None) -> dict[str, str]:
        headers = generate_request_headers(self._credentials, self._platform.bot_user)
        if content_type:
            headers["Content-Type"] = content_type
        return headers

    async def _request(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, str] | None = None,
        content: str | bytes | None = None,
        content_type: str | None = None,
    ) -> httpx.Response:
        try:
            response = await self._http.request(
                method,
                url,
                params=params,
                content=content,
                headers=self._headers(content_type),
                timeout=self._platform.timeout_seconds,
            )
        except httpx.HTTPError as e:
            raise LibraryAPIError(f"{method} {url} failed: {e}") from e
        if response.status_code >= 400:
            raise LibraryAPIError(
                f"{method} {url} returned HTTP {response.status_code}",
                status_code=response.status_code,
            )
        return response

    async def _get_json(self, url: str, params: dict[str, str] | None = None) -> dict[str, Any]:
        response = await self._request("GET", url, params={**(params or {}), **JSON_FORMAT})
        try:
            data = response.json()
        except ValueError as e:
            raise LibraryAPIError(f"GET {url} returned invalid JSON") from e
        if not isinstance(data, dict):
            raise LibraryAPIError(f"GET {url} returned an unexpected payload")
        return data

    async def get_page_info(self, path: str) -> dict[str, Any]:
        """Get a page's identity, title, URL and tags by its path."""
        data = await self._get_json(f"{self._root}={encode_page_path(path)}")
        if "@id" not in data:
            raise LibraryAPIError(f"Page info for {self.lib}/{path} has no identifier")
        return data

    async def get_subpages(self, page_id: str) -> list[dict[str, Any]]:
        """Get a page's direct subpages."""
        data = await self._get_json(f"{self._root}{page_id}/subpages", {"limit": "all"})
        return as_list(data.get("page.subpage"))

    async def get_properties(self, page_id: str) -> list[dict[str, Any]]:
        """Get a page's raw property entries."""
        data = await self._get_json(f"{self._root}{page_id}/properties")
        return as_list(data.get("property"))

    async def get_contents(self, page_id: str) -> str:
        """Get a page's editable HTML body."""
        data = await self._get_json(
            f"{self._root}{page_id}/contents",
            {"mode": "edit", "format": "html"},
        )
        body = data.get("body")
        if not isinstance(body, str):
            raise LibraryAPIError(f"Contents of {self.lib}-{page_id} missing from response")
        return body

    async def create_page(self, path: str, title: str, contents: str) -> str:
        """
        Create a page at a path.

        Returns:
            The new page's identifier.

        Raises:
            LibraryAPIError: If the page exists already or creation failed.
        """
        url = f"{self._root}={encode_page_path(path)}/contents"
        response = await self._request(
            "POST",
            url,
            params={"title": title, "edittime": "now", "abort": "exists", **JSON_FORMAT},
            content=contents.encode("utf-8"),
            content_type="text/plain; charset=utf-8;",
        )
        try:
            data = response.json()
        except ValueError as e:
            raise LibraryAPIError(f"Create page {path} returned invalid JSON") from e
        if not isinstance(data, dict) or data.get("@status") != "success":
            raise LibraryAPIError(f"Create page {path} did not succeed: {data!r}")
        new_id = (data.get("page") or {}).get("@id")
        if new_id is None or not str(new_id).strip():
            raise LibraryAPIError(f"Create page {path} returned no page identifier")
        return str(new_id)

    async def put_tags(self, page_id: str, tags_xml: str) -> None:
        """Replace a page's tags."""
        await self._request(
            "PUT",
            f"{self._root}{page_id}/tags",
            content=tags_xml.encode("utf-8"),
            content_type=XML_CONTENT_TYPE,
        )

    async def put_properties(self, page_id: str, properties_xml: str) -> None:
        """Set a page's properties."""
        await self._request(
            "PUT",
            f"{self._root}{page_id}/properties",
            content=properties_xml.encode("utf-8"),
            content_type=XML_CONTENT_TYPE,
        )

    async def get_thumbnail(self, page_id: str) -> tuple[bytes, str] | None:
        """
        Get a page's thumbnail file.

        Returns:
            (file bytes, content type), or None if the page has no thumbnail.
        """
        try:
            response = await self._request("GET", f"{self._root}{page_id}/files/{THUMBNAIL_FILE}")
        except LibraryAPIError as e:
            if e.status_code == 404:
                return None
            raise
        if not response.content:
            return None
        content_type = response.headers.get("content-type", "application/octet-stream")
        return response.content, content_type

    async def put_thumbnail(self, page_id: str, data: bytes, content_type: str) -> None:
        """Upload a page's thumbnail file."""
        await self._request(
            "PUT",
            f"{self._root}{page_id}/files/{THUMBNAIL_FILE}",
            content=data,
            content_type=content_type,
        )


class LibraryClientPool:
    """Hands out one LibraryClient per library, sharing a single HTTP client."""

    def __init__(
        self,
        credentials: CredentialsProvider,
        http: httpx.AsyncClient,
        platform: PlatformConfig,
    ):
        self._credentials = credentials
        self._http = http
        self._platform = platform
        self._clients: dict[str, LibraryClient] = {}

    @property
    def platform(self) -> PlatformConfig:
        return self._platform

    async def get(self, lib: str) -> LibraryClient:
        """
        Get the client for a library.

        Raises:
            AuthRetrievalError: If the library's credentials are unavailable.
        """
        client = self._clients.get(lib)
        if client is None:
            creds = await self._credentials.get(lib)
            client = self._clients.setdefault(lib, LibraryClient(creds, self._http, self._platform))
        return client
