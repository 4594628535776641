"""
Base file API: abstract interface for a cloud storage provider's file endpoints.

A file API only ever sees a bearer token. Token lifecycle (refresh, retry,
persistence) belongs to :class:`cloudlink.storage.CloudStorage`; the API
signals an expired token by raising :class:`AccessTokenExpired` on HTTP 401.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from pathlib import PurePosixPath
from typing import Any

import httpx

from cloudlink.errors import AccessTokenExpired, ProviderAPIError
from cloudlink.log import redact
from cloudlink.models import FileMetadata

logger = logging.getLogger("cloudlink.providers")

PAGE_SIZE = 100

# Document types the app can ingest
SUPPORTED_EXTENSIONS: dict[str, str] = {
    ".pdf": "application/pdf",
    ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    ".txt": "text/plain",
    ".md": "text/markdown",
}
DEFAULT_MIME_TYPE = "application/octet-stream"


def guess_mime_type(name: str) -> str:
    return SUPPORTED_EXTENSIONS.get(PurePosixPath(name).suffix.lower(), DEFAULT_MIME_TYPE)


def is_supported_document(file: FileMetadata) -> bool:
    """True for PDF, Word, text and Markdown files (by extension or MIME type)."""
    if PurePosixPath(file.name).suffix.lower() in SUPPORTED_EXTENSIONS:
        return True
    return file.mime_type in SUPPORTED_EXTENSIONS.values()


class FileListingAPI(ABC):
    """Abstract base class for provider file APIs.

    Subclasses implement:
    - ``name``: provider id, used for error attribution.
    - ``list_files(bearer)``: metadata for the files in the account root.
    - ``download(bearer, file_id)``: raw file content.

    Example::

        class MyStorageAPI(FileListingAPI):
            name = "my_storage"
            base_url = "https://api.example.com"

            async def list_files(self, bearer: str) -> list[FileMetadata]:
                data = await self._request_json("GET", "/files", bearer)
                return [FileMetadata(id=f["id"], name=f["name"], source=self.name) for f in data["files"]]

            async def download(self, bearer: str, file_id: str) -> bytes:
                return await self._request_bytes("GET", f"/files/{file_id}", bearer)
    """

    name: str = "base"
    base_url: str = ""

    def __init__(self, *, timeout: float = 30.0, http_client: httpx.AsyncClient | None = None) -> None:
        self.timeout = timeout
        self._http_client = http_client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create a reusable httpx client."""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(timeout=self.timeout)
        return self._http_client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._http_client and not self._http_client.is_closed:
            await self._http_client.aclose()

    @abstractmethod
    async def list_files(self, bearer: str) -> list[FileMetadata]:
        """List files in the connected account.

        Raises:
            AccessTokenExpired: The provider rejected the bearer token (401).
            ProviderAPIError: Any other failure.
        """
        ...

    @abstractmethod
    async def download(self, bearer: str, file_id: str) -> bytes:
        """Download the content of one file."""
        ...

    # ------------------------------------------------------------------
    # HTTP helpers
    # ------------------------------------------------------------------

    async def _send(
        self,
        method: str,
        url: str,
        bearer: str,
        *,
        headers: dict[str, str] | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        if not url.startswith("http"):
            url = f"{self.base_url}{url}"
        client = await self._get_client()
        request_headers = {"Authorization": f"Bearer {bearer}", **(headers or {})}
        try:
            resp = await client.request(method, url, headers=request_headers, **kwargs)
        except httpx.HTTPError as e:
            raise ProviderAPIError(provider=self.name, detail=f"transport error: {type(e).__name__}") from e

        if resp.status_code == 401:
            logger.info("%s rejected the access token", self.name)
            raise AccessTokenExpired(self.name)
        if not 200 <= resp.status_code < 300:
            logger.error("%s API error (HTTP %d): %s", self.name, resp.status_code, redact(resp.text))
            raise ProviderAPIError(provider=self.name, detail=redact(resp.text), status_code=resp.status_code)
        return resp

    async def _request_json(self, method: str, url: str, bearer: str, **kwargs: Any) -> dict[str, Any]:
        resp = await self._send(method, url, bearer, headers={"Accept": "application/json"}, **kwargs)
        try:
            return resp.json()
        except ValueError as e:
            raise ProviderAPIError(provider=self.name, detail="response is not JSON") from e

    async def _request_bytes(self, method: str, url: str, bearer: str, **kwargs: Any) -> bytes:
        resp = await self._send(method, url, bearer, **kwargs)
        return resp.content
