"""
Dropbox file API (API v2).
"""

from __future__ import annotations

import json
from typing import Any

from cloudlink.models import FileMetadata
from cloudlink.providers.base import PAGE_SIZE, FileListingAPI, guess_mime_type


class DropboxAPI(FileListingAPI):
    """Lists the app folder root and downloads files from Dropbox.

    Dropbox RPC endpoints take JSON bodies; content downloads pass their
    arguments in the ``Dropbox-API-Arg`` header instead.
    """

    name = "dropbox"
    base_url = "https://api.dropboxapi.com/2"
    content_url = "https://content.dropboxapi.com/2"

    async def list_files(self, bearer: str) -> list[FileMetadata]:
        data = await self._request_json(
            "POST",
            "/files/list_folder",
            bearer,
            json={"path": "", "limit": PAGE_SIZE},
        )
        return [self._parse_entry(e) for e in data.get("entries", []) if e.get(".tag") == "file"]

    async def download(self, bearer: str, file_id: str) -> bytes:
        return await self._request_bytes(
            "POST",
            f"{self.content_url}/files/download",
            bearer,
            headers={"Dropbox-API-Arg": json.dumps({"path": file_id})},
        )

    def _parse_entry(self, raw: dict[str, Any]) -> FileMetadata:
        name = raw.get("name", "")
        return FileMetadata(
            id=raw["id"],
            name=name,
            mime_type=guess_mime_type(name),
            size=int(raw.get("size") or 0),
            modified_time=raw.get("server_modified"),
            source=self.name,
        )
