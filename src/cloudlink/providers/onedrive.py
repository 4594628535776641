"""
OneDrive file API (Microsoft Graph v1.0).
"""

from __future__ import annotations

from typing import Any

from cloudlink.models import FileMetadata
from cloudlink.providers.base import PAGE_SIZE, FileListingAPI, guess_mime_type


class OneDriveAPI(FileListingAPI):
    """Lists and downloads files in the root of the user's OneDrive."""

    name = "onedrive"
    base_url = "https://graph.microsoft.com/v1.0"

    async def list_files(self, bearer: str) -> list[FileMetadata]:
        data = await self._request_json(
            "GET",
            "/me/drive/root/children",
            bearer,
            params={
                "$select": "id,name,size,lastModifiedDateTime,file",
                "$top": PAGE_SIZE,
            },
        )
        # Items without a "file" facet are folders
        return [self._parse_item(item) for item in data.get("value", []) if "file" in item]

    async def download(self, bearer: str, file_id: str) -> bytes:
        # Graph answers with a 302 to a pre-authenticated download URL
        return await self._request_bytes(
            "GET", f"/me/drive/items/{file_id}/content", bearer, follow_redirects=True
        )

    def _parse_item(self, raw: dict[str, Any]) -> FileMetadata:
        name = raw.get("name", "")
        facet = raw.get("file") or {}
        return FileMetadata(
            id=raw["id"],
            name=name,
            mime_type=facet.get("mimeType") or guess_mime_type(name),
            size=int(raw.get("size") or 0),
            modified_time=raw.get("lastModifiedDateTime"),
            source=self.name,
        )
