"""
Google Drive file API (Drive v3).
"""

from __future__ import annotations

from typing import Any

from cloudlink.models import FileMetadata
from cloudlink.providers.base import PAGE_SIZE, FileListingAPI, guess_mime_type

_FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"


class GoogleDriveAPI(FileListingAPI):
    """Lists and downloads files from Google Drive.

    Folders are excluded and the newest files come first.
    """

    name = "google_drive"
    base_url = "https://www.googleapis.com/drive/v3"

    async def list_files(self, bearer: str) -> list[FileMetadata]:
        data = await self._request_json(
            "GET",
            "/files",
            bearer,
            params={
                "pageSize": PAGE_SIZE,
                "fields": "files(id,name,mimeType,size,modifiedTime)",
                "orderBy": "modifiedTime desc",
                "q": f"mimeType!='{_FOLDER_MIME_TYPE}' and trashed=false",
            },
        )
        return [self._parse_file(f) for f in data.get("files", [])]

    async def download(self, bearer: str, file_id: str) -> bytes:
        return await self._request_bytes("GET", f"/files/{file_id}", bearer, params={"alt": "media"})

    def _parse_file(self, raw: dict[str, Any]) -> FileMetadata:
        name = raw.get("name", "")
        return FileMetadata(
            id=raw["id"],
            name=name,
            mime_type=raw.get("mimeType") or guess_mime_type(name),
            # Drive reports size as a string and omits it for native Google docs
            size=int(raw.get("size") or 0),
            modified_time=raw.get("modifiedTime"),
            source=self.name,
        )
