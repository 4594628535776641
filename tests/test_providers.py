"""Tests for the provider file APIs."""

from __future__ import annotations

import json

import httpx
import pytest

from cloudlink.errors import AccessTokenExpired, ProviderAPIError
from cloudlink.models import FileMetadata
from cloudlink.providers import DropboxAPI, GoogleDriveAPI, OneDriveAPI
from cloudlink.providers.base import guess_mime_type, is_supported_document


def _client(handler) -> httpx.AsyncClient:  # noqa: ANN001
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestDocumentFilter:
    def test_guess_mime_type(self) -> None:
        assert guess_mime_type("report.PDF") == "application/pdf"
        assert guess_mime_type("notes.md") == "text/markdown"
        assert guess_mime_type("a.docx") == (
            "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
        )
        assert guess_mime_type("photo.jpg") == "application/octet-stream"

    def test_is_supported_document(self) -> None:
        assert is_supported_document(FileMetadata(id="1", name="a.txt", source="x"))
        assert is_supported_document(FileMetadata(id="2", name="untitled", mime_type="application/pdf", source="x"))
        assert not is_supported_document(FileMetadata(id="3", name="photo.png", mime_type="image/png", source="x"))


class TestGoogleDriveAPI:
    @pytest.mark.asyncio
    async def test_list_files(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"files": [
                {"id": "f1", "name": "plan.pdf", "mimeType": "application/pdf", "size": "2048",
                 "modifiedTime": "2024-05-01T10:00:00Z"},
                {"id": "f2", "name": "Doc", "mimeType": "application/vnd.google-apps.document"},
            ]})

        api = GoogleDriveAPI(http_client=_client(handler))
        files = await api.list_files("tok")

        request = seen[0]
        assert request.url.path == "/drive/v3/files"
        assert request.headers["Authorization"] == "Bearer tok"
        assert request.url.params["pageSize"] == "100"
        assert request.url.params["orderBy"] == "modifiedTime desc"
        assert "application/vnd.google-apps.folder" in request.url.params["q"]

        assert files[0].id == "f1"
        assert files[0].size == 2048
        assert files[0].source == "google_drive"
        assert files[1].size == 0

    @pytest.mark.asyncio
    async def test_download(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/drive/v3/files/f1"
            assert request.url.params["alt"] == "media"
            return httpx.Response(200, content=b"%PDF-1.7")

        api = GoogleDriveAPI(http_client=_client(handler))
        assert await api.download("tok", "f1") == b"%PDF-1.7"

    @pytest.mark.asyncio
    async def test_401_signals_expiry(self) -> None:
        api = GoogleDriveAPI(http_client=_client(lambda r: httpx.Response(401, json={"error": "expired"})))
        with pytest.raises(AccessTokenExpired):
            await api.list_files("tok")

    @pytest.mark.asyncio
    async def test_other_errors(self) -> None:
        api = GoogleDriveAPI(http_client=_client(lambda r: httpx.Response(500, text="backend error")))
        with pytest.raises(ProviderAPIError) as exc_info:
            await api.list_files("tok")
        assert exc_info.value.status_code == 500


class TestDropboxAPI:
    @pytest.mark.asyncio
    async def test_list_files_only_files(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.method == "POST"
            assert request.url.host == "api.dropboxapi.com"
            assert json.loads(request.content) == {"path": "", "limit": 100}
            return httpx.Response(200, json={"entries": [
                {".tag": "file", "id": "id:1", "name": "notes.md", "size": 12,
                 "server_modified": "2024-05-01T10:00:00Z"},
                {".tag": "folder", "id": "id:2", "name": "Photos"},
            ]})

        api = DropboxAPI(http_client=_client(handler))
        files = await api.list_files("tok")
        assert [f.id for f in files] == ["id:1"]
        assert files[0].mime_type == "text/markdown"
        assert files[0].modified_time == "2024-05-01T10:00:00Z"

    @pytest.mark.asyncio
    async def test_download_uses_api_arg_header(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.host == "content.dropboxapi.com"
            assert json.loads(request.headers["Dropbox-API-Arg"]) == {"path": "id:1"}
            return httpx.Response(200, content=b"# hi")

        api = DropboxAPI(http_client=_client(handler))
        assert await api.download("tok", "id:1") == b"# hi"


class TestOneDriveAPI:
    @pytest.mark.asyncio
    async def test_list_files_skips_folders(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/v1.0/me/drive/root/children"
            assert request.url.params["$top"] == "100"
            return httpx.Response(200, json={"value": [
                {"id": "A1", "name": "cv.docx", "size": 99, "lastModifiedDateTime": "2024-01-01T00:00:00Z",
                 "file": {"mimeType": "application/vnd.openxmlformats-officedocument.wordprocessingml.document"}},
                {"id": "A2", "name": "Documents", "folder": {"childCount": 3}},
            ]})

        api = OneDriveAPI(http_client=_client(handler))
        files = await api.list_files("tok")
        assert [f.id for f in files] == ["A1"]
        assert files[0].size == 99

    @pytest.mark.asyncio
    async def test_download_follows_redirect(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "graph.microsoft.com":
                return httpx.Response(302, headers={"Location": "https://files.example.com/blob/A1"})
            return httpx.Response(200, content=b"docx-bytes")

        api = OneDriveAPI(http_client=_client(handler))
        assert await api.download("tok", "A1") == b"docx-bytes"
