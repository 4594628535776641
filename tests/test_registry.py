"""Tests for the provider registry."""

import pytest

from cloudlink.config import CloudLinkConfig, ProviderConfig, ProviderKind
from cloudlink.errors import UnknownProvider
from cloudlink.models import FileMetadata
from cloudlink.providers import DropboxAPI, GoogleDriveAPI, OneDriveAPI
from cloudlink.providers.base import FileListingAPI
from cloudlink.providers.registry import ProviderRegistry


class MockFileAPI(FileListingAPI):
    """A simple mock file API for testing."""

    name = "mock"

    async def list_files(self, bearer: str) -> list[FileMetadata]:
        return []

    async def download(self, bearer: str, file_id: str) -> bytes:
        return b""


def _mock_config() -> ProviderConfig:
    return ProviderConfig(
        id="mock",
        kind=ProviderKind.DROPBOX,
        authorization_endpoint="https://example.com/authorize",
        token_endpoint="https://example.com/token",
        client_id="mock-client",
    )


class TestProviderRegistry:
    def test_register_provider(self) -> None:
        registry = ProviderRegistry()
        api = MockFileAPI()
        registry.register(_mock_config(), api)

        assert len(registry) == 1
        assert "mock" in registry
        assert registry.api("mock") is api
        assert registry.config("mock").client_id == "mock-client"

    def test_get_nonexistent(self) -> None:
        registry = ProviderRegistry()
        with pytest.raises(UnknownProvider):
            registry.config("nonexistent")
        with pytest.raises(UnknownProvider):
            registry.api("nonexistent")

    def test_from_config_builtin_apis(self) -> None:
        registry = ProviderRegistry.from_config(CloudLinkConfig())

        assert len(registry) == 3
        assert isinstance(registry.api("google_drive"), GoogleDriveAPI)
        assert isinstance(registry.api("dropbox"), DropboxAPI)
        assert isinstance(registry.api("onedrive"), OneDriveAPI)

    def test_custom_provider_id_names_its_api(self) -> None:
        config = CloudLinkConfig.load(
            None,
            providers={
                "work_onedrive": {
                    "id": "work_onedrive",
                    "kind": "onedrive",
                    "authorization_endpoint": "https://login.microsoftonline.com/{tenant}/oauth2/v2.0/authorize",
                    "token_endpoint": "https://login.microsoftonline.com/{tenant}/oauth2/v2.0/token",
                },
            },
        )
        registry = ProviderRegistry.from_config(config)

        assert registry.provider_ids == ["work_onedrive"]
        api = registry.api("work_onedrive")
        assert isinstance(api, OneDriveAPI)
        assert api.name == "work_onedrive"
