"""
Provider Registry: the provider configurations and file APIs known to the app.

Built once from :class:`CloudLinkConfig` and injected into the connection
orchestrator and the storage facade, so no other component reads provider
credentials from the environment.
"""

from __future__ import annotations

import importlib
import logging

from cloudlink.config import CloudLinkConfig, ProviderConfig, ProviderKind
from cloudlink.errors import UnknownProvider
from cloudlink.providers.base import FileListingAPI

logger = logging.getLogger("cloudlink.providers.registry")

# Built-in file API per provider kind
_BUILTIN_APIS: dict[ProviderKind, str] = {
    ProviderKind.GOOGLE_DRIVE: "cloudlink.providers.google_drive.GoogleDriveAPI",
    ProviderKind.DROPBOX: "cloudlink.providers.dropbox.DropboxAPI",
    ProviderKind.ONEDRIVE: "cloudlink.providers.onedrive.OneDriveAPI",
}


class ProviderRegistry:
    """Maps provider ids to their configuration and file API."""

    def __init__(self) -> None:
        self._configs: dict[str, ProviderConfig] = {}
        self._apis: dict[str, FileListingAPI] = {}

    def __len__(self) -> int:
        return len(self._configs)

    def __contains__(self, provider: object) -> bool:
        return provider in self._configs

    @property
    def provider_ids(self) -> list[str]:
        return list(self._configs)

    @classmethod
    def from_config(cls, config: CloudLinkConfig) -> ProviderRegistry:
        registry = cls()
        for provider_config in config.providers.values():
            api = _create_api(provider_config, timeout=config.http.timeout)
            registry.register(provider_config, api)
        return registry

    def register(self, config: ProviderConfig, api: FileListingAPI) -> None:
        """Register (or replace) a provider."""
        self._configs[config.id] = config
        self._apis[config.id] = api
        logger.debug(
            "Registered provider: %s (%s)",
            config.id,
            "configured" if config.is_configured else "no client id",
        )

    def config(self, provider: str) -> ProviderConfig:
        try:
            return self._configs[provider]
        except KeyError:
            raise UnknownProvider(provider=provider, detail=f"no provider named {provider!r}") from None

    def api(self, provider: str) -> FileListingAPI:
        try:
            return self._apis[provider]
        except KeyError:
            raise UnknownProvider(provider=provider, detail=f"no provider named {provider!r}") from None

    def configs(self) -> list[ProviderConfig]:
        return list(self._configs.values())

    async def close(self) -> None:
        """Close every file API's HTTP client."""
        for api in self._apis.values():
            await api.close()


def _create_api(config: ProviderConfig, *, timeout: float) -> FileListingAPI:
    """Instantiate the built-in file API for a provider kind."""
    module_path, class_name = _BUILTIN_APIS[config.kind].rsplit(".", 1)
    module = importlib.import_module(module_path)
    api_cls = getattr(module, class_name)
    api = api_cls(timeout=timeout)
    # Custom provider ids (e.g. a second OneDrive tenant) keep their own name
    api.name = config.id
    return api
