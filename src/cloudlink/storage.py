"""
CloudStorage: main entry point.

Wires configuration, the provider registry, the credential store, the token
client and the connection orchestrator together, and exposes the operations
the app uses: connect, list, download, disconnect, status.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

from cloudlink.auth.flow import ConnectionOrchestrator, ConnectionState
from cloudlink.auth.store import (
    ACCESS,
    CSRF_STATE,
    REFRESH,
    CredentialStore,
    create_secret_store,
)
from cloudlink.auth.tokens import TokenClient
from cloudlink.browser import SystemBrowserLauncher, WebBrowserLauncher
from cloudlink.config import CloudLinkConfig, ProviderConfig
from cloudlink.errors import AccessTokenExpired, AuthExpired, NotConnected
from cloudlink.models import Credential, FileMetadata, TokenStatus
from cloudlink.providers.base import is_supported_document
from cloudlink.providers.registry import ProviderRegistry

logger = logging.getLogger("cloudlink")

T = TypeVar("T")


@dataclass
class CloudStorage:
    """Connects cloud storage accounts and reads documents from them.

    Usage::

        from cloudlink import CloudStorage

        storage = CloudStorage.from_config("cloudlink.yaml")
        await storage.connect("google_drive", "alice")
        files = await storage.list_files("google_drive", "alice")
        data = await storage.download_file("google_drive", "alice", files[0].id)
        await storage.close()

    Expired access tokens are refreshed lazily: a provider call rejected
    with 401 triggers exactly one refresh and one retry.
    """

    config: CloudLinkConfig = field(default_factory=CloudLinkConfig)
    registry: ProviderRegistry | None = None
    credentials: CredentialStore | None = None
    token_client: TokenClient | None = None
    browser: SystemBrowserLauncher | None = None
    _orchestrator: ConnectionOrchestrator | None = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        self._setup()

    @classmethod
    def from_config(cls, config_path: str | None = None, **overrides: Any) -> CloudStorage:
        """Create a CloudStorage instance from a config file or keyword arguments."""
        return cls(config=CloudLinkConfig.load(config_path, **overrides))

    def _setup(self) -> None:
        """Fill in any collaborators that were not injected."""
        if self.registry is None:
            self.registry = ProviderRegistry.from_config(self.config)
        if self.credentials is None:
            secrets = create_secret_store(self.config.storage.backend, self.config.storage.secret_dir)
            self.credentials = CredentialStore(secrets)
        if self.token_client is None:
            self.token_client = TokenClient(timeout=self.config.http.timeout)
        if self.browser is None:
            self.browser = WebBrowserLauncher()
        self._orchestrator = ConnectionOrchestrator(
            registry=self.registry,
            credentials=self.credentials,
            token_client=self.token_client,
            browser=self.browser,
            callback=self.config.callback,
        )
        logger.debug("CloudStorage initialized with %d providers", len(self.registry))

    @property
    def orchestrator(self) -> ConnectionOrchestrator:
        assert self._orchestrator is not None
        return self._orchestrator

    def providers(self) -> list[ProviderConfig]:
        """All known providers, configured or not."""
        assert self.registry is not None
        return self.registry.configs()

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def connect(self, provider: str, user_id: str) -> Credential:
        """Run the browser sign-in for ``provider`` and store the credential."""
        return await self.orchestrator.connect(provider, user_id)

    async def cancel(self, provider: str, user_id: str) -> bool:
        return await self.orchestrator.cancel(provider, user_id)

    def connection_state(self, provider: str, user_id: str) -> ConnectionState:
        return self.orchestrator.state(provider, user_id)

    async def disconnect(self, provider: str, user_id: str) -> None:
        """Forget every stored secret for ``provider`` and ``user_id``.

        A pending sign-in for the same pair is cancelled first.
        """
        assert self.registry is not None and self.credentials is not None
        self.registry.config(provider)
        await self.orchestrator.cancel(provider, user_id)
        self.credentials.clear_all(provider, user_id)
        logger.info("Disconnected %s for user %s", provider, user_id)

    def status(self, provider: str, user_id: str) -> TokenStatus:
        """What is stored for the pair, without exposing any secret."""
        assert self.registry is not None and self.credentials is not None
        self.registry.config(provider)
        credential = self.credentials.load_credential(provider, user_id)
        return TokenStatus(
            provider=provider,
            user_id=user_id,
            has_access_token=credential is not None,
            has_refresh_token=bool(credential and credential.refresh_token),
            expires_at=credential.expires_at if credential else None,
            pending=(
                self.orchestrator.is_pending(provider, user_id)
                or self.credentials.get(provider, CSRF_STATE, user_id) is not None
            ),
        )

    def purge_provider(self, provider: str) -> int:
        """Delete every stored secret for ``provider``, for all users."""
        assert self.registry is not None and self.credentials is not None
        self.registry.config(provider)
        return self.credentials.purge_provider(provider)

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    async def list_files(self, provider: str, user_id: str) -> list[FileMetadata]:
        """List supported documents (PDF, Word, text, Markdown) in the account.

        Raises:
            NotConnected: No access token is stored for the pair.
            AuthExpired: Access could not be restored by a refresh.
            TokenRefreshFailed: The refresh token was rejected.
            ProviderAPIError: Any other provider failure.
        """
        assert self.registry is not None
        api = self.registry.api(provider)
        files = await self._with_access_token(provider, user_id, api.list_files)
        supported = [f for f in files if is_supported_document(f)]
        logger.info(
            "Listed %d %s files for user %s (%d supported)",
            len(files), provider, user_id, len(supported),
        )
        return supported

    async def download_file(self, provider: str, user_id: str, file_id: str) -> bytes:
        """Download one file's content. Raises like :meth:`list_files`."""
        assert self.registry is not None
        api = self.registry.api(provider)
        data = await self._with_access_token(provider, user_id, lambda bearer: api.download(bearer, file_id))
        logger.info("Downloaded %d bytes from %s", len(data), provider)
        return data

    async def _with_access_token(
        self,
        provider: str,
        user_id: str,
        call: Callable[[str], Awaitable[T]],
    ) -> T:
        """Run ``call(bearer)``; on 401 refresh once and retry once."""
        assert self.credentials is not None
        access = self.credentials.get(provider, ACCESS, user_id)
        if not access:
            raise NotConnected(provider=provider, detail=f"no access token for {provider}/{user_id}")

        try:
            return await call(access)
        except AccessTokenExpired:
            logger.info("%s access token expired, refreshing", provider)

        access = await self._refresh(provider, user_id)
        try:
            return await call(access)
        except AccessTokenExpired as e:
            raise AuthExpired(provider=provider, detail="access token rejected after refresh") from e

    async def _refresh(self, provider: str, user_id: str) -> str:
        assert self.registry is not None and self.credentials is not None and self.token_client is not None
        refresh_token = self.credentials.get(provider, REFRESH, user_id)
        if not refresh_token:
            raise AuthExpired(provider=provider, detail="no refresh token stored")

        tokens = await self.token_client.refresh(self.registry.config(provider), refresh_token)
        self.credentials.save_credential(
            Credential(
                provider=provider,
                user_id=user_id,
                access_token=tokens.access_token,
                refresh_token=tokens.refresh_token,
                expires_at=tokens.expires_at_datetime,
            )
        )
        return tokens.access_token

    # ------------------------------------------------------------------

    async def close(self) -> None:
        """Close HTTP clients."""
        assert self.registry is not None and self.token_client is not None
        await self.token_client.close()
        await self.registry.close()

