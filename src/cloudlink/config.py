"""
cloudlink configuration management.

Supports loading from YAML files, environment variables, and keyword overrides.
Provider credentials are read once here and handed to a ProviderRegistry;
nothing else in the package reads the environment.
"""

from __future__ import annotations

import copy
import os
from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field


class ProviderKind(str, Enum):
    """Supported cloud storage providers."""

    GOOGLE_DRIVE = "google_drive"
    DROPBOX = "dropbox"
    ONEDRIVE = "onedrive"


class ProviderConfig(BaseModel):
    """OAuth settings for a single storage provider."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Provider identifier used in credential keys")
    kind: ProviderKind
    authorization_endpoint: str = Field(description="May contain a {tenant} placeholder")
    token_endpoint: str = Field(description="May contain a {tenant} placeholder")
    client_id: str = ""
    client_secret: str | None = None
    scopes: tuple[str, ...] = ()

    # Provider-specific extras
    offline_access: bool = Field(default=True, description="Ask for a refresh token")
    response_mode: str | None = None
    tenant: str | None = None

    @property
    def is_configured(self) -> bool:
        return bool(self.client_id)

    @property
    def authorization_url(self) -> str:
        """Authorization endpoint with the tenant segment filled in."""
        return self.authorization_endpoint.format(tenant=self.tenant or "common")

    @property
    def token_url(self) -> str:
        """Token endpoint with the tenant segment filled in."""
        return self.token_endpoint.format(tenant=self.tenant or "common")


# Built-in provider defaults. Client ids/secrets come from YAML or env vars.
_DEFAULT_PROVIDERS: dict[str, dict[str, Any]] = {
    "google_drive": {
        "kind": "google_drive",
        "authorization_endpoint": "https://accounts.google.com/o/oauth2/v2/auth",
        "token_endpoint": "https://oauth2.googleapis.com/token",
        "scopes": [
            "https://www.googleapis.com/auth/drive.readonly",
            "https://www.googleapis.com/auth/drive.file",
        ],
        "offline_access": True,
    },
    "dropbox": {
        "kind": "dropbox",
        "authorization_endpoint": "https://www.dropbox.com/oauth2/authorize",
        "token_endpoint": "https://api.dropboxapi.com/oauth2/token",
        "scopes": ["files.content.read", "files.metadata.read"],
        "offline_access": True,
    },
    "onedrive": {
        "kind": "onedrive",
        "authorization_endpoint": "https://login.microsoftonline.com/{tenant}/oauth2/v2.0/authorize",
        "token_endpoint": "https://login.microsoftonline.com/{tenant}/oauth2/v2.0/token",
        "scopes": ["Files.Read", "Files.Read.All", "offline_access"],
        "offline_access": True,
        "response_mode": "query",
        "tenant": "common",
    },
}


def default_providers() -> dict[str, ProviderConfig]:
    """Built-in providers without client credentials."""
    return {
        provider_id: ProviderConfig(id=provider_id, **entry)
        for provider_id, entry in _DEFAULT_PROVIDERS.items()
    }


class CallbackConfig(BaseModel):
    """Loopback listener settings."""

    host: str = Field(default="127.0.0.1")
    port: int = Field(default=54321, ge=0, le=65535, description="Must match the registered redirect URI")
    path: str = Field(default="/callback")
    timeout_seconds: float = Field(default=300.0, gt=0, description="Hard bound on a pending sign-in")


class StorageConfig(BaseModel):
    """Secret storage settings."""

    backend: str = Field(default="file", description="Secret backend: file or memory")
    secret_dir: str = Field(default=str(Path.home() / ".cloudlink" / "secrets"))


class HttpConfig(BaseModel):
    timeout: float = Field(default=30.0, gt=0, description="Request timeout in seconds")


class SecurityConfig(BaseModel):
    """Security and privacy settings."""

    redact_logs: bool = Field(default=True, description="Mask tokens and codes in log output")
    open_browser: bool = Field(default=True, description="Launch the system browser on connect")


class CloudLinkConfig(BaseModel):
    """Root configuration for cloudlink."""

    providers: dict[str, ProviderConfig] = Field(default_factory=default_providers)
    callback: CallbackConfig = Field(default_factory=CallbackConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    http: HttpConfig = Field(default_factory=HttpConfig)
    security: SecurityConfig = Field(default_factory=SecurityConfig)

    @classmethod
    def load(cls, config_path: str | None = None, **overrides: Any) -> CloudLinkConfig:
        """Load configuration from file, env vars, and overrides.

        Priority: overrides > env vars > config file > defaults.
        """
        data: dict[str, Any] = {}

        # 1. Load from YAML file if provided
        if config_path:
            path = Path(config_path)
            if path.exists():
                with open(path) as f:
                    data = yaml.safe_load(f) or {}

        # Provider entries in the file are merged over the built-in defaults
        providers = copy.deepcopy(_DEFAULT_PROVIDERS)
        for provider_id, entry in (data.get("providers") or {}).items():
            providers.setdefault(provider_id, {}).update(entry or {})

        # 2. Override from environment variables
        for provider_id, entry in providers.items():
            prefix = f"CLOUDLINK_{provider_id.upper()}"
            env_id = os.environ.get(f"{prefix}_CLIENT_ID")
            env_secret = os.environ.get(f"{prefix}_CLIENT_SECRET")
            env_tenant = os.environ.get(f"{prefix}_TENANT")
            if env_id:
                entry["client_id"] = env_id
            if env_secret:
                entry["client_secret"] = env_secret
            if env_tenant:
                entry["tenant"] = env_tenant
            entry["id"] = provider_id
        data["providers"] = providers

        env_port = os.environ.get("CLOUDLINK_CALLBACK_PORT")
        if env_port:
            callback = data.get("callback", {})
            callback["port"] = int(env_port)
            data["callback"] = callback

        env_dir = os.environ.get("CLOUDLINK_SECRET_DIR")
        env_backend = os.environ.get("CLOUDLINK_SECRET_BACKEND")
        if env_dir or env_backend:
            storage = data.get("storage", {})
            if env_dir:
                storage["secret_dir"] = env_dir
            if env_backend:
                storage["backend"] = env_backend
            data["storage"] = storage

        # 3. Apply keyword overrides
        data.update(overrides)

        return cls.model_validate(data)
