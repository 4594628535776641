"""
Domain models: stored credentials, pending sign-ins, and file metadata.
"""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Credential(BaseModel):
    """Durable OAuth credential for one (provider, user) pair."""

    provider: str
    user_id: str
    access_token: str = Field(repr=False)
    refresh_token: str | None = Field(default=None, repr=False)
    expires_at: datetime | None = None


class PendingAuthorization(BaseModel):
    """A sign-in attempt between ``connect()`` and callback resolution."""

    provider: str
    user_id: str
    verifier: str = Field(repr=False)
    state: str = Field(repr=False)
    redirect_uri: str
    created_at: datetime = Field(default_factory=_utcnow)


class FileMetadata(BaseModel):
    """A document available in a connected cloud account."""

    id: str
    name: str
    mime_type: str = "application/octet-stream"
    size: int = 0
    modified_time: str | None = None
    source: str = Field(description="Provider id the file came from")


class TokenStatus(BaseModel):
    """What is stored for a (provider, user) pair, without the secrets."""

    provider: str
    user_id: str
    has_access_token: bool = False
    has_refresh_token: bool = False
    expires_at: datetime | None = None
    pending: bool = False

    @property
    def connected(self) -> bool:
        return self.has_access_token
