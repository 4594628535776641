"""
Token endpoint client: authorization-code exchange and refresh.

Both grants go through one request path; per-provider differences (for
example OneDrive wanting ``scope`` re-submitted) live in a small
:class:`TokenStrategy` object rather than in duplicated code.

Authorization codes are single-use, so an exchange is never retried. A
refresh is only ever triggered by a caller that saw an expired token.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import httpx

from cloudlink.config import ProviderConfig, ProviderKind
from cloudlink.errors import TokenExchangeFailed, TokenRefreshFailed
from cloudlink.log import redact

logger = logging.getLogger("cloudlink.auth.tokens")

_STANDARD_FIELDS = {"access_token", "refresh_token", "token_type", "expires_in", "scope"}


def _parse_expires_in(value: Any) -> int | None:
    """Seconds until expiry, or None when the provider sent something unusable."""
    if value is None:
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        logger.warning("Ignoring malformed expires_in in token response: %r", value)
        return None


@dataclass
class TokenSet:
    """Tokens returned by a provider's token endpoint."""

    access_token: str = field(repr=False)
    refresh_token: str | None = field(default=None, repr=False)
    token_type: str = "Bearer"
    expires_in: int | None = None
    expires_at: float | None = None
    scope: str = ""
    extra: dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def expires_at_datetime(self) -> datetime | None:
        if self.expires_at is None:
            return None
        return datetime.fromtimestamp(self.expires_at, tz=timezone.utc)

    @classmethod
    def from_oauth_response(cls, data: dict[str, Any]) -> TokenSet:
        """Parse a standard OAuth2 token response."""
        expires_in = _parse_expires_in(data.get("expires_in"))
        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token") or None,
            token_type=data.get("token_type", "Bearer"),
            expires_in=expires_in,
            expires_at=time.time() + expires_in if expires_in is not None else None,
            scope=data.get("scope", ""),
            extra={k: v for k, v in data.items() if k not in _STANDARD_FIELDS},
        )


# ---------------------------------------------------------------------------
# Provider strategies
# ---------------------------------------------------------------------------


class TokenStrategy:
    """Builds token request bodies for a provider.

    ``client_secret`` is only sent when one is configured; desktop PKCE
    clients are usually public.
    """

    def base_params(self, config: ProviderConfig) -> dict[str, str]:
        params = {"client_id": config.client_id}
        if config.client_secret:
            params["client_secret"] = config.client_secret
        return params

    def exchange_params(
        self, config: ProviderConfig, code: str, verifier: str, redirect_uri: str
    ) -> dict[str, str]:
        return {
            "grant_type": "authorization_code",
            **self.base_params(config),
            "code": code,
            "redirect_uri": redirect_uri,
            "code_verifier": verifier,
        }

    def refresh_params(self, config: ProviderConfig, refresh_token: str) -> dict[str, str]:
        return {
            "grant_type": "refresh_token",
            **self.base_params(config),
            "refresh_token": refresh_token,
        }


class StandardTokenStrategy(TokenStrategy):
    """Plain RFC 6749 token requests."""


class ScopedTokenStrategy(StandardTokenStrategy):
    """Re-submits the configured scopes on every token request."""

    def exchange_params(
        self, config: ProviderConfig, code: str, verifier: str, redirect_uri: str
    ) -> dict[str, str]:
        params = super().exchange_params(config, code, verifier, redirect_uri)
        params["scope"] = " ".join(config.scopes)
        return params

    def refresh_params(self, config: ProviderConfig, refresh_token: str) -> dict[str, str]:
        params = super().refresh_params(config, refresh_token)
        params["scope"] = " ".join(config.scopes)
        return params


_STRATEGIES: dict[ProviderKind, TokenStrategy] = {
    ProviderKind.GOOGLE_DRIVE: StandardTokenStrategy(),
    ProviderKind.DROPBOX: StandardTokenStrategy(),
    ProviderKind.ONEDRIVE: ScopedTokenStrategy(),
}


def strategy_for(config: ProviderConfig) -> TokenStrategy:
    return _STRATEGIES.get(config.kind, StandardTokenStrategy())


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class TokenClient:
    """Converts authorization codes and refresh tokens into access tokens.

    Usage::

        client = TokenClient()
        tokens = await client.exchange_code(config, code, verifier, redirect_uri)
        ...
        tokens = await client.refresh(config, tokens.refresh_token)
        await client.close()
    """

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

    async def _post(self, config: ProviderConfig, payload: dict[str, str]) -> tuple[int, str, Any]:
        """POST a form-encoded token request; returns (status, raw body, parsed JSON or None)."""
        client = await self._get_client()
        resp = await client.post(
            config.token_url,
            data=payload,
            headers={"Accept": "application/json"},
        )
        try:
            body = resp.json()
        except ValueError:
            body = None
        return resp.status_code, resp.text, body

    async def exchange_code(
        self,
        config: ProviderConfig,
        code: str,
        verifier: str,
        redirect_uri: str,
    ) -> TokenSet:
        """Exchange an authorization code for tokens.

        Raises:
            TokenExchangeFailed: Non-2xx response, transport error, or no
                access token in the response.
        """
        payload = strategy_for(config).exchange_params(config, code, verifier, redirect_uri)

        logger.info("Exchanging authorization code with %s", config.id)
        try:
            status, text, body = await self._post(config, payload)
        except httpx.HTTPError as e:
            logger.error("Token exchange request to %s failed: %s", config.id, type(e).__name__)
            raise TokenExchangeFailed(provider=config.id, detail=f"transport error: {type(e).__name__}") from e

        if not 200 <= status < 300:
            logger.error("Token exchange failed for %s (HTTP %d): %s", config.id, status, redact(text))
            raise TokenExchangeFailed(provider=config.id, detail=redact(text), status_code=status)
        if not isinstance(body, dict) or not body.get("access_token"):
            logger.error("Token exchange response from %s had no access token", config.id)
            raise TokenExchangeFailed(provider=config.id, detail="response without access_token", status_code=status)

        tokens = TokenSet.from_oauth_response(body)
        logger.info(
            "Exchanged auth code for %s tokens (refresh token: %s, expires in: %s)",
            config.id,
            "yes" if tokens.refresh_token else "no",
            tokens.expires_in,
        )
        return tokens

    async def refresh(self, config: ProviderConfig, refresh_token: str) -> TokenSet:
        """Refresh the access token using the refresh token.

        The previous refresh token is kept when the provider does not
        rotate it.

        Raises:
            TokenRefreshFailed: The refresh token was rejected or the request
                failed; the user has to connect again.
        """
        payload = strategy_for(config).refresh_params(config, refresh_token)

        logger.debug("Refreshing %s access token", config.id)
        try:
            status, text, body = await self._post(config, payload)
        except httpx.HTTPError as e:
            logger.error("Token refresh request to %s failed: %s", config.id, type(e).__name__)
            raise TokenRefreshFailed(provider=config.id, detail=f"transport error: {type(e).__name__}") from e

        if not 200 <= status < 300:
            logger.error("Token refresh failed for %s (HTTP %d): %s", config.id, status, redact(text))
            raise TokenRefreshFailed(provider=config.id, detail=redact(text), status_code=status)
        if not isinstance(body, dict) or not body.get("access_token"):
            raise TokenRefreshFailed(provider=config.id, detail="response without access_token", status_code=status)

        tokens = TokenSet.from_oauth_response(body)
        if not tokens.refresh_token:
            tokens.refresh_token = refresh_token

        logger.info("Refreshed %s access token (expires in %s)", config.id, tokens.expires_in)
        return tokens
