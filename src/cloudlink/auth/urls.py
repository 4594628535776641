"""
Authorization URL construction.

Pure functions only: no network access, no state. Each provider kind adds
its own query parameters on top of the common PKCE authorization request.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from urllib.parse import urlencode

from cloudlink.config import ProviderConfig, ProviderKind


def _google_params(config: ProviderConfig) -> dict[str, str]:
    if not config.offline_access:
        return {}
    # consent prompt is what makes Google return a refresh token every time
    return {"access_type": "offline", "prompt": "consent"}


def _dropbox_params(config: ProviderConfig) -> dict[str, str]:
    if not config.offline_access:
        return {}
    return {"token_access_type": "offline"}


def _microsoft_params(config: ProviderConfig) -> dict[str, str]:
    return {"response_mode": config.response_mode or "query"}


_EXTRA_PARAMS: dict[ProviderKind, Callable[[ProviderConfig], dict[str, str]]] = {
    ProviderKind.GOOGLE_DRIVE: _google_params,
    ProviderKind.DROPBOX: _dropbox_params,
    ProviderKind.ONEDRIVE: _microsoft_params,
}


def build_authorization_url(
    config: ProviderConfig,
    redirect_uri: str,
    scopes: Sequence[str],
    challenge: str,
    state: str,
) -> str:
    """Build the browser-facing authorization URL.

    Args:
        config: Provider settings (endpoint, client id, extras).
        redirect_uri: Loopback URI the provider redirects to.
        scopes: Scopes to request; omitted from the URL when empty.
        challenge: PKCE code challenge (S256).
        state: CSRF state token.

    Returns:
        The full authorization URL.
    """
    params: dict[str, str] = {
        "client_id": config.client_id,
        "redirect_uri": redirect_uri,
        "response_type": "code",
    }
    if scopes:
        params["scope"] = " ".join(scopes)
    params["code_challenge"] = challenge
    params["code_challenge_method"] = "S256"
    params["state"] = state

    extra = _EXTRA_PARAMS.get(config.kind)
    if extra is not None:
        params.update(extra(config))

    return f"{config.authorization_url}?{urlencode(params)}"
