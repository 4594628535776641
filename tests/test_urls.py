"""Tests for authorization URL construction."""

from urllib.parse import parse_qs, urlparse

from cloudlink.auth.urls import build_authorization_url
from cloudlink.config import CloudLinkConfig

REDIRECT = "http://127.0.0.1:54321/callback"


def _query(url: str) -> dict[str, str]:
    return {k: v[0] for k, v in parse_qs(urlparse(url).query).items()}


def _provider(provider_id: str, **updates):  # noqa: ANN202
    return CloudLinkConfig().providers[provider_id].model_copy(update={"client_id": "cid", **updates})


class TestAuthorizationURL:
    def test_common_parameters(self) -> None:
        config = _provider("dropbox")
        url = build_authorization_url(config, REDIRECT, config.scopes, "chal", "st4te")

        assert url.startswith("https://www.dropbox.com/oauth2/authorize?")
        q = _query(url)
        assert q["client_id"] == "cid"
        assert q["redirect_uri"] == REDIRECT
        assert q["response_type"] == "code"
        assert q["code_challenge"] == "chal"
        assert q["code_challenge_method"] == "S256"
        assert q["state"] == "st4te"
        assert q["scope"] == "files.content.read files.metadata.read"

    def test_google_requests_offline_access(self) -> None:
        config = _provider("google_drive")
        q = _query(build_authorization_url(config, REDIRECT, config.scopes, "c", "s"))
        assert q["access_type"] == "offline"
        assert q["prompt"] == "consent"

    def test_dropbox_requests_offline_token(self) -> None:
        config = _provider("dropbox")
        q = _query(build_authorization_url(config, REDIRECT, config.scopes, "c", "s"))
        assert q["token_access_type"] == "offline"

    def test_offline_access_disabled(self) -> None:
        config = _provider("google_drive", offline_access=False)
        q = _query(build_authorization_url(config, REDIRECT, config.scopes, "c", "s"))
        assert "access_type" not in q
        assert "prompt" not in q

    def test_onedrive_tenant_and_response_mode(self) -> None:
        config = _provider("onedrive", tenant="contoso")
        url = build_authorization_url(config, REDIRECT, config.scopes, "c", "s")
        assert url.startswith("https://login.microsoftonline.com/contoso/oauth2/v2.0/authorize?")
        q = _query(url)
        assert q["response_mode"] == "query"
        assert "offline_access" in q["scope"].split()

    def test_empty_scopes_omitted(self) -> None:
        config = _provider("dropbox")
        q = _query(build_authorization_url(config, REDIRECT, (), "c", "s"))
        assert "scope" not in q

    def test_deterministic(self) -> None:
        config = _provider("onedrive")
        first = build_authorization_url(config, REDIRECT, config.scopes, "c", "s")
        assert first == build_authorization_url(config, REDIRECT, config.scopes, "c", "s")
