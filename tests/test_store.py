"""Tests for secret backends and the credential store."""

from __future__ import annotations

import stat
from datetime import datetime, timezone
from pathlib import Path

import pytest

from cloudlink.auth.store import (
    ACCESS,
    CSRF_STATE,
    PKCE_VERIFIER,
    REDIRECT_URI,
    REFRESH,
    CredentialStore,
    EncryptedFileSecretStore,
    MemorySecretStore,
    create_secret_store,
    make_key,
)
from cloudlink.errors import SecretStoreFailure
from cloudlink.models import Credential


class BrokenSecretStore(MemorySecretStore):
    """Fails every write, like a locked OS keychain."""

    def set(self, key: str, value: str) -> None:
        raise RuntimeError("keychain locked")


class FlakyDeleteStore(MemorySecretStore):
    """Fails deletes of one specific purpose."""

    def __init__(self, failing_purpose: str) -> None:
        super().__init__()
        self.failing_purpose = failing_purpose

    def delete(self, key: str) -> bool:
        if f":{self.failing_purpose}:" in key:
            raise OSError("delete failed")
        return super().delete(key)


# ---------------------------------------------------------------------------
# Backends
# ---------------------------------------------------------------------------


class TestEncryptedFileSecretStore:
    def test_round_trip(self, tmp_path: Path) -> None:
        store = EncryptedFileSecretStore(tmp_path)
        store.set("dropbox:access:alice", "token-value")
        assert store.get("dropbox:access:alice") == "token-value"
        assert store.get("dropbox:access:bob") is None

    def test_encrypted_at_rest(self, tmp_path: Path) -> None:
        store = EncryptedFileSecretStore(tmp_path)
        store.set("dropbox:access:alice", "token-value")

        files = list(tmp_path.glob("*.secret"))
        assert len(files) == 1
        raw = files[0].read_bytes()
        assert b"token-value" not in raw
        assert b"alice" not in raw
        assert "alice" not in files[0].name
        assert stat.S_IMODE(files[0].stat().st_mode) == 0o600

    def test_new_instance_reads_existing(self, tmp_path: Path) -> None:
        EncryptedFileSecretStore(tmp_path).set("k", "v")
        assert EncryptedFileSecretStore(tmp_path).get("k") == "v"

    def test_overwrite_and_delete(self, tmp_path: Path) -> None:
        store = EncryptedFileSecretStore(tmp_path)
        store.set("k", "one")
        store.set("k", "two")
        assert store.get("k") == "two"
        assert store.delete("k") is True
        assert store.delete("k") is False
        assert store.get("k") is None
        assert list(tmp_path.glob("*.tmp")) == []

    def test_keys(self, tmp_path: Path) -> None:
        store = EncryptedFileSecretStore(tmp_path)
        store.set("a:access:u", "1")
        store.set("b:refresh:u", "2")
        assert sorted(store.keys()) == ["a:access:u", "b:refresh:u"]

    def test_corrupted_file_raises(self, tmp_path: Path) -> None:
        store = EncryptedFileSecretStore(tmp_path)
        store.set("k", "v")
        next(tmp_path.glob("*.secret")).write_bytes(b"not a fernet token")

        with pytest.raises(SecretStoreFailure):
            store.get("k")
        # Unreadable files are skipped when enumerating
        assert store.keys() == []


def test_create_secret_store(tmp_path: Path) -> None:
    assert isinstance(create_secret_store("file", tmp_path), EncryptedFileSecretStore)
    assert isinstance(create_secret_store("memory", tmp_path), MemorySecretStore)
    with pytest.raises(ValueError):
        create_secret_store("keychain", tmp_path)


# ---------------------------------------------------------------------------
# CredentialStore
# ---------------------------------------------------------------------------


class TestCredentialStore:
    def test_key_format(self) -> None:
        assert make_key("onedrive", ACCESS, "u1") == "onedrive:access:u1"

    def test_save_and_load_credential(self) -> None:
        secrets = MemorySecretStore()
        store = CredentialStore(secrets)
        expires = datetime(2030, 1, 1, tzinfo=timezone.utc)
        store.save_credential(Credential(
            provider="dropbox", user_id="alice",
            access_token="at", refresh_token="rt", expires_at=expires,
        ))

        credential = store.load_credential("dropbox", "alice")
        assert credential is not None
        assert credential.access_token == "at"
        assert credential.refresh_token == "rt"
        assert credential.expires_at == expires
        assert store.load_credential("dropbox", "bob") is None

    def test_credential_repr_hides_tokens(self) -> None:
        credential = Credential(provider="p", user_id="u", access_token="secret-a", refresh_token="secret-r")
        assert "secret-a" not in repr(credential)
        assert "secret-r" not in repr(credential)

    def test_transients(self) -> None:
        secrets = MemorySecretStore()
        store = CredentialStore(secrets)
        store.save_transients("google_drive", "u1", verifier="v", state="s", redirect_uri="http://r")
        assert store.get("google_drive", PKCE_VERIFIER, "u1") == "v"
        assert store.get("google_drive", CSRF_STATE, "u1") == "s"
        assert store.get("google_drive", REDIRECT_URI, "u1") == "http://r"

        store.clear_transients("google_drive", "u1")
        assert secrets.keys() == []

    def test_clear_transients_attempts_every_key(self) -> None:
        secrets = FlakyDeleteStore(failing_purpose=PKCE_VERIFIER)
        store = CredentialStore(secrets)
        store.save_transients("p", "u", verifier="v", state="s", redirect_uri="r")

        with pytest.raises(SecretStoreFailure):
            store.clear_transients("p", "u")
        # The other two were still removed
        assert secrets.keys() == [make_key("p", PKCE_VERIFIER, "u")]

    def test_clear_all(self) -> None:
        secrets = MemorySecretStore()
        store = CredentialStore(secrets)
        store.save_credential(Credential(provider="p", user_id="u", access_token="a", refresh_token="r"))
        store.save_transients("p", "u", verifier="v", state="s", redirect_uri="r")
        store.set("p", ACCESS, "other-user", "keep")

        store.clear_all("p", "u")
        assert secrets.keys() == ["p:access:other-user"]

    def test_purge_provider(self) -> None:
        secrets = MemorySecretStore()
        store = CredentialStore(secrets)
        store.set("onedrive", ACCESS, "u1", "a")
        store.set("onedrive", REFRESH, "u2", "r")
        store.set("dropbox", ACCESS, "u1", "keep")

        assert store.purge_provider("onedrive") == 2
        assert secrets.keys() == ["dropbox:access:u1"]

    def test_backend_failure_is_secret_store_failure(self) -> None:
        store = CredentialStore(BrokenSecretStore())
        with pytest.raises(SecretStoreFailure):
            store.set("p", ACCESS, "u", "value")

    def test_file_backend(self, tmp_path: Path) -> None:
        store = CredentialStore(EncryptedFileSecretStore(tmp_path))
        store.save_credential(Credential(provider="dropbox", user_id="u", access_token="a"))
        assert store.load_credential("dropbox", "u").access_token == "a"
        store.clear_all("dropbox", "u")
        assert store.keys() == []
