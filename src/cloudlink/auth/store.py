"""
Credential store: secure key/value persistence for OAuth secrets.

Keys are compound strings ``{provider}:{purpose}:{user_id}``. Durable
purposes hold the connected credential; transient purposes hold the PKCE
verifier, CSRF state and redirect URI of an in-flight sign-in and must be
cleared on every exit path of that sign-in.

Two secret backends are provided:
- ``EncryptedFileSecretStore``: one Fernet-encrypted file per key, keyed
  from a per-install salt and the machine's host name.
- ``MemorySecretStore``: process-local, for ephemeral sessions.
"""

from __future__ import annotations

import base64
import hashlib
import json
import logging
import os
import socket
import tempfile
import threading
from datetime import datetime
from pathlib import Path
from typing import Protocol

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from cloudlink.errors import SecretStoreFailure
from cloudlink.models import Credential

logger = logging.getLogger("cloudlink.auth.store")

ACCESS = "access"
REFRESH = "refresh"
EXPIRES_AT = "expires-at"
PKCE_VERIFIER = "pkce-verifier"
CSRF_STATE = "csrf-state"
REDIRECT_URI = "redirect-uri"

DURABLE_PURPOSES = (ACCESS, REFRESH, EXPIRES_AT)
TRANSIENT_PURPOSES = (PKCE_VERIFIER, CSRF_STATE, REDIRECT_URI)

_KDF_ITERATIONS = 480000


def make_key(provider: str, purpose: str, user_id: str) -> str:
    return f"{provider}:{purpose}:{user_id}"


class SecretStore(Protocol):
    """Minimal key/value interface of an OS-style secret store."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> bool: ...

    def keys(self) -> list[str]: ...


# ---------------------------------------------------------------------------
# Backends
# ---------------------------------------------------------------------------


class MemorySecretStore:
    """Secrets held in process memory only."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._data.pop(key, None) is not None

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._data)


class EncryptedFileSecretStore:
    """Secrets encrypted at rest, one file per key.

    File names are a hash of the key so provider and user ids never appear
    on disk. Each file holds the encrypted ``{"key", "value"}`` pair; writes
    go to a temporary file that is atomically moved into place.
    """

    def __init__(self, directory: Path | str) -> None:
        self.directory = Path(directory)
        self._lock = threading.Lock()
        self._fernet: Fernet | None = None

    # -- encryption -----------------------------------------------------

    def _get_fernet(self) -> Fernet:
        """Derive the encryption key once from a stored salt and the host name."""
        if self._fernet is None:
            self.directory.mkdir(parents=True, exist_ok=True)
            salt_file = self.directory / ".key_salt"
            if salt_file.exists():
                salt = salt_file.read_bytes()
            else:
                salt = os.urandom(16)
                salt_file.write_bytes(salt)
                salt_file.chmod(0o600)

            password = socket.gethostname().encode() + b"cloudlink-v1"
            kdf = PBKDF2HMAC(
                algorithm=hashes.SHA256(),
                length=32,
                salt=salt,
                iterations=_KDF_ITERATIONS,
            )
            self._fernet = Fernet(base64.urlsafe_b64encode(kdf.derive(password)))
        return self._fernet

    def _path_for(self, key: str) -> Path:
        digest = hashlib.sha256(key.encode()).hexdigest()[:40]
        return self.directory / f"{digest}.secret"

    def _read(self, path: Path) -> tuple[str, str]:
        payload = self._get_fernet().decrypt(path.read_bytes())
        data = json.loads(payload)
        return data["key"], data["value"]

    # -- SecretStore ----------------------------------------------------

    def get(self, key: str) -> str | None:
        path = self._path_for(key)
        with self._lock:
            if not path.exists():
                return None
            try:
                stored_key, value = self._read(path)
            except (OSError, InvalidToken, ValueError, KeyError) as e:
                raise SecretStoreFailure(detail=f"cannot read secret file {path.name}: {type(e).__name__}") from e
        return value if stored_key == key else None

    def set(self, key: str, value: str) -> None:
        path = self._path_for(key)
        with self._lock:
            try:
                token = self._get_fernet().encrypt(json.dumps({"key": key, "value": value}).encode())
                fd, tmp = tempfile.mkstemp(dir=self.directory, suffix=".tmp")
                try:
                    with os.fdopen(fd, "wb") as f:
                        f.write(token)
                    os.chmod(tmp, 0o600)
                    os.replace(tmp, path)
                except BaseException:
                    Path(tmp).unlink(missing_ok=True)
                    raise
            except OSError as e:
                raise SecretStoreFailure(detail=f"cannot write secret file: {e.strerror}") from e

    def delete(self, key: str) -> bool:
        path = self._path_for(key)
        with self._lock:
            try:
                path.unlink()
            except FileNotFoundError:
                return False
            except OSError as e:
                raise SecretStoreFailure(detail=f"cannot delete secret file: {e.strerror}") from e
        return True

    def keys(self) -> list[str]:
        if not self.directory.exists():
            return []
        found: list[str] = []
        with self._lock:
            for path in sorted(self.directory.glob("*.secret")):
                try:
                    key, _ = self._read(path)
                except (OSError, InvalidToken, ValueError, KeyError):
                    logger.warning("Skipping unreadable secret file %s", path.name)
                    continue
                found.append(key)
        return found


def create_secret_store(backend: str, secret_dir: Path | str) -> SecretStore:
    """Instantiate a secret backend by name (``file`` or ``memory``)."""
    if backend == "file":
        return EncryptedFileSecretStore(secret_dir)
    if backend == "memory":
        return MemorySecretStore()
    raise ValueError(f"Unknown secret backend: {backend!r}")


# ---------------------------------------------------------------------------
# Credential store
# ---------------------------------------------------------------------------


class CredentialStore:
    """Typed access to OAuth secrets on top of a :class:`SecretStore`.

    Backend errors of any kind surface as :class:`SecretStoreFailure` so a
    token that cannot be persisted is never silently dropped.
    """

    def __init__(self, secrets: SecretStore) -> None:
        self._secrets = secrets

    def get(self, provider: str, purpose: str, user_id: str) -> str | None:
        return self._call("get", make_key(provider, purpose, user_id))

    def set(self, provider: str, purpose: str, user_id: str, value: str) -> None:
        self._call("set", make_key(provider, purpose, user_id), value)

    def delete(self, provider: str, purpose: str, user_id: str) -> bool:
        return bool(self._call("delete", make_key(provider, purpose, user_id)))

    def keys(self) -> list[str]:
        return list(self._call("keys"))

    def _call(self, op: str, *args: str):  # noqa: ANN202
        try:
            return getattr(self._secrets, op)(*args)
        except SecretStoreFailure:
            raise
        except Exception as e:
            raise SecretStoreFailure(detail=f"secret store {op} failed: {type(e).__name__}") from e

    # ------------------------------------------------------------------
    # Durable credential
    # ------------------------------------------------------------------

    def save_credential(self, credential: Credential) -> None:
        """Persist access/refresh tokens, replacing any previous values."""
        p, u = credential.provider, credential.user_id
        self.set(p, ACCESS, u, credential.access_token)
        if credential.refresh_token:
            self.set(p, REFRESH, u, credential.refresh_token)
        if credential.expires_at:
            self.set(p, EXPIRES_AT, u, credential.expires_at.isoformat())
        else:
            self.delete(p, EXPIRES_AT, u)
        logger.debug("Stored %s credential for user %s", p, u)

    def load_credential(self, provider: str, user_id: str) -> Credential | None:
        access = self.get(provider, ACCESS, user_id)
        if not access:
            return None
        expires_raw = self.get(provider, EXPIRES_AT, user_id)
        return Credential(
            provider=provider,
            user_id=user_id,
            access_token=access,
            refresh_token=self.get(provider, REFRESH, user_id),
            expires_at=datetime.fromisoformat(expires_raw) if expires_raw else None,
        )

    def delete_credential(self, provider: str, user_id: str) -> None:
        for purpose in DURABLE_PURPOSES:
            self.delete(provider, purpose, user_id)

    # ------------------------------------------------------------------
    # Transient sign-in state
    # ------------------------------------------------------------------

    def save_transients(
        self, provider: str, user_id: str, *, verifier: str, state: str, redirect_uri: str
    ) -> None:
        self.set(provider, PKCE_VERIFIER, user_id, verifier)
        self.set(provider, CSRF_STATE, user_id, state)
        self.set(provider, REDIRECT_URI, user_id, redirect_uri)

    def clear_transients(self, provider: str, user_id: str) -> None:
        """Delete verifier, state and redirect URI.

        Every purpose is attempted even if one delete fails; the first
        failure is raised afterwards.
        """
        failure: SecretStoreFailure | None = None
        for purpose in TRANSIENT_PURPOSES:
            try:
                self.delete(provider, purpose, user_id)
            except SecretStoreFailure as e:
                failure = failure or e
        if failure is not None:
            raise failure

    def clear_all(self, provider: str, user_id: str) -> None:
        self.delete_credential(provider, user_id)
        self.clear_transients(provider, user_id)

    def purge_provider(self, provider: str) -> int:
        """Delete every stored key for ``provider`` across all users."""
        prefix = f"{provider}:"
        removed = 0
        for key in self.keys():
            if key.startswith(prefix):
                if self._call("delete", key):
                    removed += 1
        logger.info("Purged %d stored %s secrets", removed, provider)
        return removed
