"""
PKCE (RFC 7636) and CSRF state helpers.
"""

from __future__ import annotations

import base64
import hashlib
import secrets
from dataclasses import dataclass


@dataclass(frozen=True)
class PKCEPair:
    """A code_verifier / code_challenge pair for one authorization attempt."""

    verifier: str
    challenge: str
    method: str = "S256"

    def __repr__(self) -> str:
        return f"PKCEPair(challenge={self.challenge!r}, method={self.method!r})"


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def compute_challenge(verifier: str) -> str:
    """Return BASE64URL(SHA256(verifier)) without padding."""
    return _b64url(hashlib.sha256(verifier.encode("ascii")).digest())


def generate_pkce_pair() -> PKCEPair:
    """Generate a PKCE code_verifier and code_challenge pair.

    The verifier is 32 random bytes, base64url encoded (43 characters).
    """
    verifier = _b64url(secrets.token_bytes(32))
    return PKCEPair(verifier=verifier, challenge=compute_challenge(verifier))


def generate_state() -> str:
    """Generate an unguessable CSRF state token (16 random bytes, hex)."""
    return secrets.token_hex(16)
