"""OAuth 2.0 authorization-code + PKCE flow for desktop apps."""

from cloudlink.auth.callback import CallbackListener, CallbackResult
from cloudlink.auth.flow import ConnectionOrchestrator, ConnectionState
from cloudlink.auth.pkce import PKCEPair, compute_challenge, generate_pkce_pair, generate_state
from cloudlink.auth.store import (
    CredentialStore,
    EncryptedFileSecretStore,
    MemorySecretStore,
    SecretStore,
    create_secret_store,
)
from cloudlink.auth.tokens import TokenClient, TokenSet
from cloudlink.auth.urls import build_authorization_url

__all__ = [
    "CallbackListener",
    "CallbackResult",
    "ConnectionOrchestrator",
    "ConnectionState",
    "CredentialStore",
    "EncryptedFileSecretStore",
    "MemorySecretStore",
    "PKCEPair",
    "SecretStore",
    "TokenClient",
    "TokenSet",
    "build_authorization_url",
    "compute_challenge",
    "create_secret_store",
    "generate_pkce_pair",
    "generate_state",
]
