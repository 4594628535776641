"""
Connection orchestrator: drives one interactive sign-in per (provider, user).

    IDLE -> PENDING -> EXCHANGING -> CONNECTED
                 \\            \\-> FAILED
                  \\-> FAILED | CANCELLED

``connect()`` generates a PKCE pair and CSRF state, starts the loopback
listener, persists the transient values, opens the consent page in the
system browser and waits for the redirect. The returned state is checked
against the persisted one before the code is exchanged. Whatever happens,
the listener is closed and the transient keys are removed before
``connect()`` returns or raises.

Only one attempt per (provider, user) may be pending; a second ``connect()``
is rejected with :class:`AuthorizationInProgress`.
"""

from __future__ import annotations

import asyncio
import hmac
import logging
from enum import Enum
from typing import TYPE_CHECKING

from cloudlink.auth.callback import CallbackListener
from cloudlink.auth.pkce import generate_pkce_pair, generate_state
from cloudlink.auth.store import CSRF_STATE, PKCE_VERIFIER, REDIRECT_URI, CredentialStore
from cloudlink.auth.tokens import TokenClient
from cloudlink.auth.urls import build_authorization_url
from cloudlink.config import CallbackConfig
from cloudlink.errors import (
    AuthError,
    AuthorizationCancelled,
    AuthorizationInProgress,
    ProviderNotConfigured,
    SecretStoreFailure,
    StateMismatch,
)
from cloudlink.models import Credential, PendingAuthorization

if TYPE_CHECKING:
    from cloudlink.browser import SystemBrowserLauncher
    from cloudlink.providers.registry import ProviderRegistry

logger = logging.getLogger("cloudlink.auth.flow")


class ConnectionState(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    EXCHANGING = "exchanging"
    CONNECTED = "connected"
    FAILED = "failed"
    CANCELLED = "cancelled"


class _Attempt:
    """Bookkeeping for one in-flight sign-in."""

    def __init__(self, listener: CallbackListener) -> None:
        self.listener = listener
        self.pending: PendingAuthorization | None = None
        self.cancelled = False


class ConnectionOrchestrator:
    """Runs the authorization-code + PKCE flow end to end.

    Usage::

        orchestrator = ConnectionOrchestrator(registry, credentials, TokenClient(), WebBrowserLauncher())
        credential = await orchestrator.connect("google_drive", "alice")
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        credentials: CredentialStore,
        token_client: TokenClient,
        browser: SystemBrowserLauncher,
        callback: CallbackConfig | None = None,
    ) -> None:
        self.registry = registry
        self.credentials = credentials
        self.token_client = token_client
        self.browser = browser
        self.callback = callback or CallbackConfig()
        self._attempts: dict[tuple[str, str], _Attempt] = {}
        self._states: dict[tuple[str, str], ConnectionState] = {}

    def state(self, provider: str, user_id: str) -> ConnectionState:
        return self._states.get((provider, user_id), ConnectionState.IDLE)

    def is_pending(self, provider: str, user_id: str) -> bool:
        return (provider, user_id) in self._attempts

    def pending(self, provider: str, user_id: str) -> PendingAuthorization | None:
        attempt = self._attempts.get((provider, user_id))
        return attempt.pending if attempt else None

    async def cancel(self, provider: str, user_id: str) -> bool:
        """Abort a pending sign-in. Returns False if none was pending."""
        attempt = self._attempts.get((provider, user_id))
        if attempt is None:
            return False
        attempt.cancelled = True
        logger.info("Cancelling %s sign-in for user %s", provider, user_id)
        await attempt.listener.close()
        return True

    async def connect(self, provider: str, user_id: str) -> Credential:
        """Run the interactive sign-in and persist the resulting credential.

        Raises:
            UnknownProvider / ProviderNotConfigured: Nothing to connect to.
            AuthorizationInProgress: A sign-in for this pair is already pending.
            ListenerBindFailure: The loopback port is taken.
            AuthorizationDenied, MissingAuthorizationCode, ListenerTimeout,
            AuthorizationCancelled, StateMismatch, TokenExchangeFailed,
            SecretStoreFailure: The attempt failed; nothing was persisted.
        """
        config = self.registry.config(provider)
        if not config.is_configured:
            raise ProviderNotConfigured(provider=provider, detail=f"no client id for {provider}")

        key = (provider, user_id)
        if key in self._attempts:
            raise AuthorizationInProgress(provider=provider)

        listener = CallbackListener(
            host=self.callback.host,
            port=self.callback.port,
            path=self.callback.path,
            timeout=self.callback.timeout_seconds,
        )
        attempt = _Attempt(listener)
        # Reserved before the first await so a concurrent call sees it
        self._attempts[key] = attempt
        self._states[key] = ConnectionState.PENDING

        try:
            credential = await self._run(provider, user_id, attempt)
        except BaseException as e:
            self._states[key] = (
                ConnectionState.CANCELLED
                if isinstance(e, (AuthorizationCancelled, asyncio.CancelledError))
                else ConnectionState.FAILED
            )
            if isinstance(e, AuthError):
                logger.warning(
                    "%s sign-in for user %s failed [%s]: %s",
                    provider, user_id, e.code, e.detail or e.message,
                )
            await self._finish(key, attempt, raise_errors=False)
            raise

        try:
            await self._finish(key, attempt, raise_errors=True)
        except SecretStoreFailure:
            self._states[key] = ConnectionState.FAILED
            raise
        self._states[key] = ConnectionState.CONNECTED
        logger.info("Connected %s for user %s", provider, user_id)
        return credential

    async def _run(self, provider: str, user_id: str, attempt: _Attempt) -> Credential:
        config = self.registry.config(provider)
        listener = attempt.listener
        key = (provider, user_id)

        await listener.start()

        pkce = generate_pkce_pair()
        attempt.pending = PendingAuthorization(
            provider=provider,
            user_id=user_id,
            verifier=pkce.verifier,
            state=generate_state(),
            redirect_uri=listener.redirect_uri,
        )
        self.credentials.save_transients(
            provider,
            user_id,
            verifier=attempt.pending.verifier,
            state=attempt.pending.state,
            redirect_uri=attempt.pending.redirect_uri,
        )

        auth_url = build_authorization_url(
            config, listener.redirect_uri, config.scopes, pkce.challenge, attempt.pending.state
        )
        logger.info("Opening %s consent page for user %s", provider, user_id)
        if not self.browser.open(auth_url):
            logger.warning("Browser did not open; visit the authorization URL manually: %s", auth_url)

        result = await listener.wait()

        expected = self.credentials.get(provider, CSRF_STATE, user_id)
        if expected is None or not hmac.compare_digest(result.state.encode(), expected.encode()):
            raise StateMismatch(provider=provider, detail="callback state does not match the issued state")

        verifier = self.credentials.get(provider, PKCE_VERIFIER, user_id)
        if verifier is None:
            raise SecretStoreFailure(provider=provider, detail="pkce verifier missing from store")
        redirect_uri = self.credentials.get(provider, REDIRECT_URI, user_id) or listener.redirect_uri

        self._states[key] = ConnectionState.EXCHANGING
        tokens = await self.token_client.exchange_code(config, result.code, verifier, redirect_uri)
        if attempt.cancelled:
            # Tokens issued after a cancel are dropped, never persisted
            raise AuthorizationCancelled(provider=provider, detail="sign-in cancelled during token exchange")

        credential = Credential(
            provider=provider,
            user_id=user_id,
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            expires_at=tokens.expires_at_datetime,
        )
        try:
            self.credentials.save_credential(credential)
        except SecretStoreFailure:
            # Leave no half-written credential behind
            try:
                self.credentials.delete_credential(provider, user_id)
            except SecretStoreFailure as cleanup:
                logger.error("Could not remove partial %s credential: %s", provider, cleanup.detail)
            raise
        return credential

    async def _finish(self, key: tuple[str, str], attempt: _Attempt, *, raise_errors: bool) -> None:
        """Release the port and clear transient keys for a finished attempt."""
        provider, user_id = key
        try:
            await attempt.listener.close()
        finally:
            self._attempts.pop(key, None)
            try:
                self.credentials.clear_transients(provider, user_id)
            except SecretStoreFailure as e:
                logger.error("Could not clear %s sign-in state for user %s: %s", provider, user_id, e.detail)
                if raise_errors:
                    raise
