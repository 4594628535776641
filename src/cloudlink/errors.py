"""
Error taxonomy for cloudlink.

Every failure surfaced to callers is an :class:`AuthError` subclass with a
stable ``code`` for programmatic handling and a short ``message`` that is
safe to show in a UI. Provider error bodies and other internal context go
into ``detail``, which is only ever logged (redacted), never returned by
``str()``.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base error for the OAuth token lifecycle."""

    code: str = "auth.error"
    default_message: str = "Authentication failed."

    def __init__(
        self,
        message: str | None = None,
        *,
        provider: str | None = None,
        detail: str | None = None,
    ) -> None:
        self.message = message or self.default_message
        self.provider = provider
        self.detail = detail
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message


class AuthorizationDenied(AuthError):
    """The user or the provider declined consent."""

    code = "auth.denied"
    default_message = "Access was not granted by the provider."


class StateMismatch(AuthError):
    """The callback state did not match the one this process issued."""

    code = "auth.state_mismatch"
    default_message = "Sign-in response could not be verified. Please try again."


class MissingAuthorizationCode(AuthError):
    code = "auth.missing_code"
    default_message = "missing authorization code"


class TokenExchangeFailed(AuthError):
    """The token endpoint rejected the authorization code."""

    code = "auth.exchange_failed"
    default_message = "The provider rejected the sign-in. Please try connecting again."

    def __init__(
        self,
        message: str | None = None,
        *,
        provider: str | None = None,
        detail: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message, provider=provider, detail=detail)
        self.status_code = status_code


class TokenRefreshFailed(AuthError):
    """The refresh token is invalid or expired; the user must reconnect."""

    code = "auth.refresh_failed"
    default_message = "Your session has expired. Please reconnect."

    def __init__(
        self,
        message: str | None = None,
        *,
        provider: str | None = None,
        detail: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message, provider=provider, detail=detail)
        self.status_code = status_code


class ListenerTimeout(AuthError):
    code = "auth.listener_timeout"
    default_message = "Sign-in timed out. Please try again."


class ListenerBindFailure(AuthError):
    code = "auth.listener_bind_failed"
    default_message = "Could not start the local sign-in listener. Is another sign-in running?"


class SecretStoreFailure(AuthError):
    code = "auth.secret_store_failed"
    default_message = "Secure credential storage is unavailable."


class AuthorizationInProgress(AuthError):
    code = "auth.in_progress"
    default_message = "authorization already in progress"


class AuthorizationCancelled(AuthError):
    code = "auth.cancelled"
    default_message = "Sign-in was cancelled."


class NotConnected(AuthError):
    code = "auth.not_connected"
    default_message = "not connected"


class AuthExpired(AuthError):
    """Access could not be restored by a refresh; run the connect flow again."""

    code = "auth.expired"
    default_message = "Authentication expired. Please reconnect."


class UnknownProvider(AuthError):
    code = "auth.unknown_provider"
    default_message = "Unknown storage provider."


class ProviderNotConfigured(AuthError):
    code = "auth.provider_not_configured"
    default_message = "This storage provider is not configured (missing client id)."


class ProviderAPIError(AuthError):
    """A provider API call failed for a reason other than token expiry."""

    code = "provider.api_error"
    default_message = "The storage provider returned an error."

    def __init__(
        self,
        message: str | None = None,
        *,
        provider: str | None = None,
        detail: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message, provider=provider, detail=detail)
        self.status_code = status_code


class AccessTokenExpired(Exception):
    """Raised by provider APIs on HTTP 401; handled by the storage facade."""

    def __init__(self, provider: str) -> None:
        super().__init__(f"{provider} access token rejected")
        self.provider = provider
