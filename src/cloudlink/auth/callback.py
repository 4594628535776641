"""
Loopback callback listener.

A short-lived HTTP listener bound to 127.0.0.1 that captures the provider's
redirect after the user signs in through the system browser::

    async with CallbackListener(port=54321) as listener:
        auth_url = build_authorization_url(..., listener.redirect_uri, ...)
        webbrowser.open(auth_url)
        result = await listener.wait()   # CallbackResult(code, state)

The listener settles exactly once. The first well-formed ``/callback``
request decides the outcome; any later request is answered with a generic
page and has no effect. Responses are flushed before the listener is torn
down, and the port is always released (success, failure, timeout or
explicit close).
"""

from __future__ import annotations

import asyncio
import contextlib
import html
import logging
from dataclasses import dataclass
from typing import Any
from urllib.parse import parse_qs, urlparse

from cloudlink.errors import (
    AuthorizationCancelled,
    AuthorizationDenied,
    ListenerBindFailure,
    ListenerTimeout,
    MissingAuthorizationCode,
)

logger = logging.getLogger("cloudlink.auth.callback")

DEFAULT_PORT = 54321
DEFAULT_TIMEOUT = 300.0  # 5 minutes

_MAX_REQUEST_BYTES = 16 * 1024
_REQUEST_READ_TIMEOUT = 10.0
_HANDLER_DRAIN_TIMEOUT = 5.0

_REASONS = {
    200: "OK",
    400: "Bad Request",
    404: "Not Found",
    405: "Method Not Allowed",
}


@dataclass(frozen=True)
class CallbackResult:
    """Authorization code and state captured from the redirect."""

    code: str
    state: str

    def __repr__(self) -> str:
        return "CallbackResult(code=***, state=***)"


# ---------------------------------------------------------------------------
# Settlement guard
# ---------------------------------------------------------------------------


def _consume_exception(future: asyncio.Future) -> None:
    # An outcome nobody awaited (listener closed without wait()) is not an error.
    if not future.cancelled():
        future.exception()


class _Settlement:
    """Single-assignment outcome of one listener.

    The first ``resolve``/``reject`` wins and returns True; every later call
    is a no-op returning False.
    """

    def __init__(self) -> None:
        self._future: asyncio.Future[CallbackResult] = asyncio.get_running_loop().create_future()
        self._future.add_done_callback(_consume_exception)

    @property
    def settled(self) -> bool:
        return self._future.done()

    def resolve(self, result: CallbackResult) -> bool:
        if self._future.done():
            return False
        self._future.set_result(result)
        return True

    def reject(self, error: BaseException) -> bool:
        if self._future.done():
            return False
        self._future.set_exception(error)
        return True

    def outcome(self) -> asyncio.Future[CallbackResult]:
        return asyncio.shield(self._future)


# ---------------------------------------------------------------------------
# HTML pages
# ---------------------------------------------------------------------------


def _render_page(title: str, heading: str, message: str, *, accent: str, background: str) -> str:
    return f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <title>{html.escape(title)}</title>
    <style>
        body {{ font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', sans-serif;
               display: flex; justify-content: center; align-items: center;
               height: 100vh; margin: 0; background: {background}; }}
        .card {{ background: white; padding: 40px; border-radius: 12px;
                box-shadow: 0 4px 6px rgba(0,0,0,0.1); text-align: center; }}
        h1 {{ color: {accent}; margin-bottom: 10px; }}
        p {{ color: #666; }}
    </style>
</head>
<body>
    <div class="card">
        <h1>{html.escape(heading)}</h1>
        <p>{html.escape(message)}</p>
        <p>You can close this window and return to the app.</p>
    </div>
</body>
</html>
"""


def _success_page() -> str:
    return _render_page(
        "Connected", "Connected!", "Your account was linked successfully.",
        accent="#16a34a", background="#f0fdf4",
    )


def _error_page(message: str) -> str:
    return _render_page(
        "Connection Failed", "Connection Failed", message,
        accent="#dc2626", background="#fef2f2",
    )


def _done_page() -> str:
    return _render_page(
        "Sign-in", "Sign-in already completed", "This sign-in request has already been handled.",
        accent="#334155", background="#f8fafc",
    )


def _http_response(status: int, body: str) -> bytes:
    payload = body.encode("utf-8")
    head = (
        f"HTTP/1.1 {status} {_REASONS[status]}\r\n"
        "Content-Type: text/html; charset=utf-8\r\n"
        f"Content-Length: {len(payload)}\r\n"
        "Cache-Control: no-store\r\n"
        "Connection: close\r\n"
        "\r\n"
    )
    return head.encode("ascii") + payload


def _first(params: dict[str, list[str]], name: str) -> str | None:
    values = params.get(name)
    return values[0] if values else None


# ---------------------------------------------------------------------------
# Listener
# ---------------------------------------------------------------------------


class CallbackListener:
    """Single-use loopback HTTP listener for the OAuth redirect."""

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = DEFAULT_PORT,
        path: str = "/callback",
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.host = host
        self.port = port
        self.path = path
        self.timeout = timeout
        self._server: asyncio.AbstractServer | None = None
        self._settlement: _Settlement | None = None
        self._handlers: set[asyncio.Task[Any]] = set()
        self._closed = False

    @property
    def redirect_uri(self) -> str:
        return f"http://{self.host}:{self.port}{self.path}"

    @property
    def is_serving(self) -> bool:
        return self._server is not None and self._server.is_serving()

    @property
    def settled(self) -> bool:
        return self._settlement is not None and self._settlement.settled

    async def __aenter__(self) -> CallbackListener:
        await self.start()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def start(self) -> None:
        """Bind the listener.

        Raises:
            ListenerBindFailure: If the port is unavailable.
        """
        if self._closed:
            raise AuthorizationCancelled(detail="listener closed before it started")
        if self._settlement is not None:
            raise RuntimeError("CallbackListener is single-use")
        self._settlement = _Settlement()
        try:
            self._server = await asyncio.start_server(
                self._handle_connection, self.host, self.port, limit=_MAX_REQUEST_BYTES
            )
        except OSError as e:
            self._settlement.reject(AuthorizationCancelled(detail="listener failed to bind"))
            raise ListenerBindFailure(detail=f"bind {self.host}:{self.port} failed: {e.strerror or e}") from e

        # Port 0 asks the OS for a free port
        self.port = self._server.sockets[0].getsockname()[1]
        logger.info("OAuth callback listener started on %s", self.redirect_uri)

    async def wait(self) -> CallbackResult:
        """Wait for the redirect, then close the listener.

        Raises:
            AuthorizationDenied: The provider redirected with ``error``.
            MissingAuthorizationCode: The redirect carried neither code nor error.
            ListenerTimeout: Nothing arrived within ``timeout`` seconds.
            AuthorizationCancelled: The listener was closed while waiting.
        """
        if self._settlement is None:
            raise RuntimeError("CallbackListener.start() was not called")
        settlement = self._settlement
        try:
            try:
                return await asyncio.wait_for(settlement.outcome(), timeout=self.timeout)
            except asyncio.TimeoutError:
                settlement.reject(ListenerTimeout(detail=f"no callback within {self.timeout:g}s"))
                # A callback may have won the race; whichever settled first is the outcome.
                return await settlement.outcome()
        finally:
            await self.close()

    async def close(self) -> None:
        """Settle as cancelled if still pending, flush in-flight responses, release the port."""
        self._closed = True
        if self._settlement is not None:
            self._settlement.reject(AuthorizationCancelled(detail="listener closed before a callback arrived"))
        if self._server is None:
            return

        server, self._server = self._server, None
        server.close()
        if self._handlers:
            _, pending = await asyncio.wait(set(self._handlers), timeout=_HANDLER_DRAIN_TIMEOUT)
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
        await server.wait_closed()
        logger.info("OAuth callback listener on port %d stopped", self.port)

    # ------------------------------------------------------------------
    # Request handling
    # ------------------------------------------------------------------

    async def _handle_connection(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        task = asyncio.current_task()
        if task is not None:
            self._handlers.add(task)
        try:
            try:
                head = await asyncio.wait_for(reader.readuntil(b"\r\n\r\n"), timeout=_REQUEST_READ_TIMEOUT)
            except (asyncio.IncompleteReadError, asyncio.LimitOverrunError, asyncio.TimeoutError) as e:
                logger.debug("Dropping unreadable callback connection: %s", type(e).__name__)
                return
            status, body = self._dispatch(head)
            writer.write(_http_response(status, body))
            await writer.drain()
        except ConnectionError:
            logger.debug("Browser closed the callback connection early")
        finally:
            writer.close()
            with contextlib.suppress(ConnectionError):
                await writer.wait_closed()
            if task is not None:
                self._handlers.discard(task)

    def _dispatch(self, head: bytes) -> tuple[int, str]:
        """Route one request and settle the listener if it is the callback.

        Runs without awaiting, so two concurrent requests can never both
        observe an unsettled listener.
        """
        assert self._settlement is not None
        request_line = head.split(b"\r\n", 1)[0].decode("latin-1")
        parts = request_line.split(" ")
        if len(parts) != 3:
            return 400, _error_page("Malformed request.")
        method, target, _ = parts

        parsed = urlparse(target)
        if parsed.path != self.path:
            return 404, _error_page("Not found.")
        if method != "GET":
            return 405, _error_page("Method not allowed.")

        if self._settlement.settled:
            logger.info("Ignoring repeated OAuth callback request")
            return 200, _done_page()

        params = parse_qs(parsed.query)
        code = _first(params, "code")
        state = _first(params, "state")
        error = _first(params, "error")

        if error:
            description = _first(params, "error_description") or error
            self._settlement.reject(AuthorizationDenied(detail=f"{error}: {description}"))
            logger.warning("Provider redirected with error: %s", error)
            return 400, _error_page(description)

        if code and state:
            self._settlement.resolve(CallbackResult(code=code, state=state))
            logger.info("OAuth callback received")
            return 200, _success_page()

        missing = "code" if not code else "state"
        self._settlement.reject(MissingAuthorizationCode(detail=f"callback without {missing}"))
        logger.warning("OAuth callback without %s", missing)
        return 400, _error_page("Missing authorization code.")
