"""Logging setup with secret redaction.

Token values, authorization codes, PKCE verifiers and client secrets must
never reach a log sink in clear text. :class:`RedactingFilter` rewrites each
record's rendered message through :func:`redact` before any handler sees it.
"""

from __future__ import annotations

import logging
import re
import sys

_MASK = "***"

_SECRET_FIELDS = (
    "access_token",
    "refresh_token",
    "id_token",
    "code",
    "code_verifier",
    "client_secret",
    "state",
)
_FIELD_ALT = "|".join(_SECRET_FIELDS)

# "access_token": "value"  (JSON bodies)
_JSON_RE = re.compile(rf'("(?:{_FIELD_ALT})"\s*:\s*")([^"]*)(")')
# access_token=value  (form bodies, query strings)
_FORM_RE = re.compile(rf"(\b(?:{_FIELD_ALT})=)([^&\s\"']+)")
# Authorization: Bearer value
_BEARER_RE = re.compile(r"(\bBearer\s+)([A-Za-z0-9\-._~+/]+=*)", re.IGNORECASE)


def redact(text: str) -> str:
    """Mask secret values in JSON, form-encoded, query-string and header text."""
    if not text:
        return text
    text = _JSON_RE.sub(rf"\g<1>{_MASK}\g<3>", text)
    text = _FORM_RE.sub(rf"\g<1>{_MASK}", text)
    return _BEARER_RE.sub(rf"\g<1>{_MASK}", text)


class RedactingFilter(logging.Filter):
    """Redact secrets from the fully rendered log message."""

    def filter(self, record: logging.LogRecord) -> bool:
        try:
            message = record.getMessage()
        except (TypeError, ValueError):
            return True
        redacted = redact(message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


class PlainFormatter(logging.Formatter):
    def __init__(self) -> None:
        super().__init__(
            fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )


def configure_logging(level: int = logging.INFO, *, redact_secrets: bool = True) -> logging.Logger:
    """Configure the ``cloudlink`` logger hierarchy.

    Args:
        level: Log level for cloudlink loggers.
        redact_secrets: Install :class:`RedactingFilter` on the handler.

    Returns:
        The ``cloudlink`` package logger.
    """
    logger = logging.getLogger("cloudlink")
    logger.setLevel(level)
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(PlainFormatter())
    if redact_secrets:
        handler.addFilter(RedactingFilter())
    logger.addHandler(handler)
    logger.propagate = False

    # httpx logs full request URLs, which can carry codes
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    return logger
