"""Tests for log redaction."""

import logging

from cloudlink.log import RedactingFilter, configure_logging, redact


class TestRedact:
    def test_json_body(self) -> None:
        text = '{"access_token": "ya29.secret", "refresh_token": "1//rt", "expires_in": 3599}'
        out = redact(text)
        assert "ya29.secret" not in out
        assert "1//rt" not in out
        assert '"expires_in": 3599' in out

    def test_form_body(self) -> None:
        out = redact("grant_type=authorization_code&code=abc123&code_verifier=xyz&client_id=public")
        assert "abc123" not in out
        assert "xyz" not in out
        assert "client_id=public" in out

    def test_query_string(self) -> None:
        out = redact("GET /callback?code=4/0Ab&state=deadbeef HTTP/1.1")
        assert "4/0Ab" not in out
        assert "deadbeef" not in out

    def test_bearer_header(self) -> None:
        out = redact("Authorization: Bearer sl.ABCDEF")
        assert "sl.ABCDEF" not in out

    def test_plain_text_untouched(self) -> None:
        assert redact("Connected dropbox for user alice") == "Connected dropbox for user alice"


class _ListHandler(logging.Handler):
    def __init__(self) -> None:
        super().__init__()
        self.messages: list[str] = []

    def emit(self, record: logging.LogRecord) -> None:
        self.messages.append(record.getMessage())


class TestRedactingFilter:
    def test_filter_rewrites_args(self) -> None:
        logger = logging.getLogger("cloudlink.test.redaction")
        handler = _ListHandler()
        handler.addFilter(RedactingFilter())
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)
        try:
            logger.info("Token response: %s", '{"access_token": "leak-me"}')
        finally:
            logger.removeHandler(handler)

        assert len(handler.messages) == 1
        assert "leak-me" not in handler.messages[0]
        assert handler.messages[0].startswith("Token response")

    def test_configure_logging_idempotent(self) -> None:
        root = logging.getLogger("cloudlink")
        try:
            configure_logging(logging.DEBUG)
            configure_logging(logging.INFO)
            assert len(root.handlers) == 1
            assert root.level == logging.INFO
            assert isinstance(root.handlers[0].filters[0], RedactingFilter)
            assert logging.getLogger("httpx").level == logging.WARNING
        finally:
            root.handlers.clear()
            root.propagate = True
            root.setLevel(logging.NOTSET)
