"""
Tests for logging infrastructure.
"""

import asyncio
import json
import logging
import logging.handlers
import sys

import pytest

from bluestack.core.config_manager import LoggingConfig
from bluestack.core.logging_config import (
    JSONFormatter,
    RequestIdFilter,
    TextFormatter,
    bind_request_id,
    log_with_context,
    request_id,
    reset_request_id,
    setup_logging,
)


@pytest.fixture(autouse=True)
def restore_root_logger():
    """Put the root logger back the way pytest configured it."""
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)
    logging.getLogger("bluestack.services.blob").setLevel(logging.NOTSET)


def _record(message: str = "blob uploaded", **context) -> logging.LogRecord:
    record = logging.LogRecord("bluestack.services.blob.api", logging.INFO, __file__, 1, message, None, None)
    if context:
        record.context = context
    RequestIdFilter().filter(record)
    return record


class TestLoggingSetup:
    """Test suite for logging setup."""

    def test_setup_logging_defaults(self):
        setup_logging(LoggingConfig())

        root_logger = logging.getLogger()
        assert root_logger.level == logging.INFO
        [handler] = root_logger.handlers
        assert isinstance(handler.formatter, JSONFormatter)
        assert any(isinstance(f, RequestIdFilter) for f in handler.filters)

    def test_setup_logging_text_format(self):
        setup_logging(LoggingConfig(level="debug", format="text"))

        root_logger = logging.getLogger()
        assert root_logger.level == logging.DEBUG
        assert isinstance(root_logger.handlers[0].formatter, TextFormatter)

    def test_setup_logging_with_file(self, tmp_path):
        log_file = tmp_path / "logs" / "bluestack.log"
        setup_logging(LoggingConfig(file=str(log_file), rotation_size="1MiB", rotation_count=2))

        handler = logging.getLogger().handlers[1]
        assert isinstance(handler, logging.handlers.RotatingFileHandler)
        assert handler.maxBytes == 1024 * 1024
        assert handler.backupCount == 2

        token = bind_request_id("req-file")
        try:
            log_with_context(logging.getLogger("bluestack.test"), logging.WARNING, "disk nearly full", free=3)
        finally:
            reset_request_id(token)
        handler.flush()

        entry = json.loads(log_file.read_text().strip().splitlines()[-1])
        assert entry["msg"] == "disk nearly full"
        assert entry["request_id"] == "req-file"
        assert entry["free"] == 3

    def test_module_levels(self):
        setup_logging(LoggingConfig(module_levels={"bluestack.services.blob": "debug"}))
        assert logging.getLogger("bluestack.services.blob").level == logging.DEBUG


class TestFormatters:
    """Test structured output."""

    def test_json_fields(self):
        entry = json.loads(JSONFormatter().format(_record(account="acct", container="c1", size=5)))

        assert entry["level"] == "INFO"
        assert entry["logger"] == "bluestack.services.blob.api"
        assert entry["msg"] == "blob uploaded"
        assert "time" in entry
        assert entry["account"] == "acct"
        assert entry["container"] == "c1"
        assert entry["size"] == 5
        assert "request_id" not in entry

    def test_json_context_cannot_replace_base_fields(self):
        entry = json.loads(JSONFormatter().format(_record(msg="other", level="x")))
        assert entry["msg"] == "blob uploaded"
        assert entry["level"] == "INFO"

    def test_json_exception(self):
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = logging.LogRecord("x", logging.ERROR, __file__, 1, "failed", None, sys.exc_info())
        entry = json.loads(JSONFormatter().format(record))
        assert "RuntimeError: boom" in entry["error"]

    def test_text_fields(self):
        token = bind_request_id("req-7")
        try:
            line = TextFormatter().format(_record(blob="f.txt"))
        finally:
            reset_request_id(token)
        assert line.endswith("bluestack.services.blob.api: blob uploaded blob=f.txt request_id=req-7")


class TestRequestId:
    """Test request ID binding."""

    def test_bind_and_reset(self):
        token = bind_request_id("req-123")
        assert _record().request_id == "req-123"

        reset_request_id(token)
        assert request_id.get() is None
        assert _record().request_id is None

    def test_nested_binding_restores_outer(self):
        outer = bind_request_id("outer")
        inner = bind_request_id("inner")
        reset_request_id(inner)
        assert request_id.get() == "outer"
        reset_request_id(outer)

    @pytest.mark.asyncio
    async def test_tasks_keep_their_own_id(self):
        """Test concurrent requests do not see each other's IDs."""
        async def serve(value):
            token = bind_request_id(value)
            try:
                await asyncio.sleep(0)
                return _record().request_id
            finally:
                reset_request_id(token)

        assert await asyncio.gather(serve("a"), serve("b")) == ["a", "b"]


class TestLogWithContext:
    """Test the structured logging helper."""

    def test_context_attached(self, caplog):
        logger = logging.getLogger("bluestack.test")
        with caplog.at_level(logging.INFO, logger="bluestack.test"):
            log_with_context(logger, logging.INFO, "container created", account="acct", container="c1")

        [record] = caplog.records
        assert record.getMessage() == "container created"
        assert record.context == {"account": "acct", "container": "c1"}

    def test_no_context(self, caplog):
        logger = logging.getLogger("bluestack.test")
        with caplog.at_level(logging.INFO, logger="bluestack.test"):
            log_with_context(logger, logging.INFO, "blob store reset")

        [record] = caplog.records
        assert not hasattr(record, "context")