"""
Tests for logging setup.
"""
import json
import logging
import sys

import pytest

from leadflow.core.logging import ColoredFormatter, JSONFormatter, setup_logging
from tests.factories import make_settings


def _record(msg="Dispatched", level=logging.INFO, **extra):
    record = logging.LogRecord("leadflow.dispatch", level, __file__, 10, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:

    def test_context_keys_are_top_level(self):
        record = _record(channel="email", execution_id="e1", unrelated="x")

        data = json.loads(JSONFormatter().format(record))

        assert data["message"] == "Dispatched"
        assert data["level"] == "INFO"
        assert data["channel"] == "email"
        assert data["execution_id"] == "e1"
        assert "unrelated" not in data

    def test_exception_included(self):
        try:
            raise ValueError("boom")
        except ValueError:
            record = logging.LogRecord("x", logging.ERROR, __file__, 1, "failed", None, sys.exc_info())

        data = json.loads(JSONFormatter().format(record))

        assert "ValueError: boom" in data["exception"]


class TestColoredFormatter:

    def test_record_is_not_mutated(self):
        record = _record(level=logging.WARNING)

        output = ColoredFormatter(fmt="%(levelname)s %(message)s").format(record)

        assert "\033[33mWARNING" in output
        assert record.levelname == "WARNING"


class TestSetupLogging:

    @pytest.fixture(autouse=True)
    def _restore_root(self):
        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        yield
        root.handlers[:] = handlers
        root.setLevel(level)

    def test_production_uses_json(self):
        setup_logging(make_settings(ENVIRONMENT="production", LOG_LEVEL="warning"))

        root = logging.getLogger()
        assert isinstance(root.handlers[0].formatter, JSONFormatter)
        assert root.level == logging.WARNING
        assert logging.getLogger("httpx").level == logging.WARNING

    def test_development_uses_colours(self):
        setup_logging(make_settings(ENVIRONMENT="development", LOG_LEVEL="DEBUG"))

        root = logging.getLogger()
        assert isinstance(root.handlers[0].formatter, ColoredFormatter)
        assert root.level == logging.DEBUG
