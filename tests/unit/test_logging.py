"""
Tests for log configuration and structured output.
"""

import io
import json
import logging
import sys

import pytest

from redis_pool import configure_logging
from redis_pool.logging import LIBRARY_LOGGER, JSONFormatter, PoolNameFilter, TraceContextFilter


@pytest.fixture
def library_logger():
    logger = logging.getLogger(LIBRARY_LOGGER)
    yield logger
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)
    logger.propagate = True


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="redis_pool.pool",
        level=logging.WARNING,
        pathname=__file__,
        lineno=10,
        msg="Removing %s",
        args=("worker",),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:
    """Test structured log output."""

    def test_fields(self):
        output = json.loads(JSONFormatter().format(_record(pool_name="cache", attempt=2)))

        assert output["level"] == "WARNING"
        assert output["pool"] == "cache"
        assert output["logger"] == "redis_pool.pool"
        assert output["message"] == "Removing worker"
        assert output["attempt"] == 2

    def test_trace_context(self):
        record = _record()
        TraceContextFilter().filter(record)

        output = json.loads(JSONFormatter().format(record))

        assert output["trace_id"] == "0" * 32
        assert output["span_id"] == "0" * 16

    def test_trace_context_disabled(self):
        record = _record(trace_id="a" * 32, span_id="b" * 16)

        output = json.loads(JSONFormatter(include_trace=False).format(record))

        assert "trace_id" not in output

    def test_exception_info(self):
        try:
            raise ValueError("bad reply")
        except ValueError:
            record = _record()
            record.exc_info = sys.exc_info()

        output = json.loads(JSONFormatter().format(record))

        assert output["exception"]["type"] == "ValueError"
        assert output["exception"]["message"] == "bad reply"


class TestPoolNameFilter:
    """Test default pool names on records."""

    def test_keeps_explicit_pool_name(self):
        record = _record(pool_name="cache")
        PoolNameFilter("default").filter(record)
        assert record.pool_name == "cache"

    def test_sets_default(self):
        record = _record()
        PoolNameFilter("default").filter(record)
        assert record.pool_name == "default"


class TestConfigureLogging:
    """Test attaching handlers to the library logger."""

    def test_plain_text(self, library_logger):
        stream = io.StringIO()
        configure_logging(level="debug", pool_name="cache", enable_trace_context=False, stream=stream)

        logging.getLogger("redis_pool.pool").debug("Created worker")

        line = stream.getvalue()
        assert "DEBUG" in line
        assert "[cache]" in line
        assert "Created worker" in line
        assert library_logger.level == logging.DEBUG

    def test_json(self, library_logger):
        stream = io.StringIO()
        configure_logging(json_format=True, stream=stream)

        logging.getLogger("redis_pool.executor").info("Retrying", extra={"pool_name": "sessions"})

        output = json.loads(stream.getvalue())
        assert output["pool"] == "sessions"
        assert output["message"] == "Retrying"
        assert len(output["trace_id"]) == 32

    def test_level_filtering(self, library_logger):
        stream = io.StringIO()
        configure_logging(level="WARNING", stream=stream)

        logging.getLogger("redis_pool.pool").info("Started")

        assert stream.getvalue() == ""

    def test_reconfigure_replaces_handler(self, library_logger):
        configure_logging(stream=io.StringIO())
        configure_logging(stream=io.StringIO())

        assert len(library_logger.handlers) == 1
