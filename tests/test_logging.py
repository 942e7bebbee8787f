"""Unit tests for weather_relay/logging/logger.py."""

import json
import logging
import sys

from weather_relay.logging.logger import (
    JSONFormatter,
    _connection_id,
    connection_id_ctx,
    get_logger,
)


def _make_record(msg="test message", level=logging.INFO, name="weather_relay.test"):
    return logging.getLogger(name).makeRecord(
        name=name,
        level=level,
        fn="test.py",
        lno=1,
        msg=msg,
        args=(),
        exc_info=None,
    )


class TestJSONFormatter:
    """Tests for the JSONFormatter class."""

    def test_contains_required_fields(self):
        """Output should be JSON with timestamp, level, module, message."""
        record = _make_record(msg="hello world", name="weather_relay.streaming.scheduler")
        parsed = json.loads(JSONFormatter().format(record))
        assert "timestamp" in parsed
        assert parsed["level"] == "INFO"
        assert parsed["module"] == "weather_relay.streaming.scheduler"
        assert parsed["message"] == "hello world"

    def test_extra_context_fields(self):
        record = _make_record()
        record.location = "Paris"
        parsed = json.loads(JSONFormatter().format(record))
        assert parsed["location"] == "Paris"

    def test_connection_id_included_when_set(self):
        with connection_id_ctx("conn-42"):
            parsed = json.loads(JSONFormatter().format(_make_record()))
        assert parsed["connection_id"] == "conn-42"

    def test_connection_id_absent_when_not_set(self):
        _connection_id.set(None)
        parsed = json.loads(JSONFormatter().format(_make_record()))
        assert "connection_id" not in parsed

    def test_exception_info_included(self):
        try:
            raise ValueError("boom")
        except ValueError:
            record = _make_record()
            record.exc_info = sys.exc_info()
        parsed = json.loads(JSONFormatter().format(record))
        assert "ValueError" in parsed["exception"]


class TestConnectionID:
    """Tests for connection ID utilities."""

    def test_context_manager_generates_id(self):
        with connection_id_ctx() as cid:
            assert len(cid) == 16
            assert _connection_id.get() == cid

    def test_context_manager_sets_and_resets(self):
        _connection_id.set(None)
        with connection_id_ctx("ctx-123") as cid:
            assert cid == "ctx-123"
            assert _connection_id.get() == "ctx-123"
        assert _connection_id.get() is None


class TestGetLogger:
    """Tests for the get_logger factory."""

    def test_has_json_handler(self):
        logger = get_logger("test.json_handler_check")
        assert any(isinstance(h.formatter, JSONFormatter) for h in logger.handlers)

    def test_no_duplicate_handlers(self):
        name = "test.no_dup"
        logging.getLogger(name).handlers.clear()
        count1 = len(get_logger(name).handlers)
        count2 = len(get_logger(name).handlers)
        assert count1 == count2 == 1

    def test_propagate_is_false(self):
        assert get_logger("test.no_propagate").propagate is False

    def test_child_loggers_emit_json(self, capsys):
        """Module loggers under a configured root write through its handler."""
        root = "test.package_root"
        logging.getLogger(root).handlers.clear()
        get_logger(root)

        logging.getLogger(f"{root}.child").info("from child", extra={"location": "Oslo"})

        parsed = json.loads(capsys.readouterr().out.strip())
        assert parsed["message"] == "from child"
        assert parsed["module"] == f"{root}.child"
        assert parsed["location"] == "Oslo"
