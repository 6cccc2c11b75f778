"""Tests for structured logging configuration."""

import json
import logging

import structlog

from cli.logging_config import MAX_VALUE_CHARS, _truncate_long_values, setup_logging


class TestLoggingConfig:
    """Test structlog setup modes."""

    def test_console_mode(self, capsys):
        setup_logging(json_mode=False, level="DEBUG")
        structlog.get_logger().info("capsule_stored", capsule_id="s1-plan-abc")
        captured = capsys.readouterr()
        assert "capsule_stored" in captured.err
        assert captured.out == ""

    def test_json_mode(self, capsys):
        """JSON mode produces parseable JSON on stderr."""
        setup_logging(json_mode=True, level="INFO")
        structlog.get_logger().warning("backlink_failed", capsule_id="s1-plan-abc")
        line = capsys.readouterr().err.strip().splitlines()[-1]
        payload = json.loads(line)
        assert payload["event"] == "backlink_failed"
        assert payload["capsule_id"] == "s1-plan-abc"
        assert payload["level"] == "warning"

    def test_level_filtering(self):
        setup_logging(json_mode=False, level="WARNING")
        assert logging.getLogger().level == logging.WARNING

    def test_unknown_level_falls_back(self):
        setup_logging(level="chatty")
        assert logging.getLogger().level == logging.WARNING

    def test_single_handler(self):
        setup_logging()
        setup_logging()
        assert len(logging.getLogger().handlers) == 1


class TestTruncation:
    def test_long_values_truncated(self):
        event = {"event": "x" * 500, "rationale": "r" * 500, "count": 3}
        out = _truncate_long_values(None, None, event)
        assert out["event"] == "x" * 500
        assert out["rationale"] == "r" * MAX_VALUE_CHARS + "...[truncated]"
        assert out["count"] == 3

    def test_short_values_untouched(self):
        assert _truncate_long_values(None, None, {"reason": "ok"}) == {"reason": "ok"}
