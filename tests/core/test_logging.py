"""Tests for verdict.core.logging module."""

from __future__ import annotations

import json
import logging

from verdict.core.logging import (
    JSONFormatter,
    StandardFormatter,
    claim_context,
    configure_logging,
    get_claim_id,
    get_logger,
    get_tick_id,
    tick_context,
)


def _record(msg: str = "hello", level: int = logging.INFO, **extra) -> logging.LogRecord:
    record = logging.LogRecord("verdict.test", level, __file__, 10, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


# ============================================================================
# Context Tests
# ============================================================================


class TestContext:
    def test_defaults_none(self):
        assert get_tick_id() is None
        assert get_claim_id() is None

    def test_tick_context_generates_id(self):
        with tick_context() as tid:
            assert get_tick_id() == tid
            assert len(tid) == 36
        assert get_tick_id() is None

    def test_tick_context_reuses_id(self):
        with tick_context("tick-1") as tid:
            assert tid == "tick-1"

    def test_nested_claim_context(self):
        with tick_context("tick-1"), claim_context("claim-9"):
            assert get_tick_id() == "tick-1"
            assert get_claim_id() == "claim-9"
        assert get_claim_id() is None


# ============================================================================
# Formatter Tests
# ============================================================================


class TestJSONFormatter:
    def test_basic_fields(self):
        data = json.loads(JSONFormatter().format(_record()))
        assert data["level"] == "INFO"
        assert data["logger"] == "verdict.test"
        assert data["message"] == "hello"
        assert "tick_id" not in data
        assert "source" not in data

    def test_includes_context(self):
        with tick_context("tick-1"), claim_context("claim-9"):
            data = json.loads(JSONFormatter().format(_record()))
        assert data["tick_id"] == "tick-1"
        assert data["claim_id"] == "claim-9"

    def test_warning_includes_source(self):
        data = json.loads(JSONFormatter().format(_record(level=logging.WARNING)))
        assert data["source"]["line"] == 10

    def test_extra_data(self):
        data = json.loads(JSONFormatter().format(_record(extra_data={"kind": "transition"})))
        assert data["extra"] == {"kind": "transition"}


class TestStandardFormatter:
    def test_prefix_with_context(self):
        formatter = StandardFormatter(use_colors=False)
        with tick_context("abcdef0123456789"), claim_context("c1"):
            output = formatter.format(_record())
        assert "[abcdef01 claim=c1] hello" in output

    def test_no_prefix_without_context(self):
        output = StandardFormatter(use_colors=False).format(_record())
        assert output.endswith("INFO - hello")


# ============================================================================
# configure_logging Tests
# ============================================================================


class TestConfigureLogging:
    def test_json_format_from_env(self, clean_env, monkeypatch):
        monkeypatch.setenv("VERDICT_LOG_FORMAT", "json")
        configure_logging(level="DEBUG")
        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert isinstance(root.handlers[0].formatter, JSONFormatter)

    def test_text_format(self, clean_env):
        configure_logging(level="WARNING", json_format=False)
        root = logging.getLogger()
        assert root.level == logging.WARNING
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, StandardFormatter)

    def test_log_file_is_json(self, clean_env, tmp_path):
        path = tmp_path / "verdict.log"
        configure_logging(level="INFO", json_format=False, log_file=str(path))
        root = logging.getLogger()
        assert len(root.handlers) == 2
        assert isinstance(root.handlers[1].formatter, JSONFormatter)
        for handler in root.handlers[1:]:
            root.removeHandler(handler)
            handler.close()

    def test_quiets_http_libraries(self, clean_env):
        configure_logging(level="DEBUG", json_format=True)
        assert logging.getLogger("aiohttp").level == logging.WARNING

    def test_get_logger(self):
        assert get_logger("verdict.x").name == "verdict.x"
