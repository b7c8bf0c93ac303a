"""Tests for the observability module.

Tests for metrics collection, logging configuration, and error sanitization.
"""
import json
import logging
import time
from logging.handlers import RotatingFileHandler
from pathlib import Path
from unittest.mock import patch

import pytest

from notegraph_mcp.observability import (
    ROOT_LOGGER_NAME,
    MetricsCollector,
    _sanitize_error_message,
    configure_logging,
    timed_operation,
    traced,
)


class TestErrorMessageSanitization:
    """Tests for error message sanitization."""

    def test_sanitize_none_returns_none(self):
        assert _sanitize_error_message(None) is None

    def test_sanitize_removes_home_directory(self):
        """Home directory paths should be replaced with ~."""
        home = str(Path.home())
        result = _sanitize_error_message(f"{home}/notes/alpha.md: Permission denied")
        assert home not in result
        assert result.startswith("~")
        assert "notes/alpha.md" in result

    def test_sanitize_flattens_newlines_and_spaces(self):
        result = _sanitize_error_message("  Line 1\nLine 2\r   Line 3  ")
        assert result == "Line 1 Line 2 Line 3"

    def test_sanitize_truncates_long_messages(self):
        result = _sanitize_error_message("a" * 300)
        assert len(result) == 200
        assert result.endswith("...")

    def test_sanitize_custom_max_length(self):
        result = _sanitize_error_message("a" * 100, max_length=50)
        assert len(result) == 50


class TestMetricsCollector:
    """Tests for MetricsCollector class."""

    @pytest.fixture
    def metrics_file(self, tmp_path):
        return tmp_path / "metrics.json"

    @pytest.fixture
    def collector(self, metrics_file):
        return MetricsCollector(metrics_file=metrics_file, auto_save_interval=0)

    def test_record_operations(self, collector):
        collector.record_operation("reindex", 100.0, True)
        collector.record_operation("reindex", 300.0, False, "disk full")

        data = collector.get_metrics()["reindex"]
        assert data["count"] == 2
        assert data["success_count"] == 1
        assert data["error_count"] == 1
        assert data["avg_duration_ms"] == 200.0
        assert data["min_duration_ms"] == 100.0
        assert data["max_duration_ms"] == 300.0
        assert data["last_error"] == "disk full"

    def test_save_and_load_metrics(self, metrics_file):
        first = MetricsCollector(metrics_file=metrics_file, auto_save_interval=0)
        first.record_operation("import_notes", 10.0, True)
        assert first.save_metrics()

        data = json.loads(metrics_file.read_text())
        assert "import_notes" in data["operations"]
        assert not metrics_file.with_suffix(".tmp").exists()

        second = MetricsCollector(metrics_file=metrics_file, auto_save_interval=0)
        assert second.get_metrics()["import_notes"]["count"] == 1

    def test_auto_save_interval(self, metrics_file):
        collector = MetricsCollector(metrics_file=metrics_file, auto_save_interval=2)
        collector.record_operation("op", 1.0, True)
        assert not metrics_file.exists()
        collector.record_operation("op", 1.0, True)
        assert metrics_file.exists()

    def test_corrupt_metrics_file_is_ignored(self, metrics_file):
        metrics_file.write_text("{not json")
        collector = MetricsCollector(metrics_file=metrics_file, auto_save_interval=0)
        assert collector.get_metrics() == {}

    def test_summary_and_reset(self, collector):
        collector.record_operation("op1", 100.0, True)
        collector.record_operation("op2", 200.0, False, "Error")

        summary = collector.get_summary()
        assert summary["total_operations"] == 2
        assert summary["total_errors"] == 1
        assert set(summary["operations_tracked"]) == {"op1", "op2"}

        collector.reset()
        assert collector.get_metrics() == {}


class TestTimedOperation:
    """Tests for timed_operation and traced."""

    def test_records_success(self, tmp_path):
        collector = MetricsCollector(metrics_file=tmp_path / "m.json", auto_save_interval=0)
        with patch("notegraph_mcp.observability.metrics", collector):
            with timed_operation("get_graph") as op:
                time.sleep(0.01)
                op["nodes"] = 3

        data = collector.get_metrics()["get_graph"]
        assert data["success_count"] == 1
        assert data["avg_duration_ms"] >= 10

    def test_records_failure_and_reraises(self, tmp_path):
        collector = MetricsCollector(metrics_file=tmp_path / "m.json", auto_save_interval=0)
        with patch("notegraph_mcp.observability.metrics", collector):
            with pytest.raises(ValueError):
                with timed_operation("reindex"):
                    raise ValueError("Test error")

        assert "Test error" in collector.get_metrics()["reindex"]["last_error"]

    def test_traced_decorator(self, tmp_path):
        collector = MetricsCollector(metrics_file=tmp_path / "m.json", auto_save_interval=0)

        @traced("get_backlinks")
        def get_backlinks(title):
            return [title]

        with patch("notegraph_mcp.observability.metrics", collector):
            assert get_backlinks(title="Alpha") == ["Alpha"]

        assert collector.get_metrics()["get_backlinks"]["count"] == 1

    def test_traced_logs_context_arg_given_positionally(self, tmp_path, caplog):
        collector = MetricsCollector(metrics_file=tmp_path / "m.json", auto_save_interval=0)

        class Service:
            @traced("get_backlinks", context_arg="title")
            def get_backlinks(self, title):
                return [title, title]

        caplog.set_level(logging.DEBUG, logger="notegraph_mcp.observability")
        with patch("notegraph_mcp.observability.metrics", collector):
            Service().get_backlinks("Alpha")

        assert "START get_backlinks (title=Alpha)" in caplog.text
        assert "result_count=2" in caplog.text


class TestConfigureLogging:
    """Tests for configure_logging function."""

    @pytest.fixture(autouse=True)
    def _restore_handlers(self):
        root = logging.getLogger(ROOT_LOGGER_NAME)
        handlers, level = list(root.handlers), root.level
        yield
        for handler in root.handlers:
            if handler not in handlers:
                handler.close()
        root.handlers = handlers
        root.setLevel(level)

    def test_creates_directory_and_log_file(self, tmp_path):
        log_dir = tmp_path / "logs"

        result = configure_logging(log_dir=log_dir, console=False)

        assert result == log_dir
        assert (log_dir / "notegraph.log").exists()

    def test_sets_level(self, tmp_path):
        configure_logging(log_dir=tmp_path / "logs", level=logging.DEBUG, console=False)
        assert logging.getLogger(ROOT_LOGGER_NAME).level == logging.DEBUG

    def test_module_loggers_write_to_file(self, tmp_path):
        log_dir = tmp_path / "logs"
        configure_logging(log_dir=log_dir, console=False)

        logging.getLogger("notegraph_mcp.services.reindex_service").info("hello from reindex")
        for handler in logging.getLogger(ROOT_LOGGER_NAME).handlers:
            handler.flush()

        assert "hello from reindex" in (log_dir / "notegraph.log").read_text()

    def test_repeat_calls_keep_one_handler_per_file(self, tmp_path):
        log_dir = tmp_path / "logs"

        configure_logging(log_dir=log_dir, console=True)
        configure_logging(log_dir=log_dir, level=logging.DEBUG, console=True)

        handlers = logging.getLogger(ROOT_LOGGER_NAME).handlers
        file_handlers = [h for h in handlers if isinstance(h, RotatingFileHandler)]
        consoles = [h for h in handlers if type(h) is logging.StreamHandler]
        assert len(file_handlers) == 1
        assert file_handlers[0].level == logging.DEBUG
        assert len(consoles) <= 1
