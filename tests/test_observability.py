"""Tests for the observability module.

Tests for metrics collection, operation timing and logging configuration.
"""
import logging
import time
from logging.handlers import RotatingFileHandler
from unittest.mock import patch

import pytest

from enote.observability import (
    MetricsCollector,
    configure_logging,
    timed_operation,
)


class TestMetricsCollector:
    """Tests for MetricsCollector class."""

    @pytest.fixture
    def metrics_collector(self):
        return MetricsCollector()

    def test_record_successful_operation(self, metrics_collector):
        """Test recording a successful operation."""
        metrics_collector.record_operation("create_note", 100.0, True)

        metrics = metrics_collector.get_metrics()
        assert metrics["create_note"]["count"] == 1
        assert metrics["create_note"]["success_count"] == 1
        assert metrics["create_note"]["error_count"] == 0
        assert metrics["create_note"]["avg_duration_ms"] == 100.0
        assert metrics["create_note"]["last_error"] is None

    def test_record_failed_operation(self, metrics_collector):
        """Test recording a failed operation with error."""
        metrics_collector.record_operation("create_note", 50.0, False, "database is locked")

        metrics = metrics_collector.get_metrics()
        assert metrics["create_note"]["error_count"] == 1
        assert metrics["create_note"]["success_rate"] == 0
        assert metrics["create_note"]["last_error"] == "database is locked"
        assert metrics["create_note"]["last_error_time"] is not None

    def test_multiple_operations_aggregated(self, metrics_collector):
        metrics_collector.record_operation("search_page_notes", 100.0, True)
        metrics_collector.record_operation("search_page_notes", 200.0, True)
        metrics_collector.record_operation("search_page_notes", 300.0, False, "Error")

        metrics = metrics_collector.get_metrics()["search_page_notes"]
        assert metrics["count"] == 3
        assert metrics["avg_duration_ms"] == 200.0
        assert metrics["min_duration_ms"] == 100.0
        assert metrics["max_duration_ms"] == 300.0

    def test_get_summary(self, metrics_collector):
        """Test getting metrics summary."""
        metrics_collector.record_operation("op1", 100.0, True)
        metrics_collector.record_operation("op2", 200.0, False, "Error")

        summary = metrics_collector.get_summary()
        assert summary["total_operations"] == 2
        assert summary["total_success"] == 1
        assert summary["total_errors"] == 1
        assert summary["overall_success_rate"] == 0.5
        assert set(summary["operations_tracked"]) == {"op1", "op2"}
        assert summary["uptime_seconds"] >= 0

    def test_empty_summary(self, metrics_collector):
        summary = metrics_collector.get_summary()
        assert summary["total_operations"] == 0
        assert summary["overall_success_rate"] == 1.0

    def test_failure_without_message(self, metrics_collector):
        metrics_collector.record_operation("op", 1.0, False)
        assert metrics_collector.get_metrics()["op"]["last_error"] == "unknown error"


class TestTimedOperation:
    """Tests for timed_operation context manager."""

    @pytest.fixture
    def collector(self):
        collector = MetricsCollector()
        with patch("enote.observability.metrics", collector):
            yield collector

    def test_records_success(self, collector):
        """Test that successful operations are timed and recorded."""
        with timed_operation("find_all_tags") as op:
            time.sleep(0.01)
            op["count"] = 3

        metrics = collector.get_metrics()
        assert metrics["find_all_tags"]["success_count"] == 1
        assert metrics["find_all_tags"]["avg_duration_ms"] >= 10

    def test_records_raised_failure(self, collector):
        """Test that failed operations are recorded with error."""
        with pytest.raises(ValueError):
            with timed_operation("create_tag"):
                raise ValueError("Test error")

        metrics = collector.get_metrics()
        assert metrics["create_tag"]["error_count"] == 1
        assert metrics["create_tag"]["last_error"] == "Test error"

    def test_records_flagged_failure(self, collector):
        with timed_operation("update_note", id=4) as op:
            op["error"] = RuntimeError("swallowed")

        metrics = collector.get_metrics()
        assert metrics["update_note"]["error_count"] == 1
        assert metrics["update_note"]["last_error"] == "swallowed"

    def test_yields_correlation_id(self, collector):
        with timed_operation("note_stats") as op:
            assert len(op["correlation_id"]) == 8


class TestConfigureLogging:
    """Tests for configure_logging function."""

    @pytest.fixture(autouse=True)
    def restore_logger(self):
        package_logger = logging.getLogger("enote")
        handlers = list(package_logger.handlers)
        level = package_logger.level
        yield
        for handler in list(package_logger.handlers):
            if handler not in handlers:
                package_logger.removeHandler(handler)
                handler.close()
        package_logger.setLevel(level)

    def test_creates_directory_and_returns_it(self, tmp_path):
        log_dir = tmp_path / "logs"

        result = configure_logging(log_dir=log_dir, console=False)

        assert result == log_dir
        assert log_dir.is_dir()
        assert (log_dir / "enote.log").exists()

    def test_sets_level(self, tmp_path):
        configure_logging(log_dir=tmp_path, level=logging.DEBUG, console=False)
        assert logging.getLogger("enote").level == logging.DEBUG

    def test_module_loggers_write_to_file(self, tmp_path):
        configure_logging(log_dir=tmp_path, console=False)

        logging.getLogger("enote.storage.note_repository").info("note written")
        for handler in logging.getLogger("enote").handlers:
            handler.flush()

        assert "note written" in (tmp_path / "enote.log").read_text(encoding="utf-8")

    def test_reconfiguring_replaces_file_handler(self, tmp_path):
        configure_logging(log_dir=tmp_path / "a", console=False)
        configure_logging(log_dir=tmp_path / "b", console=False)

        file_handlers = [
            h for h in logging.getLogger("enote").handlers
            if isinstance(h, RotatingFileHandler)
        ]
        assert len(file_handlers) == 1
        assert file_handlers[0].baseFilename.endswith(str(tmp_path / "b" / "enote.log"))
