"""
Unit tests for logging setup and structured (JSON) logging helpers.
"""

from __future__ import annotations

import json
import logging
from io import StringIO
from pathlib import Path
from unittest.mock import patch

from src.config import (
    LOGGER_NAME,
    LogRecord,
    JSONFormatter,
    setup_logging,
    setup_json_logging,
    configure_cli_logging,
    log_execution_time,
    log_metric,
    log_pipeline_step,
)


def _read_json_lines(path: Path) -> list[dict]:
    return [json.loads(line) for line in path.read_text().strip().split("\n")]


class TestSetupLogging:
    """Tests for setup_logging function."""

    def test_handlers_not_stacked(self):
        """Repeated calls keep a single handler."""
        logger = setup_logging(force=True)
        setup_logging()
        assert len(logger.handlers) == 1
        assert logger.name == LOGGER_NAME
        assert logger.propagate is False

    def test_force_changes_level(self):
        """force=True reconfigures the level."""
        logger = setup_logging(logging.DEBUG, force=True)
        assert logger.level == logging.DEBUG
        setup_logging(logging.INFO, force=True)

    def test_library_suppression(self):
        """Noisy libraries are raised to WARNING."""
        setup_logging(force=True)
        for name in ("mlflow", "alembic", "optuna", "matplotlib"):
            assert logging.getLogger(name).level == logging.WARNING


class TestLogRecord:
    """Tests for LogRecord dataclass."""

    def test_defaults(self):
        """Logger name defaults to the project logger."""
        record = LogRecord(timestamp="2026-10-19T12:00:00Z", level="INFO", message="grid search started")
        assert record.logger == LOGGER_NAME
        assert record.metrics == {}

    def test_to_json_drops_empty_fields(self):
        """None values and empty dicts are omitted."""
        record = LogRecord(timestamp="2026-10-19T12:00:00Z", level="INFO", message="x", module=None)
        parsed = json.loads(record.to_json())

        assert "module" not in parsed
        assert "metrics" not in parsed
        assert "context" not in parsed

    def test_to_json_keeps_values(self):
        """Populated fields survive serialization."""
        record = LogRecord(
            timestamp="2026-10-19T12:00:00Z",
            level="INFO",
            message="last fit",
            duration_ms=12.5,
            metrics={"roc_auc": 0.81},
        )
        parsed = json.loads(record.to_json())
        assert parsed["duration_ms"] == 12.5
        assert parsed["metrics"]["roc_auc"] == 0.81


class TestJSONFormatter:
    """Tests for JSONFormatter."""

    def _record(self, msg: str = "Test") -> logging.LogRecord:
        return logging.LogRecord(
            name=LOGGER_NAME, level=logging.INFO, pathname="tune.py", lineno=42,
            msg=msg, args=(), exc_info=None,
        )

    def test_valid_json(self):
        """Output is one JSON object with level, message and line."""
        parsed = json.loads(JSONFormatter().format(self._record("Split: train=180")))
        assert parsed["level"] == "INFO"
        assert parsed["message"] == "Split: train=180"
        assert parsed["line"] == 42

    def test_custom_fields(self):
        """duration_ms and metrics attributes are included."""
        record = self._record()
        record.duration_ms = 50.5
        record.metrics = {"n_candidates": 10}
        parsed = json.loads(JSONFormatter().format(record))

        assert parsed["duration_ms"] == 50.5
        assert parsed["metrics"]["n_candidates"] == 10

    def test_utc_timestamp(self):
        """Timestamp is ISO 8601 with a Z suffix."""
        parsed = json.loads(JSONFormatter().format(self._record()))
        assert parsed["timestamp"].endswith("Z")
        assert "T" in parsed["timestamp"]


class TestSetupJsonLogging:
    """Tests for setup_json_logging function."""

    def test_file_output(self, tmp_path: Path):
        """Messages are written as JSON lines."""
        log_file = tmp_path / "logs" / "run.jsonl"
        logger = setup_json_logging(log_file=log_file, console=False)
        logger.info("Credit data: 240 rows")

        assert _read_json_lines(log_file)[0]["message"] == "Credit data: 240 rows"

    def test_console_stream(self):
        """Console handler uses the JSON formatter."""
        logger = setup_json_logging(console=True)
        logger.handlers.clear()
        stream = StringIO()
        handler = logging.StreamHandler(stream)
        handler.setFormatter(JSONFormatter())
        logger.addHandler(handler)

        logger.info("Console test")
        assert json.loads(stream.getvalue().strip())["message"] == "Console test"

    def test_level_respected(self, tmp_path: Path):
        """Records below the configured level are dropped."""
        log_file = tmp_path / "run.jsonl"
        logger = setup_json_logging(level=logging.WARNING, log_file=log_file, console=False)
        logger.info("hidden")
        logger.warning("shown")

        lines = _read_json_lines(log_file)
        assert len(lines) == 1
        assert lines[0]["message"] == "shown"


class TestStructuredHelpers:
    """Tests for log_execution_time, log_metric and log_pipeline_step."""

    def test_execution_time(self, tmp_path: Path):
        """Duration, collected metrics and context are attached."""
        log_file = tmp_path / "run.jsonl"
        logger = setup_json_logging(log_file=log_file, console=False)

        with log_execution_time(logger, "grid_search", extra_context={"folds": 10}) as metrics:
            metrics["n_candidates"] = 10

        parsed = _read_json_lines(log_file)[0]
        assert parsed["duration_ms"] >= 0
        assert parsed["metrics"]["n_candidates"] == 10
        assert parsed["context"] == {"operation": "grid_search", "folds": 10}
        assert "grid_search" in parsed["message"]

    def test_execution_time_logged_on_error(self, tmp_path: Path):
        """Completion record is emitted even when the block raises."""
        log_file = tmp_path / "run.jsonl"
        logger = setup_json_logging(log_file=log_file, console=False)

        try:
            with log_execution_time(logger, "last_fit"):
                raise RuntimeError("boom")
        except RuntimeError:
            pass

        assert _read_json_lines(log_file)[0]["context"]["operation"] == "last_fit"

    def test_metric_with_step(self, tmp_path: Path):
        """Metric value and step are recorded."""
        log_file = tmp_path / "run.jsonl"
        logger = setup_json_logging(log_file=log_file, console=False)
        log_metric(logger, "roc_auc", 0.78, step=3, context={"config": "Config03"})

        parsed = _read_json_lines(log_file)[0]
        assert parsed["metrics"] == {"roc_auc": 0.78, "step": 3}
        assert parsed["context"]["config"] == "Config03"

    def test_pipeline_steps(self, tmp_path: Path):
        """Start and completion records carry step and status."""
        log_file = tmp_path / "run.jsonl"
        logger = setup_json_logging(log_file=log_file, console=False)

        log_pipeline_step(logger, "tune", "started")
        log_pipeline_step(logger, "tune", "failed", level=logging.ERROR)

        started, failed = _read_json_lines(log_file)
        assert started["context"] == {"step": "tune", "status": "started"}
        assert failed["level"] == "ERROR"

    def test_disabled_level_not_emitted(self, tmp_path: Path):
        """Helpers respect the logger level."""
        log_file = tmp_path / "run.jsonl"
        logger = setup_json_logging(level=logging.WARNING, log_file=log_file, console=False)
        log_metric(logger, "accuracy", 0.7)
        log_pipeline_step(logger, "clean", "completed", level=logging.WARNING)

        lines = _read_json_lines(log_file)
        assert len(lines) == 1
        assert lines[0]["context"]["step"] == "clean"


class TestConfigureCliLogging:
    """Tests for configure_cli_logging function."""

    def test_plain_by_default(self):
        """Without json_logs the console formatter is plain text."""
        setup_logging(force=True)
        logger = configure_cli_logging(verbose=True, json_logs=False, run_name="tune")
        assert not any(isinstance(h.formatter, JSONFormatter) for h in logger.handlers)

    def test_json_lines_file(self, tmp_path: Path):
        """json_logs writes JSON lines to <LOGS_DIR>/<run_name>.jsonl."""
        try:
            with patch("src.config.LOGS_DIR", tmp_path):
                logger = configure_cli_logging(verbose=False, json_logs=True, run_name="tune")
            log_metric(logger, "test_roc_auc", 0.8)

            parsed = _read_json_lines(tmp_path / "tune.jsonl")[0]
            assert parsed["metrics"] == {"test_roc_auc": 0.8}
            assert logger.level == logging.INFO
        finally:
            setup_logging(force=True)
