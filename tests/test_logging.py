"""Tests for logging configuration."""

import json
import logging
import sys

import pytest

from research_workflow.utils.config import reset_settings
from research_workflow.utils.logging_config import (
    JsonFormatter,
    StandardFormatter,
    get_logger,
    reset_logging,
    setup_logging,
)


def _stdout_handlers():
    return [
        h for h in logging.getLogger().handlers
        if isinstance(h, logging.StreamHandler) and h.stream == sys.stdout
    ]


class TestLoggingSetup:
    """Test logging setup and configuration."""

    def setup_method(self) -> None:
        """Reset state before each test."""
        reset_logging()
        reset_settings()

    def teardown_method(self) -> None:
        """Clean up after each test."""
        reset_logging()
        reset_settings()

    def test_setup_logging_configures_root_logger(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LOG_LEVEL", "INFO")

        setup_logging()

        assert logging.getLogger().level == logging.INFO
        assert len(_stdout_handlers()) == 1

    def test_setup_logging_prevents_duplicate_handlers(self) -> None:
        setup_logging()
        setup_logging()
        setup_logging()

        assert len(_stdout_handlers()) == 1

    def test_force_reconfigure_switches_formatter(self) -> None:
        setup_logging(use_json=False)
        assert isinstance(_stdout_handlers()[0].formatter, StandardFormatter)

        setup_logging(use_json=True, force_reconfigure=True)

        handlers = _stdout_handlers()
        assert len(handlers) == 1
        assert isinstance(handlers[0].formatter, JsonFormatter)

    def test_respects_log_level_setting(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LOG_LEVEL", "ERROR")

        setup_logging()

        assert logging.getLogger().level == logging.ERROR

    def test_get_logger_configures_lazily(self) -> None:
        logger = get_logger("research_workflow.test")

        assert logger.name == "research_workflow.test"
        assert len(_stdout_handlers()) == 1

    def test_log_format_setting_selects_json(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LOG_FORMAT", "json")

        setup_logging()

        assert isinstance(_stdout_handlers()[0].formatter, JsonFormatter)

    def test_quiets_http_client_loggers(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LOG_LEVEL", "DEBUG")

        setup_logging()

        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger("httpcore").level == logging.WARNING

    def test_audit_file_receives_json_lines(self, monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
        from research_workflow.workflow.audit import AuditLogger

        audit_file = tmp_path / "audit.jsonl"
        monkeypatch.setenv("AUDIT_LOG_FILE", str(audit_file))
        monkeypatch.setenv("LOG_LEVEL", "ERROR")

        setup_logging()
        AuditLogger().log_workflow_started("s-1", "user-1")
        reset_logging()

        [line] = audit_file.read_text(encoding="utf-8").splitlines()
        data = json.loads(line)
        assert data["name"] == "research_workflow.audit"
        assert data["session_id"] == "s-1"
        assert data["event_type"] == "workflow_started"
        assert data["event_id"].startswith("AE-")

    def test_reset_detaches_audit_file(self, monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
        monkeypatch.setenv("AUDIT_LOG_FILE", str(tmp_path / "audit.jsonl"))

        setup_logging()
        reset_logging()

        assert logging.getLogger("research_workflow.audit").handlers == []


class TestFormatters:
    """Test the log formatters."""

    def _record(self, **extra) -> logging.LogRecord:
        record = logging.LogRecord(
            name="research_workflow.workflow",
            level=logging.INFO,
            pathname=__file__,
            lineno=1,
            msg="Completed step %d",
            args=(3,),
            exc_info=None,
        )
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_json_formatter_output(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("APP_NAME", "json-app")
        reset_settings()

        data = json.loads(JsonFormatter().format(self._record()))

        assert data["message"] == "Completed step 3"
        assert data["level"] == "INFO"
        assert data["name"] == "research_workflow.workflow"
        assert data["app_name"] == "json-app"
        assert data["environment"] == "development"
        assert "timestamp" in data

    def test_json_formatter_includes_session_context(self) -> None:
        record = self._record(session_id="abc-123", extra_fields={"step_number": 3})

        data = json.loads(JsonFormatter().format(record))

        assert data["session_id"] == "abc-123"
        assert data["step_number"] == 3

    def test_json_formatter_includes_exception(self) -> None:
        try:
            raise ValueError("boom")
        except ValueError:
            record = self._record()
            record.exc_info = sys.exc_info()

        data = json.loads(JsonFormatter().format(record))

        assert "ValueError: boom" in data["exception"]

    def test_standard_formatter_output(self) -> None:
        output = StandardFormatter().format(self._record())

        assert "INFO - research_workflow.workflow - Completed step 3" in output
