"""Logging for the workflow engine.

Console output goes to stdout in a text or JSON layout (``LOG_FORMAT``).
The orchestrator, processors and the audit trail attach a ``session_id`` and
optional ``extra_fields`` to their records; the JSON layout lifts both to
top-level keys. When ``AUDIT_LOG_FILE`` is set, the ``research_workflow.audit``
stream is also written there as JSON lines.
"""

import json
import logging
import sys
from typing import Any, Optional

from research_workflow.utils.config import get_settings

AUDIT_LOGGER = "research_workflow.audit"

# Third-party loggers that are chatty at INFO
_QUIET_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine")

_configured = False


class JsonFormatter(logging.Formatter):
    """One JSON object per record, tagged with app name and environment."""

    def format(self, record: logging.LogRecord) -> str:
        settings = get_settings()
        payload: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
            "app_name": settings.APP_NAME,
            "environment": settings.ENVIRONMENT,
        }

        session_id = getattr(record, "session_id", None)
        if session_id is not None:
            payload["session_id"] = session_id
        payload.update(getattr(record, "extra_fields", None) or {})

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class StandardFormatter(logging.Formatter):
    """``[time] LEVEL - logger - message`` lines."""

    def __init__(self) -> None:
        super().__init__(
            fmt="[%(asctime)s] %(levelname)s - %(name)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )


def _is_console_handler(handler: logging.Handler) -> bool:
    # Handlers installed by others (pytest's caplog, say) are left alone
    return isinstance(handler, logging.StreamHandler) and getattr(handler, "stream", None) is sys.stdout


def _attach_audit_file(path: str) -> None:
    audit = logging.getLogger(AUDIT_LOGGER)
    _drop_handlers(audit)
    file_handler = logging.FileHandler(path, encoding="utf-8")
    file_handler.setLevel(logging.INFO)
    file_handler.setFormatter(JsonFormatter())
    audit.addHandler(file_handler)
    audit.setLevel(logging.INFO)


def _drop_handlers(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


def setup_logging(use_json: Optional[bool] = None, force_reconfigure: bool = False) -> None:
    """
    Install the stdout handler on the root logger.

    Calling it again is a no-op unless ``force_reconfigure`` is set.

    Args:
        use_json: JSON layout if True, text if False; None follows LOG_FORMAT
        force_reconfigure: Replace an existing configuration
    """
    global _configured
    if _configured and not force_reconfigure:
        return

    settings = get_settings()
    level = getattr(logging, settings.LOG_LEVEL)
    if use_json is None:
        use_json = settings.LOG_FORMAT == "json"

    root = logging.getLogger()
    for handler in [h for h in root.handlers if _is_console_handler(h)]:
        root.removeHandler(handler)

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(level)
    console.setFormatter(JsonFormatter() if use_json else StandardFormatter())
    root.addHandler(console)
    root.setLevel(level)

    for name in _QUIET_LOGGERS:
        # DEBUG turns on SQL echo
        if name == "sqlalchemy.engine" and settings.DEBUG:
            continue
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    if settings.AUDIT_LOG_FILE:
        _attach_audit_file(settings.AUDIT_LOG_FILE)

    _configured = True
    logging.getLogger(__name__).debug(
        f"Logging configured: level={settings.LOG_LEVEL}, "
        f"format={'json' if use_json else 'standard'}"
    )


def get_logger(name: str) -> logging.Logger:
    """Logger for ``name``, configuring logging on first use."""
    if not _configured:
        setup_logging()
    return logging.getLogger(name)


def reset_logging() -> None:
    """Drop every handler and forget the configuration (for tests)."""
    global _configured

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(logging.WARNING)

    audit = logging.getLogger(AUDIT_LOGGER)
    _drop_handlers(audit)
    audit.setLevel(logging.NOTSET)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.NOTSET)

    _configured = False
