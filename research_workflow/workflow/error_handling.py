"""Error handling for the workflow engine.

This module defines the exceptions the orchestrator raises for sequencing
and contract violations, the exception processors use to signal a failed
external data source, and an ``ErrorContext`` helper that logs the duration
and failure of orchestrator operations.

Propagation rules:
- Input validation failures and external dependency failures never escape
  a step; they are reported as a failed ``StepOutcome``.
- Not-found and sequencing errors propagate to the caller as distinct types.
- Storage errors (``research_workflow.database.db.DatabaseError``) propagate
  unchanged.
- Cached or fallback market data is not an error: it is reported with
  ``report_degraded_data`` and surfaces as a warning on the step outcome.
"""

import logging
import time
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Iterable, Iterator, List, Optional

logger = logging.getLogger(__name__)


class WorkflowError(Exception):
    """Base exception for workflow-related errors."""

    def __init__(self, message: str, session_id: Optional[str] = None, **context):
        """Initialize workflow error with context.

        Args:
            message: Error message
            session_id: ID of the session where the error occurred
            **context: Additional context information
        """
        super().__init__(message)
        self.session_id = session_id
        self.context = context
        self.timestamp = time.time()

    def __str__(self):
        """String representation with session ID if available."""
        base = super().__str__()
        if self.session_id:
            return f"[{self.session_id}] {base}"
        return base


class InvalidStepError(WorkflowError):
    """Requested step is not the session's current step."""

    def __init__(
        self,
        step_number: int,
        current_step: int,
        session_id: Optional[str] = None,
        message: Optional[str] = None,
    ):
        """Initialize invalid step error.

        Args:
            step_number: Step the caller asked for
            current_step: Step the session is waiting on
            session_id: ID of the session
            message: Override for the default message
        """
        super().__init__(
            message
            or f"Cannot execute step {step_number}: current step is {current_step}",
            session_id,
            step_number=step_number,
            current_step=current_step,
        )
        self.step_number = step_number
        self.current_step = current_step


class StepNotOptionalError(WorkflowError):
    """Skip requested for a step that cannot be skipped right now."""

    def __init__(self, message: str, step_number: int, session_id: Optional[str] = None):
        """Initialize step-not-optional error.

        Args:
            message: Error message (always mentions "not optional")
            step_number: Step the caller tried to skip
            session_id: ID of the session
        """
        super().__init__(message, session_id, step_number=step_number)
        self.step_number = step_number


class UnregisteredStepError(WorkflowError):
    """No processor is registered for one or more step numbers."""

    def __init__(self, missing_steps: Iterable[int], session_id: Optional[str] = None):
        """Initialize unregistered step error.

        Args:
            missing_steps: Step numbers without a processor
            session_id: ID of the session, if any
        """
        missing = sorted(missing_steps)
        listed = ", ".join(str(step) for step in missing)
        super().__init__(
            f"No processor registered for step(s): {listed}",
            session_id,
            missing_steps=missing,
        )
        self.missing_steps = missing


class SessionConflictError(WorkflowError):
    """Session record changed underneath a writer (compare-and-swap failed)."""

    def __init__(
        self,
        session_id: str,
        expected_version: int,
        actual_version: Optional[int] = None,
    ):
        """Initialize session conflict error.

        Args:
            session_id: ID of the contested session
            expected_version: Version the writer based its update on
            actual_version: Version found in the store, if known
        """
        super().__init__(
            f"Session was modified concurrently (expected version {expected_version}, "
            f"found {actual_version})",
            session_id,
            expected_version=expected_version,
            actual_version=actual_version,
        )
        self.expected_version = expected_version
        self.actual_version = actual_version


class ExternalDependencyError(WorkflowError):
    """A market data source failed or is not configured."""

    def __init__(
        self,
        message: str,
        provider: str,
        status_code: Optional[int] = None,
        retryable: bool = False,
        **context,
    ):
        """Initialize external dependency error.

        Args:
            message: Error message
            provider: Name of the data source that failed
            status_code: HTTP status code if applicable
            retryable: Whether repeating the call may succeed
            **context: Additional context
        """
        super().__init__(message, None, **context)
        self.provider = provider
        self.status_code = status_code
        self.retryable = retryable


class ErrorContext:
    """Context manager for tracking error information during execution.

    Usage:
        with ErrorContext("execute_step", session_id="abc") as ctx:
            ctx.add_info("step_number", 3)
            ...
    """

    def __init__(self, operation: str, session_id: Optional[str] = None):
        """Initialize error context.

        Args:
            operation: Name of operation being performed
            session_id: ID of the session
        """
        self.operation = operation
        self.session_id = session_id
        self.info: dict[str, Any] = {}
        self.start_time = None

    def __enter__(self):
        """Enter context, recording start time."""
        self.start_time = time.time()
        logger.debug(f"Starting operation: {self.operation}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Exit context, logging duration and any errors."""
        duration = time.time() - self.start_time if self.start_time else 0

        if exc_type is None:
            logger.debug(f"Operation '{self.operation}' completed successfully in {duration:.2f}s")
        else:
            logger.warning(
                f"Operation '{self.operation}' failed after {duration:.2f}s: {exc_val}",
                extra={"session_id": self.session_id, "extra_fields": dict(self.info)},
            )

        # Don't suppress the exception
        return False

    def add_info(self, key: str, value: Any):
        """Add contextual information.

        Args:
            key: Information key
            value: Information value
        """
        self.info[key] = value


# Notices for the step running in the current task, if any
_degraded_data: ContextVar[Optional[List[str]]] = ContextVar("degraded_data", default=None)


def report_degraded_data(message: str) -> None:
    """Record that a data source answered with cached or fallback data.

    Outside ``collect_degraded_data`` the notice is only logged.
    """
    logger.warning(message)
    notices = _degraded_data.get()
    if notices is not None and message not in notices:
        notices.append(message)


@contextmanager
def collect_degraded_data() -> Iterator[List[str]]:
    """Collect the degraded-data notices reported inside the block."""
    notices: List[str] = []
    token = _degraded_data.set(notices)
    try:
        yield notices
    finally:
        _degraded_data.reset(token)


__all__ = [
    "WorkflowError",
    "InvalidStepError",
    "StepNotOptionalError",
    "UnregisteredStepError",
    "SessionConflictError",
    "ExternalDependencyError",
    "ErrorContext",
    "report_degraded_data",
    "collect_degraded_data",
]
