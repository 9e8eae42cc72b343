"""Audit trail of workflow activity.

Records workflow and step lifecycle events and market data source access in
a bounded in-process buffer that can be queried by session, type, time range
and outcome. Every event is also written to the ``research_workflow.audit``
logger, so a JSON log handler doubles as a durable audit sink.

Usage:
    audit = AuditLogger()
    orchestrator = WorkflowOrchestrator(store, processors, audit=audit)
    ...
    audit.get_events_by_session(session_id)
    audit.get_data_source_stats()
"""

import itertools
import logging
import threading
import time
from collections import deque
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from research_workflow.workflow.state import utc_now

logger = logging.getLogger("research_workflow.audit")

DEFAULT_MAX_EVENTS = 10_000


class AuditEventType(str, Enum):
    WORKFLOW_STARTED = "workflow_started"
    WORKFLOW_COMPLETED = "workflow_completed"
    STEP_COMPLETED = "step_completed"
    STEP_FAILED = "step_failed"
    STEP_SKIPPED = "step_skipped"
    STATE_CHANGE = "state_change"
    DATA_SOURCE_ACCESS = "data_source_access"
    DATA_SOURCE_ERROR = "data_source_error"


class AuditEvent(BaseModel):
    """One recorded event.

    Attributes:
        event_id: ``AE-<epoch ms>-<sequence>``
        duration_ms: Elapsed time for completions and data source calls
        metadata: Event-specific details (warning count, skip reason, ...)
    """

    event_id: str
    event_type: AuditEventType
    timestamp: datetime = Field(default_factory=utc_now)
    session_id: Optional[str] = None
    user_id: Optional[str] = None
    step_number: Optional[int] = None
    step_name: Optional[str] = None
    data_source: Optional[str] = None
    operation: Optional[str] = None
    success: bool = True
    duration_ms: Optional[float] = None
    error_message: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class AuditLogger:
    """Thread-safe recorder of audit events, oldest dropped first when full."""

    def __init__(self, max_events: int = DEFAULT_MAX_EVENTS):
        if max_events < 1:
            raise ValueError("max_events must be at least 1")
        self._events: deque[AuditEvent] = deque(maxlen=max_events)
        self._sequence = itertools.count(1)
        self._lock = threading.Lock()

    def log_workflow_started(self, session_id: str, user_id: str) -> AuditEvent:
        return self._record(AuditEventType.WORKFLOW_STARTED, session_id=session_id, user_id=user_id)

    def log_workflow_completed(self, session_id: str, user_id: str, duration_ms: float) -> AuditEvent:
        return self._record(
            AuditEventType.WORKFLOW_COMPLETED,
            session_id=session_id,
            user_id=user_id,
            duration_ms=duration_ms,
        )

    def log_step_completed(
        self,
        session_id: str,
        step_number: int,
        step_name: str,
        duration_ms: float,
        warnings: Optional[List[str]] = None,
    ) -> AuditEvent:
        return self._record(
            AuditEventType.STEP_COMPLETED,
            session_id=session_id,
            step_number=step_number,
            step_name=step_name,
            duration_ms=duration_ms,
            metadata={"warnings": list(warnings or [])},
        )

    def log_step_failed(
        self, session_id: str, step_number: int, step_name: str, error_message: str
    ) -> AuditEvent:
        return self._record(
            AuditEventType.STEP_FAILED,
            session_id=session_id,
            step_number=step_number,
            step_name=step_name,
            success=False,
            error_message=error_message,
        )

    def log_step_skipped(
        self, session_id: str, step_number: int, step_name: str, reason: str
    ) -> AuditEvent:
        return self._record(
            AuditEventType.STEP_SKIPPED,
            session_id=session_id,
            step_number=step_number,
            step_name=step_name,
            metadata={"reason": reason},
        )

    def log_state_change(
        self, session_id: str, operation: str, success: bool = True, **metadata: Any
    ) -> AuditEvent:
        return self._record(
            AuditEventType.STATE_CHANGE,
            session_id=session_id,
            operation=operation,
            success=success,
            metadata=metadata,
        )

    def log_data_source_access(
        self, data_source: str, operation: str, duration_ms: float, **metadata: Any
    ) -> AuditEvent:
        return self._record(
            AuditEventType.DATA_SOURCE_ACCESS,
            data_source=data_source,
            operation=operation,
            duration_ms=duration_ms,
            metadata=metadata,
        )

    def log_data_source_error(
        self, data_source: str, operation: str, error_message: str, **metadata: Any
    ) -> AuditEvent:
        return self._record(
            AuditEventType.DATA_SOURCE_ERROR,
            data_source=data_source,
            operation=operation,
            success=False,
            error_message=error_message,
            metadata=metadata,
        )

    def get_events(self) -> List[AuditEvent]:
        with self._lock:
            return list(self._events)

    def get_events_by_session(self, session_id: str) -> List[AuditEvent]:
        return [event for event in self.get_events() if event.session_id == session_id]

    def get_events_by_type(self, event_type: AuditEventType) -> List[AuditEvent]:
        return [event for event in self.get_events() if event.event_type == event_type]

    def get_events_by_date_range(self, start: datetime, end: datetime) -> List[AuditEvent]:
        return [event for event in self.get_events() if start <= event.timestamp <= end]

    def get_failed_events(self) -> List[AuditEvent]:
        return [event for event in self.get_events() if not event.success]

    def get_data_source_stats(self) -> Dict[str, Dict[str, int]]:
        """Per-source counts of successful and failed calls."""
        stats: Dict[str, Dict[str, int]] = {}
        for event in self.get_events():
            if event.event_type not in (
                AuditEventType.DATA_SOURCE_ACCESS,
                AuditEventType.DATA_SOURCE_ERROR,
            ) or not event.data_source:
                continue
            entry = stats.setdefault(event.data_source, {"total": 0, "successful": 0, "failed": 0})
            entry["total"] += 1
            entry["successful" if event.success else "failed"] += 1
        return stats

    def get_workflow_stats(self) -> Dict[str, float]:
        """Started and completed workflow counts and mean completion time."""
        events = self.get_events()
        started = sum(1 for e in events if e.event_type == AuditEventType.WORKFLOW_STARTED)
        completed = [e for e in events if e.event_type == AuditEventType.WORKFLOW_COMPLETED]
        total_ms = sum(e.duration_ms or 0.0 for e in completed)
        return {
            "started": started,
            "completed": len(completed),
            "average_duration_ms": total_ms / len(completed) if completed else 0.0,
        }

    def clear_events(self) -> None:
        with self._lock:
            self._events.clear()

    def export_json(self) -> str:
        events = self.get_events()
        return "[" + ",".join(event.model_dump_json() for event in events) + "]"

    def _record(self, event_type: AuditEventType, **fields: Any) -> AuditEvent:
        with self._lock:
            event = AuditEvent(
                event_id=f"AE-{int(time.time() * 1000)}-{next(self._sequence):06d}",
                event_type=event_type,
                **fields,
            )
            self._events.append(event)

        message = f"[AUDIT] {event_type.value} - Session: {event.session_id}"
        if event.step_name:
            message += f" - Step: {event.step_name}"
        if event.data_source:
            message += f" - Source: {event.data_source}"
        extra = {
            "session_id": event.session_id,
            "extra_fields": {"event_id": event.event_id, "event_type": event_type.value},
        }
        if event.success:
            logger.info(message, extra=extra)
        else:
            logger.error(f"{message} - {event.error_message}", extra=extra)
        return event


__all__ = ["AuditEvent", "AuditEventType", "AuditLogger"]
