"""In-process state store.

Used by tests and when no database is configured. Records are deep-copied on
the way in and out so callers never share mutable state with the store, and
each operation runs under one lock so every write is atomic.
"""

import logging
import threading
from typing import Dict, List, Optional
from uuid import uuid4

from research_workflow.database.db import ProfileNotFoundError, SessionNotFoundError
from research_workflow.database.store import StateStore
from research_workflow.workflow.error_handling import SessionConflictError
from research_workflow.workflow.state import (
    InvestmentProfile,
    StepResult,
    WorkflowSession,
    utc_now,
)

logger = logging.getLogger(__name__)


class InMemoryStateStore(StateStore):
    """Dictionary-backed implementation of the state store contract."""

    def __init__(self):
        self._lock = threading.Lock()
        self._sessions: Dict[str, WorkflowSession] = {}
        self._results: Dict[str, Dict[int, StepResult]] = {}
        self._profiles: Dict[str, InvestmentProfile] = {}
        # Insertion order breaks created_at ties in list_sessions
        self._order: Dict[str, int] = {}

    def _require_session(self, session_id: str) -> WorkflowSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def create_session(self, user_id: str) -> WorkflowSession:
        now = utc_now()
        session = WorkflowSession(
            session_id=str(uuid4()),
            user_id=user_id,
            created_at=now,
            updated_at=now,
        )
        with self._lock:
            self._sessions[session.session_id] = session
            self._order[session.session_id] = len(self._order)
        logger.info("Created workflow session %s for user %s", session.session_id, user_id)
        return session.model_copy(deep=True)

    def get_session(self, session_id: str) -> WorkflowSession:
        with self._lock:
            return self._require_session(session_id).model_copy(deep=True)

    def update_session(
        self, session: WorkflowSession, expected_version: Optional[int] = None
    ) -> WorkflowSession:
        with self._lock:
            stored = self._require_session(session.session_id)
            if expected_version is not None and stored.version != expected_version:
                raise SessionConflictError(session.session_id, expected_version, stored.version)

            updated = stored.model_copy(
                update={
                    "current_step": session.current_step,
                    "completed_steps": sorted(set(session.completed_steps)),
                    "updated_at": utc_now(),
                    "version": stored.version + 1,
                },
                deep=True,
            )
            self._sessions[session.session_id] = updated
            return updated.model_copy(deep=True)

    def save_step_result(self, session_id: str, step_number: int, result: StepResult) -> StepResult:
        stored = result.model_copy(
            update={"session_id": session_id, "step_number": step_number}, deep=True
        )
        with self._lock:
            self._require_session(session_id)
            self._results.setdefault(session_id, {})[step_number] = stored
        logger.debug("Saved result for step %d of session %s", step_number, session_id)
        return stored.model_copy(deep=True)

    def get_step_result(self, session_id: str, step_number: int) -> Optional[StepResult]:
        with self._lock:
            result = self._results.get(session_id, {}).get(step_number)
            return result.model_copy(deep=True) if result is not None else None

    def get_all_step_results(self, session_id: str) -> Dict[int, StepResult]:
        with self._lock:
            results = self._results.get(session_id, {})
            return {step: results[step].model_copy(deep=True) for step in sorted(results)}

    def clear_session(self, session_id: str) -> None:
        with self._lock:
            self._require_session(session_id)
            self._results.pop(session_id, None)
        logger.info("Cleared step results for session %s", session_id)

    def save_user_profile(self, user_id: str, profile: InvestmentProfile) -> InvestmentProfile:
        stored = profile.model_copy(update={"user_id": user_id}, deep=True)
        with self._lock:
            self._profiles[user_id] = stored
        logger.info("Saved investment profile for user %s", user_id)
        return stored.model_copy(deep=True)

    def get_user_profile(self, user_id: str) -> InvestmentProfile:
        with self._lock:
            profile = self._profiles.get(user_id)
            if profile is None:
                raise ProfileNotFoundError(user_id)
            return profile.model_copy(deep=True)

    def list_sessions(self, user_id: str) -> List[WorkflowSession]:
        with self._lock:
            sessions = [s for s in self._sessions.values() if s.user_id == user_id]
            sessions.sort(key=lambda s: (s.created_at, self._order[s.session_id]), reverse=True)
            return [s.model_copy(deep=True) for s in sessions]
