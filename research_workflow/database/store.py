"""State store contract and its SQLAlchemy implementation.

The store is the single source of truth for workflow sessions, step results
and investment profiles. Every method writes at most one entity atomically;
ordering of multi-entity writes is the orchestrator's job.
"""

import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager, nullcontext
from datetime import datetime, timezone
from typing import Dict, Iterator, List, Optional
from uuid import uuid4

from sqlalchemy import delete, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from research_workflow.database.db import (
    ProfileNotFoundError,
    SessionNotFoundError,
    create_db_engine,
    create_session_factory,
    health_check,
    retry_on_transient_error,
    session_scope,
)
from research_workflow.database.models import (
    Base,
    InvestmentProfileRecord,
    StepResultRecord,
    WorkflowSessionRecord,
)
from research_workflow.workflow.error_handling import SessionConflictError
from research_workflow.workflow.state import (
    InvestmentProfile,
    StepResult,
    WorkflowSession,
    utc_now,
)

logger = logging.getLogger(__name__)


class StateStore(ABC):
    """Durable persistence for sessions, step results and profiles.

    Failure semantics shared by all implementations:
    - ``SessionNotFoundError`` / ``ProfileNotFoundError`` (both
      ``NotFoundError``) when a keyed entity is absent
    - ``SessionConflictError`` when a compare-and-swap update loses
    - ``StorageError`` for underlying I/O failures
    """

    @abstractmethod
    def create_session(self, user_id: str) -> WorkflowSession:
        """Create a session at step 1 with nothing completed and version 1."""

    @abstractmethod
    def get_session(self, session_id: str) -> WorkflowSession:
        """Load a session or raise ``SessionNotFoundError``."""

    @abstractmethod
    def update_session(
        self, session: WorkflowSession, expected_version: Optional[int] = None
    ) -> WorkflowSession:
        """
        Replace a session record with the supplied full state.

        Args:
            session: Desired state (current_step and completed_steps are taken
                from it; version and updated_at are assigned by the store)
            expected_version: If given, the write only happens when the stored
                version still equals it

        Returns:
            The stored session with its new version

        Raises:
            SessionNotFoundError: If the session does not exist
            SessionConflictError: If expected_version no longer matches
        """

    @abstractmethod
    def save_step_result(self, session_id: str, step_number: int, result: StepResult) -> StepResult:
        """Insert or overwrite the result for ``(session_id, step_number)``."""

    @abstractmethod
    def get_step_result(self, session_id: str, step_number: int) -> Optional[StepResult]:
        """Return the stored result, or None if the step has none."""

    @abstractmethod
    def get_all_step_results(self, session_id: str) -> Dict[int, StepResult]:
        """Return every stored result for the session keyed by step number."""

    @abstractmethod
    def clear_session(self, session_id: str) -> None:
        """Delete all step results belonging to the session."""

    @abstractmethod
    def save_user_profile(self, user_id: str, profile: InvestmentProfile) -> InvestmentProfile:
        """Insert or replace the user's investment profile."""

    @abstractmethod
    def get_user_profile(self, user_id: str) -> InvestmentProfile:
        """Load the user's profile or raise ``ProfileNotFoundError``."""

    @abstractmethod
    def list_sessions(self, user_id: str) -> List[WorkflowSession]:
        """Return the user's sessions, newest first."""

    def close(self) -> None:
        """Release any resources held by the store."""


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone-aware columns
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _session_from_record(record: WorkflowSessionRecord) -> WorkflowSession:
    return WorkflowSession(
        session_id=record.id,
        user_id=record.user_id,
        current_step=record.current_step,
        completed_steps=list(record.completed_steps or []),
        created_at=_as_utc(record.created_at),
        updated_at=_as_utc(record.updated_at),
        version=record.version,
    )


def _result_from_record(record: StepResultRecord) -> StepResult:
    return StepResult(
        session_id=record.session_id,
        step_number=record.step_number,
        success=record.success,
        data=dict(record.data or {}),
        warnings=list(record.warnings or []),
        executed_at=_as_utc(record.executed_at),
    )


def _profile_from_record(record: InvestmentProfileRecord) -> InvestmentProfile:
    return InvestmentProfile(
        user_id=record.user_id,
        risk_tolerance=record.risk_tolerance,
        investment_horizon_years=record.investment_horizon_years,
        capital_available=record.capital_available,
        long_term_goals=record.long_term_goals,
        created_at=_as_utc(record.created_at),
    )


class SQLAlchemyStateStore(StateStore):
    """State store backed by any SQLAlchemy-supported database.

    Usage:
        store = SQLAlchemyStateStore("postgresql+psycopg://user:pw@host/db")
        session = store.create_session("user-1")
    """

    def __init__(
        self,
        database_url: Optional[str] = None,
        engine: Optional[Engine] = None,
        create_tables: bool = True,
    ):
        """
        Initialize the store.

        Args:
            database_url: SQLAlchemy URL (falls back to DATABASE_URL)
            engine: Pre-built engine; takes precedence over database_url
            create_tables: Create missing tables on startup
        """
        self.engine = engine if engine is not None else create_db_engine(database_url)
        self._session_factory = create_session_factory(self.engine)
        # A static pool hands every thread the same connection
        self._connection_lock = (
            threading.Lock() if isinstance(self.engine.pool, StaticPool) else nullcontext()
        )
        if create_tables:
            self.create_tables()

    @contextmanager
    def _session(self) -> Iterator[Session]:
        with self._connection_lock, session_scope(self._session_factory) as db:
            yield db

    @retry_on_transient_error()
    def create_tables(self) -> None:
        """Create all tables that do not exist yet."""
        Base.metadata.create_all(bind=self.engine)
        logger.info("State store tables ready")

    def health_check(self) -> bool:
        return health_check(self.engine)

    @retry_on_transient_error()
    def create_session(self, user_id: str) -> WorkflowSession:
        now = utc_now()
        with self._session() as db:
            record = WorkflowSessionRecord(
                id=str(uuid4()),
                user_id=user_id,
                current_step=1,
                completed_steps=[],
                version=1,
                created_at=now,
                updated_at=now,
            )
            db.add(record)
            db.flush()
            logger.info("Created workflow session %s for user %s", record.id, user_id)
            return _session_from_record(record)

    @retry_on_transient_error()
    def get_session(self, session_id: str) -> WorkflowSession:
        with self._session() as db:
            record = db.get(WorkflowSessionRecord, session_id)
            if record is None:
                raise SessionNotFoundError(session_id)
            return _session_from_record(record)

    @retry_on_transient_error()
    def update_session(
        self, session: WorkflowSession, expected_version: Optional[int] = None
    ) -> WorkflowSession:
        with self._session() as db:
            stmt = update(WorkflowSessionRecord).where(
                WorkflowSessionRecord.id == session.session_id
            )
            if expected_version is not None:
                stmt = stmt.where(WorkflowSessionRecord.version == expected_version)

            result = db.execute(
                stmt.values(
                    current_step=session.current_step,
                    completed_steps=sorted(set(session.completed_steps)),
                    updated_at=utc_now(),
                    version=WorkflowSessionRecord.version + 1,
                ).execution_options(synchronize_session=False)
            )

            if result.rowcount == 0:
                current = db.get(WorkflowSessionRecord, session.session_id)
                if current is None:
                    raise SessionNotFoundError(session.session_id)
                raise SessionConflictError(session.session_id, expected_version, current.version)

            record = db.get(WorkflowSessionRecord, session.session_id, populate_existing=True)
            return _session_from_record(record)

    def _require_session(self, db, session_id: str) -> None:
        if db.get(WorkflowSessionRecord, session_id) is None:
            raise SessionNotFoundError(session_id)

    @retry_on_transient_error()
    def save_step_result(self, session_id: str, step_number: int, result: StepResult) -> StepResult:
        with self._session() as db:
            self._require_session(db, session_id)
            record = db.execute(
                select(StepResultRecord).where(
                    StepResultRecord.session_id == session_id,
                    StepResultRecord.step_number == step_number,
                )
            ).scalar_one_or_none()

            if record is None:
                record = StepResultRecord(session_id=session_id, step_number=step_number)
                db.add(record)

            record.success = result.success
            record.data = dict(result.data)
            record.warnings = list(result.warnings)
            record.executed_at = result.executed_at
            db.flush()
            logger.debug("Saved result for step %d of session %s", step_number, session_id)
            return _result_from_record(record)

    @retry_on_transient_error()
    def get_step_result(self, session_id: str, step_number: int) -> Optional[StepResult]:
        with self._session() as db:
            record = db.execute(
                select(StepResultRecord).where(
                    StepResultRecord.session_id == session_id,
                    StepResultRecord.step_number == step_number,
                )
            ).scalar_one_or_none()
            return _result_from_record(record) if record is not None else None

    @retry_on_transient_error()
    def get_all_step_results(self, session_id: str) -> Dict[int, StepResult]:
        with self._session() as db:
            records = db.execute(
                select(StepResultRecord)
                .where(StepResultRecord.session_id == session_id)
                .order_by(StepResultRecord.step_number)
            ).scalars().all()
            return {record.step_number: _result_from_record(record) for record in records}

    @retry_on_transient_error()
    def clear_session(self, session_id: str) -> None:
        with self._session() as db:
            self._require_session(db, session_id)
            db.execute(delete(StepResultRecord).where(StepResultRecord.session_id == session_id))
            logger.info("Cleared step results for session %s", session_id)

    @retry_on_transient_error()
    def save_user_profile(self, user_id: str, profile: InvestmentProfile) -> InvestmentProfile:
        with self._session() as db:
            record = db.execute(
                select(InvestmentProfileRecord).where(InvestmentProfileRecord.user_id == user_id)
            ).scalar_one_or_none()

            if record is None:
                record = InvestmentProfileRecord(user_id=user_id, created_at=profile.created_at)
                db.add(record)

            record.risk_tolerance = profile.risk_tolerance.value
            record.investment_horizon_years = profile.investment_horizon_years
            record.capital_available = profile.capital_available
            record.long_term_goals = profile.long_term_goals.value
            record.created_at = profile.created_at
            db.flush()
            logger.info("Saved investment profile for user %s", user_id)
            return _profile_from_record(record)

    @retry_on_transient_error()
    def get_user_profile(self, user_id: str) -> InvestmentProfile:
        with self._session() as db:
            record = db.execute(
                select(InvestmentProfileRecord).where(InvestmentProfileRecord.user_id == user_id)
            ).scalar_one_or_none()
            if record is None:
                raise ProfileNotFoundError(user_id)
            return _profile_from_record(record)

    @retry_on_transient_error()
    def list_sessions(self, user_id: str) -> List[WorkflowSession]:
        with self._session() as db:
            records = db.execute(
                select(WorkflowSessionRecord)
                .where(WorkflowSessionRecord.user_id == user_id)
                .order_by(WorkflowSessionRecord.created_at.desc())
            ).scalars().all()
            return [_session_from_record(record) for record in records]

    def close(self) -> None:
        """Dispose of the engine's connection pool."""
        self.engine.dispose()
        logger.info("State store connections closed")
