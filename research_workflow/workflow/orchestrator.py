"""Workflow orchestrator: the step-sequencing state machine.

The orchestrator owns no state of its own. Every operation loads the session
from the state store, checks the ordering rules, runs the step processor and
writes the outcome back, so any number of orchestrator instances (in one or
many processes) can serve the same sessions.

Ordering rules:
- Only the session's current step may be executed or skipped
- A step is completed only when its processor reports success
- Only steps whose processor is optional may be skipped; skipped steps are
  never added to ``completed_steps``
- Failures (validation, external data, timeout) leave the session unchanged

Concurrency:
- Store calls run in worker threads, so a slow or retrying database suspends
  only the calling task
- Operations on one session are serialized per orchestrator instance by an
  ``asyncio.Lock`` keyed by session id, released once nobody waits on it
- Across instances, session writes are compare-and-swap on the session
  ``version``; the first writer wins and the loser gets
  ``SessionConflictError`` before it has written anything

Write order for a successful step: profile, step result, session. If a
process dies after the step result is written, ``recover_session`` completes
the pointer advance. A reset writes the session first and then clears the
results; results older than the session's last write are never replayed.
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Dict, Iterable, List, Optional, TypeVar

from research_workflow.database.db import ProfileNotFoundError, StorageError
from research_workflow.database.store import StateStore
from research_workflow.processors import BaseStepProcessor, StepProcessorRegistry
from research_workflow.utils.config import get_settings
from research_workflow.validation import normalize_inputs
from research_workflow.workflow.audit import AuditLogger
from research_workflow.workflow.error_handling import (
    ErrorContext,
    InvalidStepError,
    StepNotOptionalError,
    UnregisteredStepError,
)
from research_workflow.workflow.state import (
    StepDefinition,
    StepOutcome,
    StepResult,
    WorkflowContext,
    WorkflowSession,
    WorkflowStatus,
    calculate_progress,
    utc_now,
)

logger = logging.getLogger(__name__)

TOTAL_STEPS = 12

# Marks "use STEP_TIMEOUT_SECONDS from settings"; None disables the timeout
_SETTINGS_TIMEOUT: Any = object()

T = TypeVar("T")


class _SessionLock:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.users = 0


class WorkflowOrchestrator:
    """Drive sessions through the registered step processors.

    Example:
        >>> orchestrator = WorkflowOrchestrator(InMemoryStateStore(), build_processors())
        >>> session = await orchestrator.start_workflow("user-1")
        >>> outcome = await orchestrator.execute_step(session.session_id, 1, {
        ...     "risk_tolerance": "medium",
        ...     "investment_horizon_years": 10,
        ...     "capital_available": 50000,
        ...     "long_term_goals": "steady growth",
        ... })
        >>> (await orchestrator.get_workflow_status(session.session_id)).current_step
        2
    """

    def __init__(
        self,
        store: StateStore,
        processors: Iterable[BaseStepProcessor] = (),
        total_steps: int = TOTAL_STEPS,
        step_timeout: Optional[float] = _SETTINGS_TIMEOUT,
        audit: Optional[AuditLogger] = None,
    ):
        """Initialize the orchestrator.

        Args:
            store: State store holding sessions, step results and profiles
            processors: Step processors to register
            total_steps: Number of steps in the catalog
            step_timeout: Seconds a step may run (STEP_TIMEOUT_SECONDS from
                settings if omitted; None disables the timeout)
            audit: Audit trail for workflow and step events (a fresh
                in-memory one if omitted)
        """
        if total_steps < 1:
            raise ValueError("total_steps must be at least 1")

        self.store = store
        self.total_steps = total_steps
        self.step_timeout = (
            get_settings().STEP_TIMEOUT_SECONDS if step_timeout is _SETTINGS_TIMEOUT else step_timeout
        )
        self.registry = StepProcessorRegistry(processors)
        self.audit = audit if audit is not None else AuditLogger()
        self._locks: Dict[str, _SessionLock] = {}

    def register_processor(self, processor: BaseStepProcessor) -> BaseStepProcessor:
        """Register one more step processor.

        Raises:
            ValueError: If the step already has a processor
        """
        return self.registry.register(processor)

    def step_definitions(self) -> List[StepDefinition]:
        """Catalog entries for the registered steps, in step order."""
        return [self.registry.get(step).definition() for step in self.registry.list_steps()]

    @asynccontextmanager
    async def _session_lock(self, session_id: str) -> AsyncIterator[None]:
        entry = self._locks.get(session_id)
        if entry is None:
            entry = self._locks[session_id] = _SessionLock()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                del self._locks[session_id]

    async def _db(self, method: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        return await asyncio.to_thread(method, *args, **kwargs)

    def _check_catalog(self, session_id: Optional[str] = None) -> None:
        missing = self.registry.missing_steps(self.total_steps)
        if missing:
            raise UnregisteredStepError(missing, session_id)

    def _load_context(self, session: WorkflowSession, step_number: int) -> WorkflowContext:
        # Only results backing a completed step are visible; anything else is
        # left over from an interrupted write
        results = self.store.get_all_step_results(session.session_id)
        previous = {
            step: result
            for step, result in results.items()
            if step < step_number and session.is_completed(step)
        }
        try:
            profile = self.store.get_user_profile(session.user_id)
        except ProfileNotFoundError:
            profile = None

        return WorkflowContext(
            session_id=session.session_id,
            user_id=session.user_id,
            previous_results=previous,
            user_profile=profile,
        )

    async def _run_processor(
        self,
        processor: BaseStepProcessor,
        inputs: Dict[str, Any],
        context: WorkflowContext,
    ) -> StepOutcome:
        step_number = processor.step_number
        try:
            if self.step_timeout is None:
                return await processor.execute(inputs, context)
            return await asyncio.wait_for(processor.execute(inputs, context), self.step_timeout)
        except asyncio.TimeoutError:
            logger.warning(
                f"[{context.session_id}] Step {step_number} timed out after {self.step_timeout:g}s"
            )
            return StepOutcome.failed([f"Step {step_number} timed out after {self.step_timeout:g}s"])
        except StorageError:
            raise
        except Exception as e:
            logger.error(
                f"[{context.session_id}] Step {step_number} raised {type(e).__name__}: {e}",
                exc_info=True,
            )
            return StepOutcome.failed([f"Step execution failed: {e}"])

    def _audit_completion(self, session: WorkflowSession) -> None:
        if session.current_step > self.total_steps:
            elapsed = (utc_now() - session.created_at).total_seconds() * 1000
            self.audit.log_workflow_completed(session.session_id, session.user_id, elapsed)

    async def start_workflow(self, user_id: str) -> WorkflowSession:
        """Create a new session for a user, positioned at step 1.

        Raises:
            ValueError: If user_id is empty
            UnregisteredStepError: If the catalog is incomplete
        """
        if not isinstance(user_id, str) or not user_id.strip():
            raise ValueError("user_id is required")

        with ErrorContext("start_workflow") as ctx:
            ctx.add_info("user_id", user_id)
            self._check_catalog()
            session = await self._db(self.store.create_session, user_id)
            self.audit.log_workflow_started(session.session_id, user_id)
            logger.info(f"[{session.session_id}] Started workflow for user {user_id}")
            return session

    async def execute_step(self, session_id: str, step_number: int, inputs: Any) -> StepOutcome:
        """Validate and run the session's current step.

        Args:
            session_id: Session to advance
            step_number: Must equal the session's current step
            inputs: Step inputs; camelCase keys are accepted

        Returns:
            The processor's outcome. On success the step result is stored and
            the session advances; on failure nothing is written.

        Raises:
            SessionNotFoundError: If the session does not exist
            InvalidStepError: If step_number is not the current step
            UnregisteredStepError: If the catalog is incomplete
            SessionConflictError: If another writer advanced the session first
            StorageError: If the state store fails
        """
        with ErrorContext("execute_step", session_id) as ctx:
            ctx.add_info("step_number", step_number)
            self._check_catalog(session_id)

            async with self._session_lock(session_id):
                session = await self._db(self.store.get_session, session_id)

                if session.current_step > self.total_steps:
                    raise InvalidStepError(
                        step_number,
                        session.current_step,
                        session_id,
                        message=f"Cannot execute step {step_number}: workflow is already complete",
                    )
                if step_number != session.current_step:
                    raise InvalidStepError(step_number, session.current_step, session_id)

                processor = self.registry.find(step_number)
                if processor is None:
                    raise UnregisteredStepError([step_number], session_id)

                normalized = normalize_inputs(inputs)
                validation = processor.validate_inputs(normalized)
                if not validation.is_valid:
                    logger.info(
                        f"[{session_id}] Step {step_number} inputs rejected: "
                        f"{'; '.join(validation.errors)}"
                    )
                    self.audit.log_step_failed(
                        session_id, step_number, processor.name, "; ".join(validation.errors)
                    )
                    return StepOutcome.failed(validation.errors)

                context = await self._db(self._load_context, session, step_number)
                started = time.perf_counter()
                outcome = await self._run_processor(processor, normalized, context)
                elapsed_ms = (time.perf_counter() - started) * 1000
                if not outcome.success:
                    logger.info(
                        f"[{session_id}] Step {step_number} failed: {'; '.join(outcome.errors)}"
                    )
                    self.audit.log_step_failed(
                        session_id, step_number, processor.name, "; ".join(outcome.errors)
                    )
                    return outcome

                # Claim the session before any write; raises SessionConflictError on loss
                claimed = await self._db(
                    self.store.update_session, session, expected_version=session.version
                )

                if outcome.profile is not None:
                    await self._db(self.store.save_user_profile, session.user_id, outcome.profile)

                await self._db(
                    self.store.save_step_result,
                    session_id,
                    step_number,
                    StepResult(
                        session_id=session_id,
                        step_number=step_number,
                        success=True,
                        data=outcome.data,
                        warnings=outcome.warnings,
                    ),
                )

                advanced = claimed.model_copy(
                    update={
                        "completed_steps": sorted(set(claimed.completed_steps) | {step_number}),
                        "current_step": step_number + 1,
                    }
                )
                advanced = await self._db(
                    self.store.update_session, advanced, expected_version=claimed.version
                )

                self.audit.log_step_completed(
                    session_id, step_number, processor.name, elapsed_ms, outcome.warnings
                )
                self._audit_completion(advanced)
                logger.info(f"[{session_id}] Completed step {step_number}: {processor.name}")
                return outcome

    async def skip_optional_step(self, session_id: str, step_number: int) -> WorkflowSession:
        """Advance past the current step without executing it.

        Raises:
            SessionNotFoundError: If the session does not exist
            StepNotOptionalError: If the step is not optional, not registered,
                or not the current step
            SessionConflictError: If another writer changed the session first
        """
        with ErrorContext("skip_optional_step", session_id) as ctx:
            ctx.add_info("step_number", step_number)
            self._check_catalog(session_id)

            async with self._session_lock(session_id):
                session = await self._db(self.store.get_session, session_id)

                processor = self.registry.find(step_number)
                if processor is None or not processor.is_optional:
                    raise StepNotOptionalError(
                        f"Step {step_number} is not optional and cannot be skipped",
                        step_number,
                        session_id,
                    )
                if step_number != session.current_step:
                    raise StepNotOptionalError(
                        f"Step {step_number} is not optional at this point: "
                        f"current step is {session.current_step}",
                        step_number,
                        session_id,
                    )

                skipped = session.model_copy(update={"current_step": step_number + 1})
                updated = await self._db(
                    self.store.update_session, skipped, expected_version=session.version
                )
                self.audit.log_step_skipped(
                    session_id, step_number, processor.name, "Optional step skipped"
                )
                self._audit_completion(updated)
                logger.info(f"[{session_id}] Skipped optional step {step_number}: {processor.name}")
                return updated

    async def get_workflow_status(self, session_id: str) -> WorkflowStatus:
        """Progress snapshot for a session.

        Raises:
            SessionNotFoundError: If the session does not exist
        """
        session = await self._db(self.store.get_session, session_id)
        is_complete = session.current_step > self.total_steps
        processor = None if is_complete else self.registry.find(session.current_step)

        if is_complete:
            requirements = ["Workflow complete"]
        elif processor is None:
            requirements = [f"Complete step {session.current_step}"]
        else:
            requirements = [field.name for field in processor.required_inputs() if field.required]

        return WorkflowStatus(
            session_id=session.session_id,
            user_id=session.user_id,
            current_step=session.current_step,
            completed_steps=session.completed_steps,
            total_steps=self.total_steps,
            progress=calculate_progress(len(session.completed_steps), self.total_steps),
            current_step_name=processor.name if processor else None,
            is_complete=is_complete,
            can_proceed=processor is not None,
            next_step_requirements=requirements,
        )

    async def reset_workflow(self, session_id: str) -> WorkflowSession:
        """Return the session to step 1 and clear all step results.

        The session is written before the results are cleared, so an
        interruption in between leaves a session at step 1 whose leftover
        results are ignored. Resetting an already-reset session is a no-op
        apart from the version bump.
        """
        with ErrorContext("reset_workflow", session_id):
            async with self._session_lock(session_id):
                session = await self._db(self.store.get_session, session_id)
                reset = session.model_copy(update={"current_step": 1, "completed_steps": []})
                updated = await self._db(
                    self.store.update_session, reset, expected_version=session.version
                )
                await self._db(self.store.clear_session, session_id)

                self.audit.log_state_change(
                    session_id, "reset", previous_step=session.current_step
                )
                logger.info(f"[{session_id}] Workflow reset")
                return updated

    async def get_step_results(self, session_id: str) -> Dict[int, StepResult]:
        """All stored step results for a session, keyed by step number."""
        await self._db(self.store.get_session, session_id)
        return await self._db(self.store.get_all_step_results, session_id)

    async def get_session_history(self, user_id: str) -> List[WorkflowSession]:
        """A user's sessions, newest first."""
        return await self._db(self.store.list_sessions, user_id)

    async def recover_session(self, session_id: str) -> WorkflowSession:
        """Finish a step whose result was stored but whose session write was lost.

        A result only counts if it was written after the session's last
        write; results at or before that point predate a reset and are ignored.

        Returns:
            The session, advanced past its current step if that step already
            has a fresh successful result; otherwise unchanged
        """
        with ErrorContext("recover_session", session_id):
            async with self._session_lock(session_id):
                session = await self._db(self.store.get_session, session_id)
                step = session.current_step
                if step > self.total_steps or session.is_completed(step):
                    return session

                result = await self._db(self.store.get_step_result, session_id, step)
                if result is None or not result.success:
                    return session
                if result.executed_at <= session.updated_at:
                    logger.info(
                        f"[{session_id}] Ignoring result for step {step} written before the "
                        f"last session update"
                    )
                    return session

                recovered = session.model_copy(
                    update={
                        "completed_steps": sorted(set(session.completed_steps) | {step}),
                        "current_step": step + 1,
                    }
                )
                updated = await self._db(
                    self.store.update_session, recovered, expected_version=session.version
                )
                self.audit.log_state_change(session_id, "recover", recovered_step=step)
                self._audit_completion(updated)
                logger.warning(f"[{session_id}] Recovered interrupted step {step}")
                return updated


__all__ = ["WorkflowOrchestrator", "TOTAL_STEPS"]
