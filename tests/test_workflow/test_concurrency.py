"""Concurrent access, crash recovery and operation logging."""

import asyncio
import logging
import time

import pytest

from research_workflow.database import StorageError
from research_workflow.processors import BaseStepProcessor
from research_workflow.processors.profile_definition import ProfileDefinitionProcessor
from research_workflow.workflow.error_handling import (
    ErrorContext,
    InvalidStepError,
    SessionConflictError,
)
from research_workflow.workflow.orchestrator import WorkflowOrchestrator
from research_workflow.workflow.state import StepOutcome, StepResult, ValidationResult

TOTAL = 3


class SlowProcessor(BaseStepProcessor):
    """Yields to the event loop before succeeding."""

    def __init__(self, step_number, delay=0.05):
        self.step_number = step_number
        self.name = f"Slow Step {step_number}"
        self.delay = delay
        self.runs = 0

    def check_inputs(self, inputs):
        return ValidationResult()

    async def execute(self, inputs, context):
        self.runs += 1
        await asyncio.sleep(self.delay)
        return StepOutcome.ok({"run": self.runs})


class RecordingProcessor(BaseStepProcessor):
    """Keeps the context of every run."""

    def __init__(self, step_number):
        self.step_number = step_number
        self.name = f"Recording Step {step_number}"
        self.contexts = []

    def check_inputs(self, inputs):
        return ValidationResult()

    async def execute(self, inputs, context):
        self.contexts.append(context)
        return StepOutcome.ok({"user": context.user_id})


def _lose_connection(*args, **kwargs):
    raise StorageError("connection lost")


def _orchestrator(store):
    processors = [SlowProcessor(step) for step in range(1, TOTAL + 1)]
    return WorkflowOrchestrator(store, processors, total_steps=TOTAL, step_timeout=None)


class TestSameInstance:
    """Operations on one orchestrator are serialized per session."""

    @pytest.mark.asyncio
    async def test_same_step_executes_exactly_once(self, store):
        orchestrator = _orchestrator(store)
        session = await orchestrator.start_workflow("user-1")

        results = await asyncio.gather(
            orchestrator.execute_step(session.session_id, 1, {}),
            orchestrator.execute_step(session.session_id, 1, {}),
            return_exceptions=True,
        )

        successes = [r for r in results if isinstance(r, StepOutcome) and r.success]
        rejections = [r for r in results if isinstance(r, InvalidStepError)]
        assert len(successes) == 1
        assert len(rejections) == 1
        assert orchestrator.registry.get(1).runs == 1
        stored = store.get_session(session.session_id)
        assert stored.completed_steps == [1]
        assert stored.current_step == 2

    @pytest.mark.asyncio
    async def test_different_sessions_run_independently(self, store):
        orchestrator = _orchestrator(store)
        first = await orchestrator.start_workflow("user-1")
        second = await orchestrator.start_workflow("user-2")

        outcomes = await asyncio.gather(
            orchestrator.execute_step(first.session_id, 1, {}),
            orchestrator.execute_step(second.session_id, 1, {}),
        )

        assert all(outcome.success for outcome in outcomes)
        assert store.get_session(first.session_id).current_step == 2
        assert store.get_session(second.session_id).current_step == 2

    @pytest.mark.asyncio
    async def test_locks_are_dropped_when_idle(self, store):
        orchestrator = _orchestrator(store)
        sessions = [await orchestrator.start_workflow(f"user-{i}") for i in range(5)]

        await asyncio.gather(
            *(orchestrator.execute_step(s.session_id, 1, {}) for s in sessions),
            orchestrator.execute_step(sessions[0].session_id, 1, {}),
            return_exceptions=True,
        )
        await orchestrator.reset_workflow(sessions[1].session_id)
        await orchestrator.recover_session(sessions[2].session_id)

        assert orchestrator._locks == {}

    @pytest.mark.asyncio
    async def test_lock_is_dropped_after_failure(self, store):
        orchestrator = _orchestrator(store)
        session = await orchestrator.start_workflow("user-1")

        with pytest.raises(InvalidStepError):
            await orchestrator.execute_step(session.session_id, 2, {})

        assert orchestrator._locks == {}


class TestEventLoopNotBlocked:
    """Store calls run off the event loop."""

    @pytest.mark.asyncio
    async def test_slow_store_does_not_stall_other_tasks(self, store, monkeypatch):
        orchestrator = _orchestrator(store)
        session = await orchestrator.start_workflow("user-1")
        original = store.get_session

        def slow_get_session(session_id):
            time.sleep(0.2)
            return original(session_id)

        monkeypatch.setattr(store, "get_session", slow_get_session)
        order = []

        async def status():
            await orchestrator.get_workflow_status(session.session_id)
            order.append("status")

        async def tick():
            await asyncio.sleep(0.01)
            order.append("tick")

        await asyncio.gather(status(), tick())

        assert order == ["tick", "status"]

    @pytest.mark.asyncio
    async def test_other_session_progresses_while_one_waits_on_store(self, store, monkeypatch):
        orchestrator = _orchestrator(store)
        slow = await orchestrator.start_workflow("user-1")
        fast = await orchestrator.start_workflow("user-2")
        original = store.get_session

        def get_session(session_id):
            if session_id == slow.session_id:
                time.sleep(0.3)
            return original(session_id)

        monkeypatch.setattr(store, "get_session", get_session)
        finished = []

        async def run(session_id):
            await orchestrator.execute_step(session_id, 1, {})
            finished.append(session_id)

        await asyncio.gather(run(slow.session_id), run(fast.session_id))

        assert finished == [fast.session_id, slow.session_id]


class TestUserIsolation:
    """Sessions of different users never see each other's data."""

    @pytest.mark.asyncio
    async def test_results_and_context_are_scoped_to_session(self, store):
        recorder = RecordingProcessor(2)
        orchestrator = WorkflowOrchestrator(
            store,
            [ProfileDefinitionProcessor(), recorder, SlowProcessor(3)],
            total_steps=TOTAL,
            step_timeout=None,
        )
        profiles = {
            "user-1": {
                "risk_tolerance": "low",
                "investment_horizon_years": 5,
                "capital_available": 10000,
                "long_term_goals": "capital preservation",
            },
            "user-2": {
                "risk_tolerance": "high",
                "investment_horizon_years": 30,
                "capital_available": 250000,
                "long_term_goals": "steady growth",
            },
        }
        sessions = {}
        for user_id, profile in profiles.items():
            sessions[user_id] = await orchestrator.start_workflow(user_id)
            await orchestrator.execute_step(sessions[user_id].session_id, 1, profile)

        for session in sessions.values():
            await orchestrator.execute_step(session.session_id, 2, {})

        contexts = {context.user_id: context for context in recorder.contexts}
        assert sorted(contexts) == ["user-1", "user-2"]
        for user_id, session in sessions.items():
            context = contexts[user_id]
            assert context.session_id == session.session_id
            assert context.user_profile.user_id == user_id
            assert context.user_profile.risk_tolerance.value == profiles[user_id]["risk_tolerance"]
            assert list(context.previous_results) == [1]
            assert context.previous_results[1].session_id == session.session_id
            assert (
                context.previous_results[1].data["profile"]["risk_tolerance"]
                == profiles[user_id]["risk_tolerance"]
            )

            results = await orchestrator.get_step_results(session.session_id)
            assert sorted(results) == [1, 2]
            assert all(result.session_id == session.session_id for result in results.values())
            assert results[2].data == {"user": user_id}

        history = await orchestrator.get_session_history("user-1")
        assert [s.session_id for s in history] == [sessions["user-1"].session_id]

    @pytest.mark.asyncio
    async def test_reset_leaves_other_sessions_alone(self, store):
        orchestrator = _orchestrator(store)
        first = await orchestrator.start_workflow("user-1")
        second = await orchestrator.start_workflow("user-2")
        await orchestrator.execute_step(first.session_id, 1, {})
        await orchestrator.execute_step(second.session_id, 1, {})

        await orchestrator.reset_workflow(first.session_id)

        assert await orchestrator.get_step_results(first.session_id) == {}
        assert list(await orchestrator.get_step_results(second.session_id)) == [1]
        assert store.get_session(second.session_id).current_step == 2


class TestAcrossInstances:
    """Instances sharing a store rely on version compare-and-swap."""

    @pytest.mark.asyncio
    async def test_first_writer_wins(self, store):
        first = _orchestrator(store)
        second = _orchestrator(store)
        session = await first.start_workflow("user-1")

        results = await asyncio.gather(
            first.execute_step(session.session_id, 1, {}),
            second.execute_step(session.session_id, 1, {}),
            return_exceptions=True,
        )

        successes = [r for r in results if isinstance(r, StepOutcome) and r.success]
        conflicts = [r for r in results if isinstance(r, SessionConflictError)]
        assert len(successes) == 1
        assert len(conflicts) == 1
        stored = store.get_session(session.session_id)
        assert stored.completed_steps == [1]
        assert stored.current_step == 2
        assert list(store.get_all_step_results(session.session_id)) == [1]

    @pytest.mark.asyncio
    async def test_loser_can_continue_from_fresh_state(self, store):
        first = _orchestrator(store)
        second = _orchestrator(store)
        session = await first.start_workflow("user-1")
        await first.execute_step(session.session_id, 1, {})

        outcome = await second.execute_step(session.session_id, 2, {})

        assert outcome.success
        assert store.get_session(session.session_id).completed_steps == [1, 2]


class TestRecovery:
    """A stored result whose session write was lost can be recovered."""

    @pytest.mark.asyncio
    async def test_recover_advances_past_stored_result(self, store):
        orchestrator = _orchestrator(store)
        session = await orchestrator.start_workflow("user-1")
        # Simulate a crash between the result write and the session write
        store.save_step_result(
            session.session_id,
            1,
            StepResult(session_id=session.session_id, step_number=1, data={"run": 1}),
        )

        recovered = await orchestrator.recover_session(session.session_id)

        assert recovered.current_step == 2
        assert recovered.completed_steps == [1]

    @pytest.mark.asyncio
    async def test_recover_without_pending_result_is_a_no_op(self, store):
        orchestrator = _orchestrator(store)
        session = await orchestrator.start_workflow("user-1")
        await orchestrator.execute_step(session.session_id, 1, {})

        recovered = await orchestrator.recover_session(session.session_id)

        assert recovered.current_step == 2
        assert recovered.version == store.get_session(session.session_id).version

    @pytest.mark.asyncio
    async def test_recover_ignores_failed_results(self, store):
        orchestrator = _orchestrator(store)
        session = await orchestrator.start_workflow("user-1")
        store.save_step_result(
            session.session_id,
            1,
            StepResult(session_id=session.session_id, step_number=1, success=False),
        )

        recovered = await orchestrator.recover_session(session.session_id)

        assert recovered.current_step == 1

    @pytest.mark.asyncio
    async def test_interrupted_reset_does_not_replay_old_results(self, store, monkeypatch):
        orchestrator = _orchestrator(store)
        session = await orchestrator.start_workflow("user-1")
        await orchestrator.execute_step(session.session_id, 1, {})
        await orchestrator.execute_step(session.session_id, 2, {})

        with monkeypatch.context() as m:
            m.setattr(store, "clear_session", _lose_connection)
            with pytest.raises(StorageError):
                await orchestrator.reset_workflow(session.session_id)

        stored = store.get_session(session.session_id)
        assert stored.current_step == 1
        assert stored.completed_steps == []
        assert sorted(store.get_all_step_results(session.session_id)) == [1, 2]

        recovered = await orchestrator.recover_session(session.session_id)

        assert recovered.current_step == 1
        assert recovered.completed_steps == []
        assert recovered.version == stored.version

        outcome = await orchestrator.execute_step(session.session_id, 1, {})
        assert outcome.success
        assert store.get_session(session.session_id).completed_steps == [1]

    @pytest.mark.asyncio
    async def test_context_hides_results_left_by_interrupted_reset(self, store, monkeypatch):
        optional = SlowProcessor(2)
        optional.is_optional = True
        recorder = RecordingProcessor(3)
        orchestrator = WorkflowOrchestrator(
            store, [SlowProcessor(1), optional, recorder], total_steps=TOTAL, step_timeout=None
        )
        session = await orchestrator.start_workflow("user-1")
        await orchestrator.execute_step(session.session_id, 1, {})
        await orchestrator.execute_step(session.session_id, 2, {})

        with monkeypatch.context() as m:
            m.setattr(store, "clear_session", _lose_connection)
            with pytest.raises(StorageError):
                await orchestrator.reset_workflow(session.session_id)

        await orchestrator.execute_step(session.session_id, 1, {})
        await orchestrator.skip_optional_step(session.session_id, 2)
        await orchestrator.execute_step(session.session_id, 3, {})

        assert list(recorder.contexts[-1].previous_results) == [1]

    @pytest.mark.asyncio
    async def test_failed_reset_write_leaves_session_untouched(self, store, monkeypatch):
        orchestrator = _orchestrator(store)
        session = await orchestrator.start_workflow("user-1")
        await orchestrator.execute_step(session.session_id, 1, {})
        await orchestrator.execute_step(session.session_id, 2, {})
        before = store.get_session(session.session_id)

        with monkeypatch.context() as m:
            m.setattr(store, "update_session", _lose_connection)
            with pytest.raises(StorageError):
                await orchestrator.reset_workflow(session.session_id)

        after = store.get_session(session.session_id)
        assert after.current_step == 3
        assert after.completed_steps == [1, 2]
        assert after.version == before.version
        assert sorted(store.get_all_step_results(session.session_id)) == [1, 2]


class TestErrorContext:
    """Test the operation logging context manager."""

    def test_failure_is_logged_and_reraised(self, caplog):
        with caplog.at_level(logging.WARNING, logger="research_workflow.workflow.error_handling"):
            with pytest.raises(RuntimeError):
                with ErrorContext("execute_step", session_id="s-1") as ctx:
                    ctx.add_info("step_number", 4)
                    raise RuntimeError("boom")

        assert "Operation 'execute_step' failed" in caplog.text
        assert ctx.info == {"step_number": 4}

    def test_success_is_silent_at_warning_level(self, caplog):
        with caplog.at_level(logging.WARNING, logger="research_workflow.workflow.error_handling"):
            with ErrorContext("get_workflow_status"):
                pass

        assert caplog.text == ""
