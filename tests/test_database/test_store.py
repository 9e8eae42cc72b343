"""Contract tests run against every state store implementation."""

import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from research_workflow.database import NotFoundError, ProfileNotFoundError, SessionNotFoundError
from research_workflow.workflow.error_handling import SessionConflictError
from research_workflow.workflow.state import InvestmentProfile, StepResult


def _profile(user_id="user-1", **overrides):
    values = {
        "user_id": user_id,
        "risk_tolerance": "medium",
        "investment_horizon_years": 10,
        "capital_available": 50000.0,
        "long_term_goals": "steady growth",
    }
    values.update(overrides)
    return InvestmentProfile(**values)


class TestSessions:
    """Test session persistence."""

    def test_create_session_defaults(self, store):
        session = store.create_session("user-1")

        assert session.session_id
        assert session.user_id == "user-1"
        assert session.current_step == 1
        assert session.completed_steps == []
        assert session.version == 1

    def test_session_ids_are_unique(self, store):
        ids = {store.create_session("user-1").session_id for _ in range(5)}

        assert len(ids) == 5

    def test_get_session_round_trips(self, store):
        created = store.create_session("user-1")

        loaded = store.get_session(created.session_id)

        assert loaded.session_id == created.session_id
        assert loaded.user_id == "user-1"
        assert loaded.created_at.tzinfo is not None

    def test_get_missing_session_raises_not_found(self, store):
        with pytest.raises(SessionNotFoundError) as exc_info:
            store.get_session("does-not-exist")

        assert isinstance(exc_info.value, NotFoundError)
        assert "not found" in str(exc_info.value)

    def test_update_session_replaces_state_and_bumps_version(self, store):
        session = store.create_session("user-1")
        changed = session.model_copy(update={"current_step": 3, "completed_steps": [2, 1]})

        updated = store.update_session(changed)

        assert updated.current_step == 3
        assert updated.completed_steps == [1, 2]
        assert updated.version == 2
        assert store.get_session(session.session_id).version == 2

    def test_update_session_with_matching_version(self, store):
        session = store.create_session("user-1")

        updated = store.update_session(
            session.model_copy(update={"current_step": 2}), expected_version=1
        )

        assert updated.version == 2

    def test_update_session_with_stale_version_conflicts(self, store):
        session = store.create_session("user-1")
        store.update_session(session.model_copy(update={"current_step": 2}))

        with pytest.raises(SessionConflictError) as exc_info:
            store.update_session(session.model_copy(update={"current_step": 5}), expected_version=1)

        assert exc_info.value.expected_version == 1
        assert exc_info.value.actual_version == 2
        stored = store.get_session(session.session_id)
        assert stored.current_step == 2
        assert stored.version == 2

    def test_update_missing_session_raises_not_found(self, store):
        session = store.create_session("user-1")
        ghost = session.model_copy(update={"session_id": "ghost"})

        with pytest.raises(SessionNotFoundError):
            store.update_session(ghost)

    def test_returned_sessions_are_copies(self, store):
        session = store.create_session("user-1")
        session.completed_steps.append(7)

        assert store.get_session(session.session_id).completed_steps == []

    def test_list_sessions_newest_first(self, store):
        first = store.create_session("user-1")
        time.sleep(0.01)
        second = store.create_session("user-1")
        store.create_session("user-2")

        history = store.list_sessions("user-1")

        assert [s.session_id for s in history] == [second.session_id, first.session_id]

    def test_list_sessions_for_unknown_user_is_empty(self, store):
        assert store.list_sessions("nobody") == []


class TestStepResults:
    """Test step result persistence."""

    def test_save_and_get_step_result(self, store):
        session = store.create_session("user-1")
        result = StepResult(
            session_id=session.session_id,
            step_number=2,
            data={"macro_snapshot": {"market_trend": "bullish"}},
            warnings=["Inflation rate unavailable"],
        )

        store.save_step_result(session.session_id, 2, result)
        loaded = store.get_step_result(session.session_id, 2)

        assert loaded.success is True
        assert loaded.data == {"macro_snapshot": {"market_trend": "bullish"}}
        assert loaded.warnings == ["Inflation rate unavailable"]

    def test_save_step_result_upserts(self, store):
        session = store.create_session("user-1")
        sid = session.session_id

        store.save_step_result(sid, 1, StepResult(session_id=sid, step_number=1, data={"v": 1}))
        store.save_step_result(sid, 1, StepResult(session_id=sid, step_number=1, data={"v": 2}))

        results = store.get_all_step_results(sid)
        assert list(results) == [1]
        assert results[1].data == {"v": 2}

    def test_get_missing_step_result_returns_none(self, store):
        session = store.create_session("user-1")

        assert store.get_step_result(session.session_id, 4) is None

    def test_get_all_step_results_keyed_by_step(self, store):
        session = store.create_session("user-1")
        sid = session.session_id
        for step in (3, 1, 2):
            store.save_step_result(sid, step, StepResult(session_id=sid, step_number=step))

        results = store.get_all_step_results(sid)

        assert sorted(results) == [1, 2, 3]
        assert all(results[step].step_number == step for step in results)

    def test_results_are_scoped_to_session(self, store):
        first = store.create_session("user-1")
        second = store.create_session("user-1")
        store.save_step_result(
            first.session_id, 1, StepResult(session_id=first.session_id, step_number=1)
        )

        assert store.get_all_step_results(second.session_id) == {}

    def test_save_step_result_for_missing_session(self, store):
        with pytest.raises(SessionNotFoundError):
            store.save_step_result("ghost", 1, StepResult(session_id="ghost", step_number=1))

    def test_clear_session_deletes_results_only(self, store):
        session = store.create_session("user-1")
        sid = session.session_id
        store.save_step_result(sid, 1, StepResult(session_id=sid, step_number=1))
        store.save_step_result(sid, 2, StepResult(session_id=sid, step_number=2))

        store.clear_session(sid)
        store.clear_session(sid)

        assert store.get_all_step_results(sid) == {}
        assert store.get_session(sid).session_id == sid


class TestProfiles:
    """Test investment profile persistence."""

    def test_save_and_get_profile(self, store):
        store.save_user_profile("user-1", _profile())

        profile = store.get_user_profile("user-1")

        assert profile.user_id == "user-1"
        assert profile.risk_tolerance.value == "medium"
        assert profile.investment_horizon_years == 10
        assert profile.capital_available == 50000.0
        assert profile.long_term_goals.value == "steady growth"

    def test_save_profile_upserts(self, store):
        store.save_user_profile("user-1", _profile())
        store.save_user_profile("user-1", _profile(risk_tolerance="high", capital_available=9000))

        profile = store.get_user_profile("user-1")

        assert profile.risk_tolerance.value == "high"
        assert profile.capital_available == 9000

    def test_missing_profile_raises_not_found(self, store):
        with pytest.raises(ProfileNotFoundError) as exc_info:
            store.get_user_profile("nobody")

        assert isinstance(exc_info.value, NotFoundError)
        assert "not found" in str(exc_info.value)


class TestThreads:
    """Stores are called from worker threads."""

    def test_concurrent_writers_from_threads(self, store):
        sessions = [store.create_session(f"user-{n}") for n in range(8)]

        def complete_step(session):
            store.save_step_result(
                session.session_id,
                1,
                StepResult(session_id=session.session_id, step_number=1, data={"user": session.user_id}),
            )
            return store.update_session(
                session.model_copy(update={"completed_steps": [1], "current_step": 2}),
                expected_version=session.version,
            )

        with ThreadPoolExecutor(max_workers=8) as pool:
            updated = list(pool.map(complete_step, sessions))

        assert [s.current_step for s in updated] == [2] * 8
        for session in sessions:
            results = store.get_all_step_results(session.session_id)
            assert results[1].data == {"user": session.user_id}
