"""Tests for workflow state models."""

import pytest
from pydantic import ValidationError

from research_workflow.workflow.state import (
    InvestmentProfile,
    StepOutcome,
    StepResult,
    ValidationResult,
    WorkflowContext,
    WorkflowSession,
    calculate_progress,
)


class TestWorkflowSession:
    """Test the WorkflowSession model."""

    def test_defaults(self):
        session = WorkflowSession(session_id="s-1", user_id="u-1")

        assert session.current_step == 1
        assert session.completed_steps == []
        assert session.version == 1
        assert session.created_at.tzinfo is not None

    def test_completed_steps_have_set_semantics(self):
        session = WorkflowSession(session_id="s-1", user_id="u-1", completed_steps=[3, 1, 3, 2])

        assert session.completed_steps == [1, 2, 3]
        assert session.is_completed(2)
        assert not session.is_completed(4)

    def test_current_step_must_be_positive(self):
        with pytest.raises(ValidationError):
            WorkflowSession(session_id="s-1", user_id="u-1", current_step=0)

    def test_json_serialization(self):
        data = WorkflowSession(session_id="s-1", user_id="u-1").model_dump(mode="json")

        assert isinstance(data["created_at"], str)
        assert isinstance(data["updated_at"], str)


class TestInvestmentProfile:
    """Test the InvestmentProfile model."""

    def test_valid_profile(self):
        profile = InvestmentProfile(
            user_id="u-1",
            risk_tolerance="low",
            investment_horizon_years=5,
            capital_available=1000,
            long_term_goals="capital preservation",
        )

        assert profile.risk_tolerance.value == "low"
        assert profile.model_dump(mode="json")["long_term_goals"] == "capital preservation"

    @pytest.mark.parametrize(
        "field, value",
        [
            ("risk_tolerance", "extreme"),
            ("investment_horizon_years", 0),
            ("investment_horizon_years", 101),
            ("capital_available", 0),
            ("long_term_goals", "speculation"),
        ],
    )
    def test_invalid_values_rejected(self, field, value):
        values = {
            "user_id": "u-1",
            "risk_tolerance": "low",
            "investment_horizon_years": 5,
            "capital_available": 1000,
            "long_term_goals": "steady growth",
            field: value,
        }

        with pytest.raises(ValidationError):
            InvestmentProfile(**values)


class TestOutcomes:
    """Test StepOutcome and ValidationResult helpers."""

    def test_ok_outcome(self):
        outcome = StepOutcome.ok({"answer": 42}, ["note"])

        assert outcome.success
        assert outcome.data == {"answer": 42}
        assert outcome.warnings == ["note"]
        assert outcome.errors == []
        assert outcome.profile is None

    def test_failed_outcome(self):
        outcome = StepOutcome.failed(["bad input"])

        assert not outcome.success
        assert outcome.errors == ["bad input"]
        assert outcome.data == {}

    def test_validation_result_from_errors(self):
        assert ValidationResult.from_errors([]).is_valid
        assert not ValidationResult.from_errors(["x"]).is_valid


class TestWorkflowContext:
    """Test the read-only processor context."""

    def _context(self):
        return WorkflowContext(
            session_id="s-1",
            user_id="u-1",
            previous_results={
                5: StepResult(session_id="s-1", step_number=5, data={"ticker": "AAPL"}),
                7: StepResult(session_id="s-1", step_number=7, data={"ticker": "MSFT", "x": 1}),
                2: StepResult(session_id="s-1", step_number=2, data={"macro_snapshot": {}}),
            },
        )

    def test_output_lookup(self):
        context = self._context()

        assert context.output(7, "x") == 1
        assert context.output(7, "missing", "default") == "default"
        assert context.output(9, "x") is None

    def test_selected_ticker_prefers_latest_step(self):
        assert self._context().selected_ticker() == "MSFT"

    def test_selected_ticker_none_without_results(self):
        assert WorkflowContext(session_id="s-1", user_id="u-1").selected_ticker() is None

    def test_context_is_frozen(self):
        context = self._context()

        with pytest.raises(ValidationError):
            context.user_id = "someone-else"


class TestCalculateProgress:
    """Test progress percentage."""

    @pytest.mark.parametrize(
        "completed, total, expected",
        [(0, 12, 0), (1, 12, 8), (6, 12, 50), (11, 12, 92), (12, 12, 100), (1, 8, 13), (1, 3, 33), (2, 3, 67)],
    )
    def test_rounds_half_up(self, completed, total, expected):
        assert calculate_progress(completed, total) == expected

    def test_rejects_non_positive_total(self):
        with pytest.raises(ValueError):
            calculate_progress(0, 0)
