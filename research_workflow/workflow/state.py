"""Workflow state definitions.

This module defines the data structures shared by the orchestrator, the
state store and the step processors. It contains no execution logic and no
persistence code.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


class RiskTolerance(str, Enum):
    """Investor risk tolerance."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class LongTermGoal(str, Enum):
    """Investor long-term goal."""

    STEADY_GROWTH = "steady growth"
    DIVIDEND_INCOME = "dividend income"
    CAPITAL_PRESERVATION = "capital preservation"


class InvestmentProfile(BaseModel):
    """User-scoped investment profile.

    One profile exists per user id; saving a profile for a user that already
    has one replaces it.

    Attributes:
        user_id: Owner of the profile
        risk_tolerance: low, medium or high
        investment_horizon_years: Whole years, 1..100
        capital_available: Positive amount of capital
        long_term_goals: Declared long-term goal
        created_at: When the profile was defined (UTC)
    """

    user_id: str
    risk_tolerance: RiskTolerance
    investment_horizon_years: int = Field(gt=0, le=100)
    capital_available: float = Field(gt=0)
    long_term_goals: LongTermGoal
    created_at: datetime = Field(default_factory=utc_now)

    @field_serializer("created_at", when_used="json")
    def serialize_datetime(self, value: datetime) -> str:
        """Serialize datetime fields to ISO format strings."""
        return value.isoformat()


class WorkflowSession(BaseModel):
    """One user's traversal of the step pipeline.

    Attributes:
        session_id: Opaque, globally unique identifier
        user_id: Owner of the session
        current_step: 1-based pointer to the step awaiting execution;
            ``total_steps + 1`` once every step has been handled
        completed_steps: Step numbers executed successfully (set semantics,
            kept sorted). Skipped steps are never listed here.
        created_at: When the session was started (UTC)
        updated_at: When the session record was last written (UTC)
        version: Incremented by the store on every write; used for
            compare-and-swap between concurrent writers
    """

    session_id: str
    user_id: str
    current_step: int = Field(default=1, ge=1)
    completed_steps: List[int] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    version: int = Field(default=1, ge=1)

    @field_validator("completed_steps")
    @classmethod
    def dedupe_completed_steps(cls, value: List[int]) -> List[int]:
        """Keep completed steps unique and ordered."""
        return sorted(set(value))

    def is_completed(self, step_number: int) -> bool:
        """Return True if the step was executed successfully."""
        return step_number in self.completed_steps

    @field_serializer("created_at", "updated_at", when_used="json")
    def serialize_datetime(self, value: datetime) -> str:
        """Serialize datetime fields to ISO format strings."""
        return value.isoformat()


class StepResult(BaseModel):
    """Persisted outcome of one executed step within a session."""

    session_id: str
    step_number: int = Field(ge=1)
    success: bool = True
    data: Dict[str, Any] = Field(default_factory=dict)
    warnings: List[str] = Field(default_factory=list)
    executed_at: datetime = Field(default_factory=utc_now)

    @field_serializer("executed_at", when_used="json")
    def serialize_datetime(self, value: datetime) -> str:
        """Serialize datetime fields to ISO format strings."""
        return value.isoformat()


class ValidationResult(BaseModel):
    """Structured pass/fail result of an input check."""

    is_valid: bool = True
    errors: List[str] = Field(default_factory=list)

    @classmethod
    def from_errors(cls, errors: List[str]) -> "ValidationResult":
        """Build a result that is valid exactly when ``errors`` is empty."""
        return cls(is_valid=not errors, errors=list(errors))


class StepOutcome(BaseModel):
    """What a step processor reports back for one execution.

    Attributes:
        success: Whether the step produced a usable result
        data: Step-defined output payload (JSON-serializable)
        errors: Reasons the step failed
        warnings: Degraded-data or informational notes
        profile: Investment profile to persist for the user, set only by the
            profile-definition step
    """

    success: bool
    data: Dict[str, Any] = Field(default_factory=dict)
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    profile: Optional[InvestmentProfile] = None

    @classmethod
    def ok(
        cls,
        data: Dict[str, Any],
        warnings: Optional[List[str]] = None,
        profile: Optional[InvestmentProfile] = None,
    ) -> "StepOutcome":
        """Successful outcome."""
        return cls(success=True, data=data, warnings=warnings or [], profile=profile)

    @classmethod
    def failed(cls, errors: List[str], warnings: Optional[List[str]] = None) -> "StepOutcome":
        """Failed outcome."""
        return cls(success=False, errors=list(errors), warnings=warnings or [])


class InputField(BaseModel):
    """Description of one input a step accepts."""

    name: str
    type: str
    required: bool = True
    description: Optional[str] = None


class StepDefinition(BaseModel):
    """Static catalog entry for one step."""

    model_config = ConfigDict(frozen=True)

    step_number: int = Field(ge=1)
    name: str
    is_optional: bool = False


class WorkflowContext(BaseModel):
    """Read-only view handed to a processor's ``execute``.

    Assembled by the orchestrator from the state store; processors never
    reach the store themselves.
    """

    model_config = ConfigDict(frozen=True)

    session_id: str
    user_id: str
    previous_results: Dict[int, StepResult] = Field(default_factory=dict)
    user_profile: Optional[InvestmentProfile] = None

    def output(self, step_number: int, key: str, default: Any = None) -> Any:
        """Return a field from a prior step's persisted output."""
        result = self.previous_results.get(step_number)
        if result is None:
            return default
        return result.data.get(key, default)

    def selected_ticker(self) -> Optional[str]:
        """Return the ticker chosen most recently in an earlier step."""
        for step_number in sorted(self.previous_results, reverse=True):
            ticker = self.previous_results[step_number].data.get("ticker")
            if isinstance(ticker, str) and ticker:
                return ticker
        return None


class WorkflowStatus(BaseModel):
    """Snapshot of a session's progress."""

    session_id: str
    user_id: str
    current_step: int
    completed_steps: List[int]
    total_steps: int
    progress: int = Field(ge=0, le=100)
    current_step_name: Optional[str] = None
    is_complete: bool = False
    can_proceed: bool = True
    next_step_requirements: List[str] = Field(default_factory=list)


def calculate_progress(completed_count: int, total_steps: int) -> int:
    """Percentage of completed steps, rounded half-up in integer arithmetic.

    Exact at the boundaries: 0 completed gives 0, all completed gives 100.

    Args:
        completed_count: Number of completed (not skipped) steps
        total_steps: Size of the step catalog

    Returns:
        Integer percentage in 0..100
    """
    if total_steps <= 0:
        raise ValueError("total_steps must be positive")
    completed_count = max(0, min(completed_count, total_steps))
    return (200 * completed_count + total_steps) // (2 * total_steps)
