"""Workflow state, errors and orchestration."""

from research_workflow.workflow.audit import AuditEvent, AuditEventType, AuditLogger
from research_workflow.workflow.error_handling import (
    ErrorContext,
    ExternalDependencyError,
    InvalidStepError,
    SessionConflictError,
    StepNotOptionalError,
    UnregisteredStepError,
    WorkflowError,
)
from research_workflow.workflow.state import (
    InvestmentProfile,
    StepDefinition,
    StepOutcome,
    StepResult,
    ValidationResult,
    WorkflowContext,
    WorkflowSession,
    WorkflowStatus,
)

__all__ = [
    "AuditLogger",
    "AuditEvent",
    "AuditEventType",
    "WorkflowError",
    "InvalidStepError",
    "StepNotOptionalError",
    "UnregisteredStepError",
    "SessionConflictError",
    "ExternalDependencyError",
    "ErrorContext",
    "InvestmentProfile",
    "StepDefinition",
    "StepOutcome",
    "StepResult",
    "ValidationResult",
    "WorkflowContext",
    "WorkflowSession",
    "WorkflowStatus",
]
