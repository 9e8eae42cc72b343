"""Guided investment research workflow engine.

Sessions walk a fixed 12-step research pipeline. Progress and step results
live in a state store, so a session can be paused, resumed, inspected and
reset from any process.
"""

from research_workflow.database import create_state_store
from research_workflow.workflow.catalog import (
    STEP_DEFINITIONS,
    build_default_orchestrator,
    build_processors,
)
from research_workflow.workflow.orchestrator import WorkflowOrchestrator

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "WorkflowOrchestrator",
    "STEP_DEFINITIONS",
    "build_processors",
    "build_default_orchestrator",
    "create_state_store",
]
