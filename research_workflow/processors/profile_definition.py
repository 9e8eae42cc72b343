"""Step 1 - Profile Definition.

Captures the investor's risk tolerance, horizon, capital and long-term goal.
The orchestrator persists the returned profile for the user, and later steps
read it from their context.
"""

from typing import Any

from research_workflow.processors import (
    BaseStepProcessor,
    handle_step_errors,
    log_step_execution,
    require_valid_inputs,
)
from research_workflow.validation import LONG_TERM_GOALS, RISK_TOLERANCES, validate_investment_profile
from research_workflow.workflow.state import (
    InputField,
    InvestmentProfile,
    StepOutcome,
    ValidationResult,
    WorkflowContext,
)


class ProfileDefinitionProcessor(BaseStepProcessor):
    step_number = 1
    name = "Profile Definition"

    def check_inputs(self, inputs: dict[str, Any]) -> ValidationResult:
        return validate_investment_profile(inputs)

    @handle_step_errors
    @log_step_execution
    @require_valid_inputs
    async def execute(self, inputs: dict[str, Any], context: WorkflowContext) -> StepOutcome:
        profile = InvestmentProfile(
            user_id=context.user_id,
            risk_tolerance=inputs["risk_tolerance"],
            investment_horizon_years=int(inputs["investment_horizon_years"]),
            capital_available=float(inputs["capital_available"]),
            long_term_goals=inputs["long_term_goals"],
        )
        return StepOutcome.ok({"profile": profile.model_dump(mode="json")}, profile=profile)

    def required_inputs(self) -> list[InputField]:
        return [
            InputField(
                name="risk_tolerance",
                type="string",
                description=f"One of: {', '.join(RISK_TOLERANCES)}",
            ),
            InputField(name="investment_horizon_years", type="integer", description="Years, 1-100"),
            InputField(name="capital_available", type="number", description="Capital to invest"),
            InputField(
                name="long_term_goals",
                type="string",
                description=f"One of: {', '.join(LONG_TERM_GOALS)}",
            ),
        ]
