"""Step 10 - Position Sizing.

Sizes a whole-share position from a risk model. Needs the investor profile
from step 1 in the context; the order type follows its risk tolerance.
"""

from typing import Any

from research_workflow.analysis.sizing import determine_position_size
from research_workflow.processors import (
    BaseStepProcessor,
    handle_step_errors,
    log_step_execution,
    no_ticker_outcome,
    require_valid_inputs,
)
from research_workflow.validation import (
    RISK_MODELS,
    clean_ticker,
    combine,
    validate_portfolio_size,
    validate_positive_number,
    validate_risk_model,
    validate_ticker,
)
from research_workflow.workflow.state import (
    InputField,
    StepOutcome,
    ValidationResult,
    WorkflowContext,
)


class PositionSizingProcessor(BaseStepProcessor):
    step_number = 10
    name = "Position Sizing"

    def check_inputs(self, inputs: dict[str, Any]) -> ValidationResult:
        return combine(
            validate_portfolio_size(inputs.get("portfolio_size")),
            validate_risk_model(inputs.get("risk_model")),
            validate_positive_number(inputs.get("entry_price"), "Entry price"),
            validate_ticker(inputs.get("ticker"), required=False),
        )

    @handle_step_errors
    @log_step_execution
    @require_valid_inputs
    async def execute(self, inputs: dict[str, Any], context: WorkflowContext) -> StepOutcome:
        profile = context.user_profile
        if profile is None:
            return StepOutcome.failed(["User profile not found in context"])

        ticker = clean_ticker(inputs.get("ticker")) or context.selected_ticker()
        if ticker is None:
            return no_ticker_outcome(self.name)

        recommendation = determine_position_size(
            ticker,
            portfolio_size=float(inputs["portfolio_size"]),
            entry_price=float(inputs["entry_price"]),
            risk_model=inputs["risk_model"],
            risk_tolerance=profile.risk_tolerance.value,
        )

        warnings = []
        if recommendation.shares_to_buy == 0:
            warnings.append(
                "Position size calculation resulted in 0 shares. Consider increasing "
                "portfolio size or choosing a lower-priced stock."
            )
        if inputs["portfolio_size"] > profile.capital_available:
            warnings.append(
                f"Portfolio size exceeds the capital available in your profile "
                f"({profile.capital_available:,.2f})"
            )

        return StepOutcome.ok(
            {"ticker": ticker, "buy_recommendation": recommendation.model_dump(mode="json")},
            warnings,
        )

    def required_inputs(self) -> list[InputField]:
        return [
            InputField(name="portfolio_size", type="number", description="Total portfolio value"),
            InputField(
                name="risk_model",
                type="string",
                description=f"One of: {', '.join(RISK_MODELS)}",
            ),
            InputField(name="entry_price", type="number", description="Planned price per share"),
            InputField(name="ticker", type="string", required=False),
        ]
