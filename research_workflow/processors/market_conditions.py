"""Step 2 - Market Conditions.

Reads interest rate, inflation and unemployment plus the broad market trend.
Indicators that could not be fetched are reported as warnings; the step only
fails when no indicator is available at all.
"""

from typing import Any

from research_workflow.analysis.models import MacroSnapshot
from research_workflow.analysis.scoring import summarize_macro
from research_workflow.processors import (
    MarketDataStepProcessor,
    handle_step_errors,
    log_step_execution,
    require_valid_inputs,
)
from research_workflow.workflow.state import StepOutcome, ValidationResult, WorkflowContext

_INDICATOR_LABELS = {
    "interest_rate": "Interest rate",
    "inflation_rate": "Inflation rate",
    "unemployment_rate": "Unemployment rate",
}


class MarketConditionsProcessor(MarketDataStepProcessor):
    step_number = 2
    name = "Market Conditions"

    def check_inputs(self, inputs: dict[str, Any]) -> ValidationResult:
        # No inputs
        return ValidationResult()

    @handle_step_errors
    @log_step_execution
    @require_valid_inputs
    async def execute(self, inputs: dict[str, Any], context: WorkflowContext) -> StepOutcome:
        indicators = await self.market_data.fetch_macro_indicators()
        trend = await self.market_data.fetch_market_trend()

        warnings = [
            f"{_INDICATOR_LABELS.get(name, name)} unavailable: {reason}"
            for name, reason in indicators.failures.items()
        ]

        snapshot = MacroSnapshot(
            interest_rate=indicators.interest_rate,
            inflation_rate=indicators.inflation_rate,
            unemployment_rate=indicators.unemployment_rate,
            market_trend=trend,
            summary=summarize_macro(
                indicators.interest_rate,
                indicators.inflation_rate,
                indicators.unemployment_rate,
                trend,
            ),
        )
        return StepOutcome.ok({"macro_snapshot": snapshot.model_dump(mode="json")}, warnings)
