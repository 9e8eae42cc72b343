"""Step 8 - Technical Trends (optional, may be skipped)."""

from typing import Any

from research_workflow.analysis.technicals import technical_signals
from research_workflow.processors import (
    MarketDataStepProcessor,
    handle_step_errors,
    log_step_execution,
    no_ticker_outcome,
    require_valid_inputs,
)
from research_workflow.validation import (
    TECHNICAL_INDICATORS,
    combine,
    validate_technical_indicator,
    validate_ticker,
)
from research_workflow.workflow.state import (
    InputField,
    StepOutcome,
    ValidationResult,
    WorkflowContext,
)

HISTORY_DAYS = 200


class TechnicalTrendsProcessor(MarketDataStepProcessor):
    step_number = 8
    name = "Technical Trends"
    is_optional = True

    def check_inputs(self, inputs: dict[str, Any]) -> ValidationResult:
        return combine(
            validate_ticker(inputs.get("ticker"), required=False),
            validate_technical_indicator(inputs.get("indicator")),
        )

    @handle_step_errors
    @log_step_execution
    @require_valid_inputs
    async def execute(self, inputs: dict[str, Any], context: WorkflowContext) -> StepOutcome:
        ticker = self.resolve_ticker(inputs, context)
        if ticker is None:
            return no_ticker_outcome(self.name)

        closes = await self.market_data.fetch_price_history(ticker, days=HISTORY_DAYS)
        if not closes:
            return StepOutcome.failed([f"No price history available for {ticker}"])

        signals = technical_signals(ticker, closes)

        warnings = []
        if signals.sma50 is None:
            warnings.append(
                f"Only {len(closes)} days of price history for {ticker}; "
                "trend is based on the 20-day price change"
            )
        if inputs.get("indicator") == "RSI" and signals.rsi is None:
            warnings.append(f"Not enough price history to compute RSI for {ticker}")

        data = {"ticker": ticker, "technical_signals": signals.model_dump(mode="json")}
        if inputs.get("indicator"):
            data["indicator"] = inputs["indicator"]
        return StepOutcome.ok(data, warnings)

    def required_inputs(self) -> list[InputField]:
        return [
            InputField(name="ticker", type="string", required=False),
            InputField(
                name="indicator",
                type="string",
                required=False,
                description=f"One of: {', '.join(TECHNICAL_INDICATORS)}",
            ),
        ]
