"""Step 9 - Analyst Sentiment."""

from typing import Any

from research_workflow.analysis.scoring import aggregate_analyst_sentiment
from research_workflow.processors import (
    MarketDataStepProcessor,
    handle_step_errors,
    log_step_execution,
    no_ticker_outcome,
    require_valid_inputs,
)
from research_workflow.validation import validate_ticker
from research_workflow.workflow.state import (
    InputField,
    StepOutcome,
    ValidationResult,
    WorkflowContext,
)


class AnalystSentimentProcessor(MarketDataStepProcessor):
    step_number = 9
    name = "Analyst Sentiment"

    def check_inputs(self, inputs: dict[str, Any]) -> ValidationResult:
        return validate_ticker(inputs.get("ticker"), required=False)

    @handle_step_errors
    @log_step_execution
    @require_valid_inputs
    async def execute(self, inputs: dict[str, Any], context: WorkflowContext) -> StepOutcome:
        ticker = self.resolve_ticker(inputs, context)
        if ticker is None:
            return no_ticker_outcome(self.name)

        ratings = await self.market_data.fetch_analyst_ratings(ticker)
        if not ratings:
            return StepOutcome.failed([f"No analyst ratings available for {ticker}"])

        summary = aggregate_analyst_sentiment(
            ticker, [(rating.rating, rating.price_target) for rating in ratings]
        )

        warnings = []
        if summary.average_target == 0:
            warnings.append(f"No analyst price targets available for {ticker}")

        return StepOutcome.ok(
            {"ticker": ticker, "analyst_summary": summary.model_dump(mode="json")}, warnings
        )

    def required_inputs(self) -> list[InputField]:
        return [InputField(name="ticker", type="string", required=False)]
