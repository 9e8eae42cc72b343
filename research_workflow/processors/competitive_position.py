"""Step 6 - Competitive Position."""

from typing import Any

from research_workflow.analysis.scoring import analyze_moat
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


class CompetitivePositionProcessor(MarketDataStepProcessor):
    """Score the company's economic moat from its profile."""

    step_number = 6
    name = "Competitive Position"

    def check_inputs(self, inputs: dict[str, Any]) -> ValidationResult:
        return validate_ticker(inputs.get("ticker"), required=False)

    @handle_step_errors
    @log_step_execution
    @require_valid_inputs
    async def execute(self, inputs: dict[str, Any], context: WorkflowContext) -> StepOutcome:
        ticker = self.resolve_ticker(inputs, context)
        if ticker is None:
            return no_ticker_outcome(self.name)

        profile = await self.market_data.fetch_company_profile(ticker)
        moat = analyze_moat(
            ticker,
            patent_count=profile.patent_count,
            brand_value=profile.brand_value,
            brand_recognition=profile.brand_recognition,
            customer_count=profile.customer_count,
            retention_rate=profile.retention_rate,
            customer_concentration=profile.customer_concentration,
            operating_margin=profile.operating_margin,
            efficiency=profile.efficiency,
        )

        warnings = []
        if profile.patent_count is None and profile.customer_count is None:
            warnings.append(
                f"Limited competitive data for {ticker}; moat score reflects available metrics only"
            )

        return StepOutcome.ok(
            {
                "ticker": ticker,
                "moat_analysis": moat.model_dump(mode="json"),
                "company_profile": profile.model_dump(mode="json"),
            },
            warnings,
        )

    def required_inputs(self) -> list[InputField]:
        return [
            InputField(
                name="ticker",
                type="string",
                required=False,
                description="Defaults to the ticker selected in fundamental analysis",
            )
        ]
