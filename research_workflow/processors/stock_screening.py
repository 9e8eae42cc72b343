"""Step 4 - Stock Screening.

Filters (all optional) are passed as top-level inputs:
market_cap, dividend_yield_min, pe_ratio_max, sector, min_price, max_price.
"""

from typing import Any

from research_workflow.analysis.models import StockCandidate
from research_workflow.analysis.scoring import market_cap_category
from research_workflow.processors import (
    MarketDataStepProcessor,
    handle_step_errors,
    log_step_execution,
    require_valid_inputs,
)
from research_workflow.validation import MARKET_CAPS, validate_screening_filters
from research_workflow.workflow.state import (
    InputField,
    StepOutcome,
    ValidationResult,
    WorkflowContext,
)

FILTER_KEYS = ("market_cap", "dividend_yield_min", "pe_ratio_max", "sector", "min_price", "max_price")


def _filters(inputs: dict[str, Any]) -> dict[str, Any]:
    return {key: inputs[key] for key in FILTER_KEYS if inputs.get(key) is not None}


class StockScreeningProcessor(MarketDataStepProcessor):
    step_number = 4
    name = "Stock Screening"

    def check_inputs(self, inputs: dict[str, Any]) -> ValidationResult:
        return validate_screening_filters(_filters(inputs))

    @handle_step_errors
    @log_step_execution
    @require_valid_inputs
    async def execute(self, inputs: dict[str, Any], context: WorkflowContext) -> StepOutcome:
        filters = _filters(inputs)
        results = await self.market_data.screen_stocks(filters)

        warnings = []
        if not results:
            warnings.append("No stocks found matching the specified criteria")

        shortlist = [
            StockCandidate(
                ticker=result.ticker,
                company_name=result.company_name,
                sector=result.sector,
                dividend_yield=result.dividend_yield,
                pe_ratio=result.pe_ratio,
                price=result.price,
                market_cap=market_cap_category(result.market_cap),
            ).model_dump(mode="json")
            for result in results
        ]
        return StepOutcome.ok({"stock_shortlist": shortlist, "filters": filters}, warnings)

    def required_inputs(self) -> list[InputField]:
        return [
            InputField(
                name="market_cap",
                type="string",
                required=False,
                description=f"One of: {', '.join(MARKET_CAPS)}",
            ),
            InputField(name="dividend_yield_min", type="number", required=False),
            InputField(name="pe_ratio_max", type="number", required=False),
            InputField(name="sector", type="string", required=False),
            InputField(name="min_price", type="number", required=False),
            InputField(name="max_price", type="number", required=False),
        ]
