"""Step 3 - Sector Identification."""

from typing import Any

from research_workflow.analysis.scoring import (
    rank_sectors,
    score_sector,
    sector_momentum,
    sector_outlook,
)
from research_workflow.processors import (
    MarketDataStepProcessor,
    handle_step_errors,
    log_step_execution,
    require_valid_inputs,
)
from research_workflow.workflow.state import StepOutcome, ValidationResult, WorkflowContext


class SectorIdentificationProcessor(MarketDataStepProcessor):
    """Rank sectors by one-year growth, size and recent momentum."""

    step_number = 3
    name = "Sector Identification"

    def check_inputs(self, inputs: dict[str, Any]) -> ValidationResult:
        return ValidationResult()

    @handle_step_errors
    @log_step_execution
    @require_valid_inputs
    async def execute(self, inputs: dict[str, Any], context: WorkflowContext) -> StepOutcome:
        sectors = await self.market_data.fetch_sector_performance()
        if not sectors:
            return StepOutcome.failed(["No sector data available"])

        rankings = rank_sectors(
            score_sector(
                sector.sector_name,
                growth_rate=sector.change_1y,
                market_cap=sector.market_cap,
                momentum=sector_momentum(
                    {
                        "1d": sector.change_1d,
                        "1w": sector.change_1w,
                        "1m": sector.change_1m,
                        "3m": sector.change_3m,
                    }
                ),
                outlook=sector_outlook(sector.change_1y),
            )
            for sector in sectors
        )
        return StepOutcome.ok(
            {"sector_rankings": [ranking.model_dump(mode="json") for ranking in rankings]}
        )
