"""Step 7 - Valuation Evaluation.

Compares the company's P/E and P/B ratios against optional peers. A peer
whose data cannot be fetched is dropped from the comparison with a warning.
"""

from typing import Any

from research_workflow.analysis.valuation import calculate_valuation
from research_workflow.processors import (
    MarketDataStepProcessor,
    handle_step_errors,
    log_step_execution,
    no_ticker_outcome,
    require_valid_inputs,
)
from research_workflow.validation import clean_ticker, combine, validate_ticker, validate_ticker_list
from research_workflow.workflow.error_handling import ExternalDependencyError
from research_workflow.workflow.state import (
    InputField,
    StepOutcome,
    ValidationResult,
    WorkflowContext,
)


class ValuationEvaluationProcessor(MarketDataStepProcessor):
    step_number = 7
    name = "Valuation Evaluation"

    def check_inputs(self, inputs: dict[str, Any]) -> ValidationResult:
        return combine(
            validate_ticker(inputs.get("ticker"), required=False),
            validate_ticker_list(inputs.get("peer_tickers")),
        )

    @handle_step_errors
    @log_step_execution
    @require_valid_inputs
    async def execute(self, inputs: dict[str, Any], context: WorkflowContext) -> StepOutcome:
        ticker = self.resolve_ticker(inputs, context)
        if ticker is None:
            return no_ticker_outcome(self.name)

        snapshot = await self.market_data.fetch_valuation(ticker)

        warnings = []
        peer_pe, peer_pb = [], []
        for peer in inputs.get("peer_tickers") or []:
            peer = clean_ticker(peer)
            if peer == ticker:
                continue
            try:
                peer_snapshot = await self.market_data.fetch_valuation(peer)
            except ExternalDependencyError as e:
                warnings.append(f"Failed to fetch peer data for {peer}: {e}")
                continue
            peer_pe.append(peer_snapshot.pe_ratio)
            peer_pb.append(peer_snapshot.pb_ratio)

        metrics = calculate_valuation(
            ticker,
            price=snapshot.price,
            pe_ratio=snapshot.pe_ratio,
            pb_ratio=snapshot.pb_ratio,
            earnings_per_share=snapshot.earnings_per_share,
            book_value_per_share=snapshot.book_value_per_share,
            peer_pe_ratios=peer_pe,
            peer_pb_ratios=peer_pb,
        )
        return StepOutcome.ok(
            {
                "ticker": ticker,
                "valuation_metrics": metrics.model_dump(mode="json"),
                "current_price": snapshot.price,
            },
            warnings,
        )

    def required_inputs(self) -> list[InputField]:
        return [
            InputField(name="ticker", type="string", required=False),
            InputField(
                name="peer_tickers",
                type="array",
                required=False,
                description="Ticker symbols to compare against",
            ),
        ]
