"""Step 5 - Fundamental Analysis.

Selects the company to research (its ticker is what later steps default to)
and measures five-year growth and latest-year financial health.
"""

from typing import Any

from research_workflow.analysis.models import Fundamentals
from research_workflow.analysis.valuation import calculate_growth_rate
from research_workflow.integrations.market_data import FinancialHistory
from research_workflow.processors import (
    MarketDataStepProcessor,
    handle_step_errors,
    log_step_execution,
    require_valid_inputs,
)
from research_workflow.validation import clean_ticker, validate_ticker
from research_workflow.workflow.state import (
    InputField,
    StepOutcome,
    ValidationResult,
    WorkflowContext,
)


def build_fundamentals(history: FinancialHistory) -> tuple[Fundamentals, list[str]]:
    """
    Derive fundamentals from a company's financial statements.

    Args:
        history: Yearly statements, newest first

    Returns:
        (Fundamentals, warnings about figures that could not be computed)
    """
    warnings = []

    profit_margin = 0.0
    if history.revenue and history.net_income and history.revenue[0]:
        profit_margin = history.net_income[0] / history.revenue[0] * 100
    else:
        warnings.append(f"Profit margin unavailable for {history.ticker}")

    debt_to_equity = 0.0
    if history.total_liabilities is not None and history.total_equity:
        debt_to_equity = history.total_liabilities / history.total_equity
    else:
        warnings.append(f"Debt-to-equity unavailable for {history.ticker}")

    free_cash_flow = 0.0
    if history.operating_cash_flow is not None:
        # Capital expenditure is reported as a negative cash flow
        free_cash_flow = history.operating_cash_flow + (history.capital_expenditure or 0.0)
    else:
        warnings.append(f"Free cash flow unavailable for {history.ticker}")

    if len(history.revenue) < 2:
        warnings.append(f"Less than two years of history for {history.ticker}; growth reported as 0")

    fundamentals = Fundamentals(
        ticker=history.ticker,
        revenue_growth_5y=round(calculate_growth_rate(history.revenue), 2),
        earnings_growth_5y=round(calculate_growth_rate(history.net_income), 2),
        profit_margin=round(profit_margin, 2),
        debt_to_equity=round(debt_to_equity, 2),
        free_cash_flow=round(free_cash_flow, 2),
    )
    return fundamentals, warnings


class FundamentalAnalysisProcessor(MarketDataStepProcessor):
    step_number = 5
    name = "Fundamental Analysis"

    def check_inputs(self, inputs: dict[str, Any]) -> ValidationResult:
        return validate_ticker(inputs.get("ticker"))

    @handle_step_errors
    @log_step_execution
    @require_valid_inputs
    async def execute(self, inputs: dict[str, Any], context: WorkflowContext) -> StepOutcome:
        ticker = clean_ticker(inputs["ticker"])
        history = await self.market_data.fetch_financials(ticker)
        fundamentals, warnings = build_fundamentals(history)
        return StepOutcome.ok(
            {"ticker": ticker, "fundamentals": fundamentals.model_dump(mode="json")},
            warnings,
        )

    def required_inputs(self) -> list[InputField]:
        return [InputField(name="ticker", type="string", description="Ticker symbol to research")]
