"""Position sizing from a risk model."""

import math
from dataclasses import dataclass

from research_workflow.analysis.models import BuyRecommendation


@dataclass(frozen=True)
class RiskModel:
    """Allocation rule for one position."""

    name: str
    max_position_percent: float
    min_positions: int


RISK_MODELS = {
    "conservative": RiskModel("conservative", 5.0, 20),
    "balanced": RiskModel("balanced", 10.0, 10),
    "aggressive": RiskModel("aggressive", 15.0, 7),
}


def determine_position_size(
    ticker: str,
    portfolio_size: float,
    entry_price: float,
    risk_model: str,
    risk_tolerance: str,
) -> BuyRecommendation:
    """
    Size a whole-share position.

    Args:
        ticker: Symbol to buy
        portfolio_size: Capital the allocation percentage applies to
        entry_price: Price per share, positive
        risk_model: conservative, balanced or aggressive
        risk_tolerance: The investor's profile tolerance; only "high" gets
            market orders

    Returns:
        BuyRecommendation with the rounded-down share count and the
        resulting investment and portfolio share

    Raises:
        ValueError: If the price or portfolio size is not positive, or the
            risk model is unknown
    """
    if entry_price <= 0 or portfolio_size <= 0:
        raise ValueError("Entry price and portfolio size must be positive")
    try:
        model = RISK_MODELS[risk_model]
    except KeyError:
        raise ValueError(f"Unknown risk model: {risk_model}") from None

    budget = portfolio_size * model.max_position_percent / 100
    shares = math.floor(budget / entry_price)
    invested = shares * entry_price

    return BuyRecommendation(
        ticker=ticker,
        shares_to_buy=shares,
        entry_price=entry_price,
        order_type="market" if risk_tolerance == "high" else "limit",
        total_investment=round(invested, 2),
        portfolio_percentage=round(invested / portfolio_size * 100, 2),
    )
