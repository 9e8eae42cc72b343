"""Pure analysis helpers used by the step processors.

Nothing in this package performs I/O; processors fetch data through a
market data provider and hand plain numbers to these functions.
"""

from research_workflow.analysis.scoring import (
    aggregate_analyst_sentiment,
    analyze_moat,
    market_cap_category,
    rank_sectors,
    score_sector,
    sector_momentum,
    sector_outlook,
    summarize_macro,
)
from research_workflow.analysis.sizing import RISK_MODELS, RiskModel, determine_position_size
from research_workflow.analysis.technicals import (
    detect_ma_crossover,
    determine_trend,
    relative_strength_index,
    simple_moving_average,
    technical_signals,
)
from research_workflow.analysis.valuation import calculate_growth_rate, calculate_valuation

__all__ = [
    "summarize_macro",
    "sector_momentum",
    "sector_outlook",
    "score_sector",
    "rank_sectors",
    "market_cap_category",
    "analyze_moat",
    "aggregate_analyst_sentiment",
    "calculate_growth_rate",
    "calculate_valuation",
    "simple_moving_average",
    "relative_strength_index",
    "determine_trend",
    "detect_ma_crossover",
    "technical_signals",
    "RiskModel",
    "RISK_MODELS",
    "determine_position_size",
]
