"""Market data integrations: provider contract, HTTP clients, providers and caching."""

from research_workflow.integrations.caching import CachingMarketDataProvider
from research_workflow.integrations.market_data import (
    AnalystRating,
    CompanyProfile,
    FinancialHistory,
    MacroIndicators,
    MarketDataProvider,
    ScreenResult,
    SectorPerformance,
    ValuationSnapshot,
)

__all__ = [
    "MarketDataProvider",
    "CachingMarketDataProvider",
    "MacroIndicators",
    "SectorPerformance",
    "ScreenResult",
    "FinancialHistory",
    "CompanyProfile",
    "ValuationSnapshot",
    "AnalystRating",
]
