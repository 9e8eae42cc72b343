"""Market data provider contract and the raw records it returns.

Processors depend only on ``MarketDataProvider``; the HTTP implementation
talks to Financial Modeling Prep and FRED, the static one serves fixed data.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from research_workflow.analysis.models import MarketTrend


class MacroIndicators(BaseModel):
    """Latest macro readings; a None value failed to load (see ``failures``)."""

    interest_rate: Optional[float] = None
    inflation_rate: Optional[float] = None
    unemployment_rate: Optional[float] = None
    failures: Dict[str, str] = Field(default_factory=dict)


class SectorPerformance(BaseModel):
    """Percent price changes for one sector over several windows."""

    sector_name: str
    market_cap: float = 0.0
    change_1d: float = 0.0
    change_1w: float = 0.0
    change_1m: float = 0.0
    change_3m: float = 0.0
    change_1y: float = 0.0


class ScreenResult(BaseModel):
    ticker: str
    company_name: str
    sector: str
    market_cap: float = 0.0
    dividend_yield: float = 0.0
    pe_ratio: float = 0.0
    price: Optional[float] = None


class FinancialHistory(BaseModel):
    """Annual statement lines, newest year first."""

    ticker: str
    revenue: List[float] = Field(default_factory=list)
    net_income: List[float] = Field(default_factory=list)
    total_liabilities: Optional[float] = None
    total_equity: Optional[float] = None
    operating_cash_flow: Optional[float] = None
    capital_expenditure: Optional[float] = None


class CompanyProfile(BaseModel):
    ticker: str
    company_name: str = ""
    sector: Optional[str] = None
    industry: Optional[str] = None
    description: Optional[str] = None
    patent_count: Optional[int] = None
    brand_value: Optional[float] = None
    brand_recognition: Optional[float] = None
    customer_count: Optional[int] = None
    retention_rate: Optional[float] = None
    customer_concentration: Optional[float] = None
    operating_margin: Optional[float] = None
    efficiency: Optional[float] = None


class ValuationSnapshot(BaseModel):
    ticker: str
    price: Optional[float] = None
    pe_ratio: Optional[float] = None
    pb_ratio: Optional[float] = None
    earnings_per_share: Optional[float] = None
    book_value_per_share: Optional[float] = None


class AnalystRating(BaseModel):
    firm: str = ""
    rating: str
    price_target: Optional[float] = None


class MarketDataProvider(ABC):
    """Async source of every piece of market data the pipeline reads.

    Implementations raise ``ExternalDependencyError`` when a source fails or
    is not configured.
    """

    @abstractmethod
    async def fetch_macro_indicators(self) -> MacroIndicators:
        """Interest, inflation and unemployment rates (partial results allowed)."""

    @abstractmethod
    async def fetch_market_trend(self) -> MarketTrend:
        """Broad market direction."""

    @abstractmethod
    async def fetch_sector_performance(self) -> List[SectorPerformance]:
        """Performance of each tracked sector."""

    @abstractmethod
    async def screen_stocks(self, filters: Dict[str, Any]) -> List[ScreenResult]:
        """Stocks matching snake_case screening filters."""

    @abstractmethod
    async def fetch_financials(self, ticker: str) -> FinancialHistory:
        """Up to five years of annual statements."""

    @abstractmethod
    async def fetch_company_profile(self, ticker: str) -> CompanyProfile:
        """Descriptive and competitive-position data."""

    @abstractmethod
    async def fetch_valuation(self, ticker: str) -> ValuationSnapshot:
        """Price and per-share valuation inputs."""

    @abstractmethod
    async def fetch_price_history(self, ticker: str, days: int = 200) -> List[float]:
        """Daily closes, oldest first."""

    @abstractmethod
    async def fetch_analyst_ratings(self, ticker: str) -> List[AnalystRating]:
        """Recent analyst ratings with price targets where known."""
