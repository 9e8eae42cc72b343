"""Output models produced by the analysis helpers and step processors.

Processors store these in ``StepResult.data`` via ``model_dump(mode="json")``.
"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

from research_workflow.workflow.state import utc_now

MarketTrend = Literal["bullish", "bearish", "neutral"]
PriceTrend = Literal["upward", "downward", "sideways"]
Consensus = Literal["strong buy", "buy", "hold", "sell", "strong sell"]


class MacroSnapshot(BaseModel):
    """Economic indicators plus a one-line reading of them."""

    interest_rate: Optional[float] = None
    inflation_rate: Optional[float] = None
    unemployment_rate: Optional[float] = None
    market_trend: MarketTrend
    summary: str
    fetched_at: datetime = Field(default_factory=utc_now)


class SectorRanking(BaseModel):
    sector_name: str
    score: float
    rationale: str
    growth_rate: float = 0.0
    market_cap: float = 0.0
    momentum: float = 0.0


class StockCandidate(BaseModel):
    ticker: str
    company_name: str
    sector: str
    dividend_yield: float
    pe_ratio: float
    price: Optional[float] = None
    market_cap: Literal["large", "mid", "small"]


class Fundamentals(BaseModel):
    """Five-year growth and latest-year health metrics for one company."""

    ticker: str
    revenue_growth_5y: float
    earnings_growth_5y: float
    profit_margin: float
    debt_to_equity: float
    free_cash_flow: float
    analyzed_at: datetime = Field(default_factory=utc_now)


class MoatAnalysis(BaseModel):
    ticker: str
    patents: str
    brand_strength: str
    customer_base: str
    cost_leadership: str
    overall_moat_score: int = Field(ge=0, le=100)


class ValuationMetrics(BaseModel):
    ticker: str
    pe_ratio: float
    pb_ratio: float
    vs_peers: str
    fair_value_estimate: Optional[float] = None


class TechnicalSignals(BaseModel):
    ticker: str
    trend: PriceTrend
    ma_cross: bool
    sma20: Optional[float] = None
    sma50: Optional[float] = None
    rsi: Optional[float] = None
    analyzed_at: datetime = Field(default_factory=utc_now)


class AnalystSummary(BaseModel):
    ticker: str
    buy_count: int = 0
    hold_count: int = 0
    sell_count: int = 0
    average_target: float = 0.0
    consensus: Consensus = "hold"


class BuyRecommendation(BaseModel):
    """Whole-share position sized from a risk model."""

    ticker: str
    shares_to_buy: int = Field(ge=0)
    entry_price: float
    order_type: Literal["market", "limit"]
    total_investment: float
    portfolio_percentage: float


class TradeConfirmation(BaseModel):
    ticker: str
    quantity: int
    price: float
    broker_platform: str
    confirmation_id: str
    executed_at: datetime = Field(default_factory=utc_now)
    is_mock: bool = True


class AlertThresholds(BaseModel):
    price_drop_percent: Optional[float] = None
    price_gain_percent: Optional[float] = None


class MonitoringPlan(BaseModel):
    ticker: str
    alert_app: str
    price_alerts_set: bool = True
    earnings_review_planned: bool = True
    review_frequency: Literal["quarterly", "yearly"]
    next_review_date: datetime
    alert_thresholds: Optional[AlertThresholds] = None
