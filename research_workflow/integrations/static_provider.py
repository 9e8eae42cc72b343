"""Deterministic offline market data.

Serves a small fixed universe of companies so the whole pipeline can run
without network access or API keys (local development, demos, tests).
Unknown tickers raise ``ExternalDependencyError`` like a live source would.
"""

import math
from typing import Any, Dict, List

from research_workflow.analysis.models import MarketTrend
from research_workflow.analysis.scoring import market_cap_category
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
from research_workflow.workflow.error_handling import ExternalDependencyError

PROVIDER_NAME = "static"

SECTORS: List[SectorPerformance] = [
    SectorPerformance(sector_name="Technology", market_cap=15_200_000_000_000,
                      change_1d=0.8, change_1w=2.1, change_1m=4.5, change_3m=9.8, change_1y=24.3),
    SectorPerformance(sector_name="Healthcare", market_cap=7_100_000_000_000,
                      change_1d=0.2, change_1w=0.6, change_1m=1.4, change_3m=3.2, change_1y=8.7),
    SectorPerformance(sector_name="Financial Services", market_cap=8_300_000_000_000,
                      change_1d=-0.3, change_1w=1.1, change_1m=2.2, change_3m=5.1, change_1y=12.9),
    SectorPerformance(sector_name="Energy", market_cap=3_400_000_000_000,
                      change_1d=-1.1, change_1w=-2.4, change_1m=-3.8, change_3m=-6.0, change_1y=-7.5),
    SectorPerformance(sector_name="Consumer Defensive", market_cap=4_600_000_000_000,
                      change_1d=0.1, change_1w=0.3, change_1m=0.9, change_3m=1.8, change_1y=4.1),
]

# ticker -> (company, sector, market cap, price, annual dividend, eps, book value per share)
COMPANIES: Dict[str, tuple] = {
    "AAPL": ("Apple Inc.", "Technology", 2_900_000_000_000, 190.0, 0.96, 6.4, 4.3),
    "MSFT": ("Microsoft Corporation", "Technology", 3_100_000_000_000, 415.0, 3.0, 11.8, 34.0),
    "NVDA": ("NVIDIA Corporation", "Technology", 2_200_000_000_000, 880.0, 0.16, 11.9, 17.5),
    "JNJ": ("Johnson & Johnson", "Healthcare", 380_000_000_000, 158.0, 4.76, 10.3, 28.6),
    "PFE": ("Pfizer Inc.", "Healthcare", 160_000_000_000, 28.0, 1.68, 0.4, 15.9),
    "JPM": ("JPMorgan Chase & Co.", "Financial Services", 560_000_000_000, 195.0, 4.6, 16.2, 104.5),
    "XOM": ("Exxon Mobil Corporation", "Energy", 460_000_000_000, 115.0, 3.8, 8.9, 51.6),
    "KO": ("The Coca-Cola Company", "Consumer Defensive", 265_000_000_000, 61.0, 1.94, 2.5, 6.0),
    "PG": ("Procter & Gamble Company", "Consumer Defensive", 380_000_000_000, 162.0, 3.76, 6.1, 20.1),
    "SMCI": ("Super Micro Computer, Inc.", "Technology", 1_500_000_000, 42.0, 0.0, 2.1, 9.4),
}

PEERS: Dict[str, List[str]] = {
    "Technology": ["AAPL", "MSFT", "NVDA"],
    "Healthcare": ["JNJ", "PFE"],
    "Financial Services": ["JPM"],
    "Energy": ["XOM"],
    "Consumer Defensive": ["KO", "PG"],
}


def _seed(ticker: str) -> int:
    # Stable across processes, unlike hash()
    return sum(ord(char) * (index + 1) for index, char in enumerate(ticker))


class StaticMarketDataProvider(MarketDataProvider):
    """In-process provider over the fixed universe above."""

    def __init__(
        self,
        macro: MacroIndicators | None = None,
        market_trend: MarketTrend = "bullish",
    ):
        self.macro = macro or MacroIndicators(
            interest_rate=5.33, inflation_rate=3.1, unemployment_rate=3.9
        )
        self.market_trend = market_trend

    def _company(self, ticker: str) -> tuple:
        symbol = ticker.strip().upper()
        if symbol not in COMPANIES:
            raise ExternalDependencyError(f"No market data for ticker {symbol}", provider=PROVIDER_NAME)
        return COMPANIES[symbol]

    async def fetch_macro_indicators(self) -> MacroIndicators:
        return self.macro.model_copy(deep=True)

    async def fetch_market_trend(self) -> MarketTrend:
        return self.market_trend

    async def fetch_sector_performance(self) -> List[SectorPerformance]:
        return [sector.model_copy() for sector in SECTORS]

    async def screen_stocks(self, filters: Dict[str, Any]) -> List[ScreenResult]:
        results = []
        for ticker, (name, sector, cap, price, dividend, eps, _bvps) in COMPANIES.items():
            dividend_yield = round(dividend / price * 100, 2)
            pe_ratio = round(price / eps, 2) if eps > 0 else 0.0

            if filters.get("market_cap") and market_cap_category(cap) != filters["market_cap"]:
                continue
            if filters.get("sector") and sector.lower() != filters["sector"].strip().lower():
                continue
            if filters.get("dividend_yield_min") is not None and dividend_yield < filters["dividend_yield_min"]:
                continue
            if filters.get("pe_ratio_max") is not None and pe_ratio > filters["pe_ratio_max"]:
                continue
            if filters.get("min_price") is not None and price < filters["min_price"]:
                continue
            if filters.get("max_price") is not None and price > filters["max_price"]:
                continue

            results.append(
                ScreenResult(
                    ticker=ticker,
                    company_name=name,
                    sector=sector,
                    market_cap=cap,
                    dividend_yield=dividend_yield,
                    pe_ratio=pe_ratio,
                    price=price,
                )
            )
        return results

    async def fetch_financials(self, ticker: str) -> FinancialHistory:
        _name, _sector, cap, _price, _dividend, eps, bvps = self._company(ticker)
        seed = _seed(ticker.upper())
        growth = 1 + (seed % 12 + 3) / 100
        revenue_now = cap * 0.12
        revenue = [revenue_now / growth**year for year in range(5)]
        margin = 0.08 + (seed % 15) / 100
        equity = cap * bvps / (eps * 40) if eps > 0 else cap * 0.1
        return FinancialHistory(
            ticker=ticker.upper(),
            revenue=revenue,
            net_income=[value * margin for value in revenue],
            total_liabilities=equity * (0.5 + (seed % 20) / 10),
            total_equity=equity,
            operating_cash_flow=revenue_now * margin * 1.2,
            capital_expenditure=-revenue_now * 0.04,
        )

    async def fetch_company_profile(self, ticker: str) -> CompanyProfile:
        name, sector, cap, *_ = self._company(ticker)
        seed = _seed(ticker.upper())
        return CompanyProfile(
            ticker=ticker.upper(),
            company_name=name,
            sector=sector,
            industry=sector,
            patent_count=seed % 400,
            brand_value=cap * 0.05,
            brand_recognition=min(0.95, cap / 4_000_000_000_000 + 0.2),
            customer_count=(seed % 50 + 1) * 100_000,
            retention_rate=0.6 + (seed % 35) / 100,
            customer_concentration=(seed % 40) / 100,
            operating_margin=0.1 + (seed % 25) / 100,
            efficiency=0.5 + (seed % 40) / 100,
        )

    async def fetch_valuation(self, ticker: str) -> ValuationSnapshot:
        _name, _sector, _cap, price, _dividend, eps, bvps = self._company(ticker)
        return ValuationSnapshot(
            ticker=ticker.upper(),
            price=price,
            pe_ratio=round(price / eps, 2) if eps > 0 else None,
            pb_ratio=round(price / bvps, 2) if bvps > 0 else None,
            earnings_per_share=eps,
            book_value_per_share=bvps,
        )

    async def fetch_price_history(self, ticker: str, days: int = 200) -> List[float]:
        price = self._company(ticker)[3]
        seed = _seed(ticker.upper())
        drift = ((seed % 7) - 3) / 1000
        closes = []
        for day in range(days):
            age = days - 1 - day
            wave = math.sin((day + seed) / 9) * 0.02
            closes.append(round(price * (1 - drift * age) * (1 + wave), 2))
        return closes

    async def fetch_analyst_ratings(self, ticker: str) -> List[AnalystRating]:
        price = self._company(ticker)[3]
        seed = _seed(ticker.upper())
        labels = ["Buy", "Outperform", "Hold", "Buy", "Neutral", "Overweight", "Sell", "Buy"]
        firms = ["Morgan Stanley", "Goldman Sachs", "Barclays", "UBS",
                 "Citi", "Jefferies", "Wells Fargo", "Evercore"]
        offset = seed % len(labels)
        return [
            AnalystRating(
                firm=firm,
                rating=labels[(index + offset) % len(labels)],
                price_target=round(price * (1 + ((seed + index) % 30 - 10) / 100), 2),
            )
            for index, firm in enumerate(firms)
        ]
