"""Market data provider backed by the FMP and FRED HTTP APIs."""

import asyncio
import logging
from typing import Any, Dict, List

from research_workflow.analysis.models import MarketTrend
from research_workflow.analysis.scoring import LARGE_CAP, MID_CAP
from research_workflow.analysis.technicals import determine_trend, simple_moving_average
from research_workflow.integrations import fmp_client, fred_client
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

logger = logging.getLogger(__name__)

MARKET_INDEX = "^GSPC"

# SPDR sector ETFs stand in for their sectors
SECTOR_ETFS: Dict[str, str] = {
    "Technology": "XLK",
    "Healthcare": "XLV",
    "Financial Services": "XLF",
    "Energy": "XLE",
    "Consumer Cyclical": "XLY",
    "Consumer Defensive": "XLP",
    "Industrials": "XLI",
    "Utilities": "XLU",
    "Basic Materials": "XLB",
    "Real Estate": "XLRE",
    "Communication Services": "XLC",
}

_TREND_TO_MARKET: Dict[str, MarketTrend] = {
    "upward": "bullish",
    "downward": "bearish",
    "sideways": "neutral",
}


def _float(value: Any, default: float = 0.0) -> float:
    try:
        return float(value) if value is not None else default
    except (TypeError, ValueError):
        return default


def _optional_float(value: Any):
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def _screener_params(filters: Dict[str, Any]) -> Dict[str, Any]:
    params: Dict[str, Any] = {"isActivelyTrading": "true", "limit": 50}
    market_cap = filters.get("market_cap")
    if market_cap == "large":
        params["marketCapMoreThan"] = LARGE_CAP
    elif market_cap == "mid":
        params["marketCapMoreThan"] = MID_CAP
        params["marketCapLowerThan"] = LARGE_CAP
    elif market_cap == "small":
        params["marketCapLowerThan"] = MID_CAP
    if filters.get("sector"):
        params["sector"] = filters["sector"]
    if filters.get("min_price") is not None:
        params["priceMoreThan"] = filters["min_price"]
    if filters.get("max_price") is not None:
        params["priceLowerThan"] = filters["max_price"]
    return params


class HttpMarketDataProvider(MarketDataProvider):
    """Live market data from Financial Modeling Prep and FRED.

    API keys come from settings (FMP_API_KEY, FRED_API_KEY); calls made
    without a key raise ExternalDependencyError.
    """

    async def fetch_macro_indicators(self) -> MacroIndicators:
        names = ("interest_rate", "inflation_rate", "unemployment_rate")
        results = await asyncio.gather(
            fred_client.fetch_interest_rate(),
            fred_client.fetch_inflation_rate(),
            fred_client.fetch_unemployment_rate(),
            return_exceptions=True,
        )

        indicators = MacroIndicators()
        for name, result in zip(names, results):
            if isinstance(result, ExternalDependencyError):
                indicators.failures[name] = str(result)
            elif isinstance(result, BaseException):
                raise result
            else:
                setattr(indicators, name, result)

        if len(indicators.failures) == len(names):
            raise ExternalDependencyError(
                "No macro indicators available: " + "; ".join(indicators.failures.values()),
                provider="fred",
            )
        return indicators

    async def fetch_market_trend(self) -> MarketTrend:
        closes = await self.fetch_price_history(MARKET_INDEX, days=250)
        trend = determine_trend(
            closes, simple_moving_average(closes, 50), simple_moving_average(closes, 200)
        )
        return _TREND_TO_MARKET[trend]

    async def fetch_sector_performance(self) -> List[SectorPerformance]:
        symbols = list(SECTOR_ETFS.values())
        changes, quotes = await asyncio.gather(
            fmp_client.fetch_price_changes(symbols),
            fmp_client.fetch_quotes(symbols),
        )
        changes_by_symbol = {row.get("symbol"): row for row in changes or []}
        caps_by_symbol = {row.get("symbol"): row.get("marketCap") for row in quotes or []}

        sectors = []
        for sector_name, symbol in SECTOR_ETFS.items():
            row = changes_by_symbol.get(symbol)
            if row is None:
                logger.warning(f"No price change data for sector ETF {symbol}")
                continue
            sectors.append(
                SectorPerformance(
                    sector_name=sector_name,
                    market_cap=_float(caps_by_symbol.get(symbol)),
                    change_1d=_float(row.get("1D")),
                    change_1w=_float(row.get("5D")),
                    change_1m=_float(row.get("1M")),
                    change_3m=_float(row.get("3M")),
                    change_1y=_float(row.get("1Y")),
                )
            )
        return sectors

    async def screen_stocks(self, filters: Dict[str, Any]) -> List[ScreenResult]:
        rows = await fmp_client.screen(_screener_params(filters))
        if not rows:
            return []

        quotes = await fmp_client.fetch_quotes([row["symbol"] for row in rows if row.get("symbol")])
        pe_by_symbol = {quote.get("symbol"): _float(quote.get("pe")) for quote in quotes or []}

        min_yield = filters.get("dividend_yield_min")
        max_pe = filters.get("pe_ratio_max")
        results = []
        for row in rows:
            price = _optional_float(row.get("price"))
            dividend = _float(row.get("lastAnnualDividend"))
            dividend_yield = round(dividend / price * 100, 2) if price else 0.0
            pe_ratio = pe_by_symbol.get(row.get("symbol"), 0.0)

            if min_yield is not None and dividend_yield < min_yield:
                continue
            if max_pe is not None and (pe_ratio <= 0 or pe_ratio > max_pe):
                continue

            results.append(
                ScreenResult(
                    ticker=row["symbol"],
                    company_name=row.get("companyName") or row["symbol"],
                    sector=row.get("sector") or "Unknown",
                    market_cap=_float(row.get("marketCap")),
                    dividend_yield=dividend_yield,
                    pe_ratio=round(pe_ratio, 2),
                    price=price,
                )
            )
        return results

    async def fetch_financials(self, ticker: str) -> FinancialHistory:
        income, balance, cash_flow = await asyncio.gather(
            fmp_client.fetch_income_statements(ticker),
            fmp_client.fetch_balance_sheets(ticker),
            fmp_client.fetch_cash_flow_statements(ticker),
        )
        if not income:
            raise ExternalDependencyError(f"No financial data available for {ticker}", provider="fmp")

        latest_balance = balance[0] if balance else {}
        latest_cash_flow = cash_flow[0] if cash_flow else {}
        return FinancialHistory(
            ticker=ticker.upper(),
            revenue=[_float(row.get("revenue")) for row in income],
            net_income=[_float(row.get("netIncome")) for row in income],
            total_liabilities=_optional_float(latest_balance.get("totalLiabilities")),
            total_equity=_optional_float(latest_balance.get("totalStockholdersEquity")),
            operating_cash_flow=_optional_float(latest_cash_flow.get("operatingCashFlow")),
            capital_expenditure=_optional_float(latest_cash_flow.get("capitalExpenditure")),
        )

    async def fetch_company_profile(self, ticker: str) -> CompanyProfile:
        profile, ratios = await asyncio.gather(
            fmp_client.fetch_profile(ticker),
            fmp_client.fetch_ratios(ticker),
        )
        return CompanyProfile(
            ticker=ticker.upper(),
            company_name=profile.get("companyName") or ticker.upper(),
            sector=profile.get("sector"),
            industry=profile.get("industry"),
            description=profile.get("description"),
            operating_margin=_optional_float(ratios.get("operatingProfitMargin")),
        )

    async def fetch_valuation(self, ticker: str) -> ValuationSnapshot:
        quotes, metrics = await asyncio.gather(
            fmp_client.fetch_quotes([ticker.upper()]),
            fmp_client.fetch_key_metrics(ticker),
        )
        if not quotes:
            raise ExternalDependencyError(f"No quote available for {ticker}", provider="fmp")
        quote = quotes[0]
        return ValuationSnapshot(
            ticker=ticker.upper(),
            price=_optional_float(quote.get("price")),
            pe_ratio=_optional_float(quote.get("pe")) or _optional_float(metrics.get("peRatio")),
            pb_ratio=_optional_float(metrics.get("pbRatio")),
            earnings_per_share=_optional_float(quote.get("eps"))
            or _optional_float(metrics.get("netIncomePerShare")),
            book_value_per_share=_optional_float(metrics.get("bookValuePerShare")),
        )

    async def fetch_price_history(self, ticker: str, days: int = 200) -> List[float]:
        rows = await fmp_client.fetch_historical_closes(ticker, days=days)
        closes = [_float(row.get("close")) for row in rows if row.get("close") is not None]
        closes.reverse()
        return closes

    async def fetch_analyst_ratings(self, ticker: str) -> List[AnalystRating]:
        grades, targets = await asyncio.gather(
            fmp_client.fetch_grades(ticker),
            fmp_client.fetch_price_targets(ticker),
        )
        # Newest target per firm; FMP lists newest first
        target_by_firm: Dict[str, float] = {}
        for row in targets or []:
            firm = row.get("analystCompany")
            if firm and firm not in target_by_firm:
                target = _optional_float(row.get("priceTarget"))
                if target:
                    target_by_firm[firm] = target

        ratings = []
        seen = set()
        for row in grades or []:
            firm = row.get("gradingCompany") or ""
            if firm in seen or not row.get("newGrade"):
                continue
            seen.add(firm)
            ratings.append(
                AnalystRating(firm=firm, rating=row["newGrade"], price_target=target_by_firm.get(firm))
            )
        return ratings
