"""Scoring heuristics: macro summary, sector ranking, moat and analyst consensus."""

from typing import Iterable, Mapping, Optional, Sequence

from research_workflow.analysis.models import (
    AnalystSummary,
    MarketTrend,
    MoatAnalysis,
    SectorRanking,
)

# Sector score weights
GROWTH_WEIGHT = 0.5
MARKET_CAP_WEIGHT = 0.3  # applied to market cap in billions
MOMENTUM_WEIGHT = 0.2

# Momentum blends recent performance windows, short-term weighted less
MOMENTUM_WINDOWS = {"1d": 0.1, "1w": 0.2, "1m": 0.3, "3m": 0.4}

LARGE_CAP = 10_000_000_000
MID_CAP = 2_000_000_000

_TREND_DESCRIPTIONS = {
    "bullish": "Markets are showing positive momentum",
    "bearish": "Markets are experiencing downward pressure",
    "neutral": "Markets are trading sideways",
}


def _level(value: float, high: float, moderate: float, high_word: str) -> str:
    if value > high:
        return high_word
    if value > moderate:
        return "moderate"
    return "low"


def summarize_macro(
    interest_rate: Optional[float],
    inflation_rate: Optional[float],
    unemployment_rate: Optional[float],
    market_trend: MarketTrend,
) -> str:
    """One-sentence reading of the macro indicators; missing readings are left out."""
    parts = []
    if interest_rate is not None:
        parts.append(
            f"Interest rates are {_level(interest_rate, 5, 2, 'elevated')} at {interest_rate:.2f}%"
        )
    if inflation_rate is not None:
        parts.append(f"inflation is {_level(inflation_rate, 4, 2, 'high')} at {inflation_rate:.2f}%")
    if unemployment_rate is not None:
        parts.append(
            f"unemployment is {_level(unemployment_rate, 6, 4, 'elevated')} "
            f"at {unemployment_rate:.1f}%"
        )
    parts.append(_TREND_DESCRIPTIONS[market_trend])
    summary = ", ".join(parts) + "."
    return summary[0].upper() + summary[1:]


def sector_momentum(performance: Mapping[str, float]) -> float:
    """
    Weighted recent performance normalized to 0..1.

    Args:
        performance: Percent changes keyed by window ("1d", "1w", "1m", "3m")

    Returns:
        Momentum where -20% maps to 0 and +20% maps to 1, clamped
    """
    raw = sum(performance.get(window, 0.0) * weight for window, weight in MOMENTUM_WINDOWS.items())
    return max(0.0, min(1.0, (raw + 20) / 40))


def sector_outlook(one_year_performance: float) -> str:
    if one_year_performance > 15:
        return "Strong growth expected with favorable market conditions"
    if one_year_performance > 5:
        return "Moderate growth with stable fundamentals"
    if one_year_performance > -5:
        return "Neutral outlook with mixed indicators"
    return "Challenging conditions with headwinds"


def score_sector(
    sector_name: str,
    growth_rate: float,
    market_cap: float,
    momentum: float,
    outlook: Optional[str] = None,
) -> SectorRanking:
    """Score one sector on growth, size and momentum."""
    score = (
        growth_rate * GROWTH_WEIGHT
        + (market_cap / 1_000_000_000) * MARKET_CAP_WEIGHT
        + momentum * MOMENTUM_WEIGHT
    )

    if growth_rate > 10:
        growth = f"strong growth ({growth_rate:.1f}%)"
    elif growth_rate > 5:
        growth = f"moderate growth ({growth_rate:.1f}%)"
    else:
        growth = f"limited growth ({growth_rate:.1f}%)"

    if momentum > 0.7:
        trend = "positive momentum"
    elif momentum > 0.4:
        trend = "neutral momentum"
    else:
        trend = "weak momentum"

    rationale = f"Sector shows {growth} and {trend}."
    if outlook:
        rationale += f" Industry outlook: {outlook}."

    return SectorRanking(
        sector_name=sector_name,
        score=round(score, 2),
        rationale=rationale,
        growth_rate=growth_rate,
        market_cap=market_cap,
        momentum=momentum,
    )


def rank_sectors(rankings: Iterable[SectorRanking]) -> list[SectorRanking]:
    """Sort rankings by score, best first (stable for ties)."""
    return sorted(rankings, key=lambda ranking: ranking.score, reverse=True)


def market_cap_category(market_cap: float) -> str:
    if market_cap >= LARGE_CAP:
        return "large"
    if market_cap >= MID_CAP:
        return "mid"
    return "small"


def analyze_moat(
    ticker: str,
    patent_count: Optional[int] = None,
    brand_value: Optional[float] = None,
    brand_recognition: Optional[float] = None,
    customer_count: Optional[int] = None,
    retention_rate: Optional[float] = None,
    customer_concentration: Optional[float] = None,
    operating_margin: Optional[float] = None,
    efficiency: Optional[float] = None,
) -> MoatAnalysis:
    """
    Assess competitive advantages from a company profile.

    Each of patents, brand, customers and cost position scores 0-3 (0 when
    no data is available); the overall score is their sum out of 12 as a
    percentage.

    Returns:
        MoatAnalysis with a narrative per dimension
    """
    patents, patent_score = "No patent information available.", 0
    if patent_count is not None:
        if patent_count > 100:
            patents = f"Strong patent portfolio with {patent_count}+ patents providing significant IP protection."
            patent_score = 3
        elif patent_count > 20:
            patents = f"Moderate patent portfolio with {patent_count} patents."
            patent_score = 2
        elif patent_count > 0:
            patents = f"Limited patent portfolio with {patent_count} patents."
            patent_score = 1

    brand, brand_score = "Brand strength not assessed.", 0
    if brand_value or brand_recognition:
        value = brand_value or 0
        recognition = brand_recognition or 0
        if value > 10_000_000_000 or recognition > 0.8:
            brand = "Exceptional brand with global recognition and strong customer loyalty."
            brand_score = 3
        elif value > 1_000_000_000 or recognition > 0.5:
            brand = "Strong brand with significant market presence."
            brand_score = 2
        else:
            brand = "Developing brand with limited recognition."
            brand_score = 1

    customers, customer_score = "Customer base information not available.", 0
    if customer_count is not None:
        retention = retention_rate or 0
        concentration = customer_concentration if customer_concentration is not None else 1
        if customer_count > 1_000_000 and retention > 0.9:
            customers = (f"Large, loyal customer base with {customer_count:,}+ customers "
                         f"and {retention * 100:.0f}% retention rate.")
            customer_score = 3
        elif customer_count > 100_000 and retention > 0.7:
            customers = (f"Solid customer base with {customer_count:,} customers "
                         f"and {retention * 100:.0f}% retention.")
            customer_score = 2
        elif concentration < 0.3:
            customers = "Diversified customer base with low concentration risk."
            customer_score = 2
        else:
            customers = f"Growing customer base with {customer_count:,} customers."
            customer_score = 1

    cost, cost_score = "Cost position not assessed.", 0
    if operating_margin is not None or efficiency is not None:
        margin = operating_margin or 0
        eff = efficiency or 0
        if margin > 0.25 or eff > 0.8:
            cost = "Strong cost leadership with industry-leading margins and operational efficiency."
            cost_score = 3
        elif margin > 0.15 or eff > 0.6:
            cost = "Competitive cost structure with above-average margins."
            cost_score = 2
        else:
            cost = "Average cost position relative to peers."
            cost_score = 1

    total = patent_score + brand_score + customer_score + cost_score
    return MoatAnalysis(
        ticker=ticker,
        patents=patents,
        brand_strength=brand,
        customer_base=customers,
        cost_leadership=cost,
        overall_moat_score=round(total / 12 * 100),
    )


_BUY_WORDS = ("buy", "outperform", "overweight")
_HOLD_WORDS = ("hold", "neutral", "equal")
_SELL_WORDS = ("sell", "underperform", "underweight")


def aggregate_analyst_sentiment(
    ticker: str, ratings: Sequence[tuple[str, Optional[float]]]
) -> AnalystSummary:
    """
    Count ratings and derive a consensus.

    Args:
        ticker: Symbol the ratings belong to
        ratings: (rating label, price target or None) pairs

    Returns:
        AnalystSummary; consensus is "strong buy" at 70%+ buys, "buy" at
        50%+, "sell" at 30%+ sells, otherwise "hold"
    """
    buy = hold = sell = 0
    targets = []
    for label, target in ratings:
        label = (label or "").lower()
        if any(word in label for word in _BUY_WORDS):
            buy += 1
        elif any(word in label for word in _HOLD_WORDS):
            hold += 1
        elif any(word in label for word in _SELL_WORDS):
            sell += 1
        if target is not None and target > 0:
            targets.append(target)

    total = buy + hold + sell
    consensus = "hold"
    if total:
        if buy / total >= 0.7:
            consensus = "strong buy"
        elif buy / total >= 0.5:
            consensus = "buy"
        elif sell / total >= 0.3:
            consensus = "sell"

    average = sum(targets) / len(targets) if targets else 0.0
    return AnalystSummary(
        ticker=ticker,
        buy_count=buy,
        hold_count=hold,
        sell_count=sell,
        average_target=round(average, 2),
        consensus=consensus,
    )
