"""Technical indicators over daily closing prices (oldest first)."""

from typing import Optional, Sequence

from research_workflow.analysis.models import PriceTrend, TechnicalSignals

RSI_PERIOD = 14
CROSSOVER_BAND = 0.02


def simple_moving_average(closes: Sequence[float], period: int) -> Optional[float]:
    """Mean of the last ``period`` closes, or None if there are too few."""
    if period <= 0 or len(closes) < period:
        return None
    window = closes[-period:]
    return sum(window) / period


def relative_strength_index(closes: Sequence[float], period: int = RSI_PERIOD) -> Optional[float]:
    """
    Simple-average RSI over the last ``period`` price changes.

    Returns:
        RSI in 0..100 (100 when there were no losses), or None if there are
        fewer than ``period + 1`` closes
    """
    if len(closes) < period + 1:
        return None

    changes = [b - a for a, b in zip(closes[-period - 1:-1], closes[-period:])]
    avg_gain = sum(c for c in changes if c > 0) / period
    avg_loss = sum(-c for c in changes if c < 0) / period
    if avg_loss == 0:
        return 100.0

    rs = avg_gain / avg_loss
    return 100 - 100 / (1 + rs)


def determine_trend(
    closes: Sequence[float], sma20: Optional[float], sma50: Optional[float]
) -> PriceTrend:
    """Classify the price trend from moving averages, or a 20-day change."""
    if len(closes) < 20:
        return "sideways"

    current = closes[-1]
    if sma20 is None or sma50 is None:
        past = closes[-20]
        change = (current - past) / past * 100 if past else 0
        if change > 5:
            return "upward"
        if change < -5:
            return "downward"
        return "sideways"

    if current > sma20 > sma50:
        return "upward"
    if current < sma20 < sma50:
        return "downward"
    return "sideways"


def detect_ma_crossover(sma20: Optional[float], sma50: Optional[float]) -> bool:
    """True when the 20- and 50-day averages are within 2% of each other."""
    if not sma20 or not sma50:
        return False
    return abs(sma20 - sma50) / sma50 < CROSSOVER_BAND


def technical_signals(ticker: str, closes: Sequence[float]) -> TechnicalSignals:
    sma20 = simple_moving_average(closes, 20)
    sma50 = simple_moving_average(closes, 50)
    rsi = relative_strength_index(closes)
    return TechnicalSignals(
        ticker=ticker,
        trend=determine_trend(closes, sma20, sma50),
        ma_cross=detect_ma_crossover(sma20, sma50),
        sma20=round(sma20, 2) if sma20 is not None else None,
        sma50=round(sma50, 2) if sma50 is not None else None,
        rsi=round(rsi, 2) if rsi is not None else None,
    )
