"""Growth and valuation calculations."""

from typing import Optional, Sequence

from research_workflow.analysis.models import ValuationMetrics

UNDERVALUED_BELOW = 0.9
OVERVALUED_ABOVE = 1.1


def calculate_growth_rate(values: Sequence[float]) -> float:
    """
    Compound annual growth rate of a yearly series.

    Args:
        values: Yearly values, newest first

    Returns:
        CAGR as a percentage; 0.0 when fewer than two positive values exist
    """
    positive = [value for value in values if value is not None and value > 0]
    if len(positive) < 2:
        return 0.0

    newest, oldest = positive[0], positive[-1]
    years = len(positive) - 1
    return ((newest / oldest) ** (1 / years) - 1) * 100


def _average_positive(values: Sequence[Optional[float]]) -> float:
    positive = [value for value in values if value is not None and value > 0]
    return sum(positive) / len(positive) if positive else 0.0


def _compare(ratio: float, peer_average: float) -> str:
    if ratio <= 0 or peer_average <= 0:
        return "N/A"
    if ratio < peer_average * UNDERVALUED_BELOW:
        return "undervalued"
    if ratio > peer_average * OVERVALUED_ABOVE:
        return "overvalued"
    return "fairly valued"


def calculate_valuation(
    ticker: str,
    price: Optional[float] = None,
    pe_ratio: Optional[float] = None,
    pb_ratio: Optional[float] = None,
    earnings_per_share: Optional[float] = None,
    book_value_per_share: Optional[float] = None,
    peer_pe_ratios: Sequence[Optional[float]] = (),
    peer_pb_ratios: Sequence[Optional[float]] = (),
) -> ValuationMetrics:
    """
    Compute P/E and P/B and compare them against peer averages.

    Ratios not supplied directly are derived from price and per-share
    figures. A ratio is "undervalued" below 90% of the peer average and
    "overvalued" above 110% of it. Fair value is the peer-average P/E applied
    to the company's earnings per share.

    Returns:
        ValuationMetrics rounded to two decimals
    """
    if not pe_ratio and price and earnings_per_share:
        pe_ratio = price / earnings_per_share
    if not pb_ratio and price and book_value_per_share:
        pb_ratio = price / book_value_per_share
    pe_ratio = pe_ratio or 0.0
    pb_ratio = pb_ratio or 0.0

    fair_value = None
    if peer_pe_ratios or peer_pb_ratios:
        avg_pe = _average_positive(peer_pe_ratios)
        avg_pb = _average_positive(peer_pb_ratios)
        vs_peers = (
            f"PE ratio is {_compare(pe_ratio, avg_pe)} vs peers (avg: {avg_pe:.2f}). "
            f"PB ratio is {_compare(pb_ratio, avg_pb)} vs peers (avg: {avg_pb:.2f})."
        )
        if avg_pe > 0 and earnings_per_share:
            fair_value = round(avg_pe * earnings_per_share, 2)
    else:
        vs_peers = "No peer data available for comparison."

    return ValuationMetrics(
        ticker=ticker,
        pe_ratio=round(pe_ratio, 2),
        pb_ratio=round(pb_ratio, 2),
        vs_peers=vs_peers,
        fair_value_estimate=fair_value,
    )
