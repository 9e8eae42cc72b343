"""Tests for growth and valuation calculations."""

import pytest

from research_workflow.analysis.valuation import calculate_growth_rate, calculate_valuation


class TestGrowthRate:
    def test_compound_annual_growth(self):
        # Newest first: 100 -> 121 over two years is 10% a year
        assert calculate_growth_rate([121.0, 110.0, 100.0]) == pytest.approx(10.0)

    def test_declining_series(self):
        assert calculate_growth_rate([50.0, 100.0]) == pytest.approx(-50.0)

    @pytest.mark.parametrize("values", [[], [100.0], [100.0, 0.0], [-5.0, -10.0]])
    def test_too_few_positive_values(self, values):
        assert calculate_growth_rate(values) == 0.0


class TestCalculateValuation:
    def test_ratios_derived_from_per_share_figures(self):
        metrics = calculate_valuation("X", price=100.0, earnings_per_share=5.0, book_value_per_share=20.0)

        assert metrics.pe_ratio == 20.0
        assert metrics.pb_ratio == 5.0
        assert metrics.vs_peers == "No peer data available for comparison."
        assert metrics.fair_value_estimate is None

    def test_overvalued_against_peers(self):
        metrics = calculate_valuation(
            "X",
            pe_ratio=30.0,
            pb_ratio=3.0,
            earnings_per_share=2.0,
            peer_pe_ratios=[20.0, 20.0],
            peer_pb_ratios=[3.0, None],
        )

        assert metrics.vs_peers == (
            "PE ratio is overvalued vs peers (avg: 20.00). "
            "PB ratio is fairly valued vs peers (avg: 3.00)."
        )
        assert metrics.fair_value_estimate == 40.0

    def test_missing_ratio_is_not_compared(self):
        metrics = calculate_valuation("X", peer_pe_ratios=[15.0])

        assert metrics.pe_ratio == 0.0
        assert metrics.vs_peers.startswith("PE ratio is N/A vs peers")
