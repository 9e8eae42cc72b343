"""Tests for field-level input validation."""

import math

import pytest

from research_workflow.validation import (
    combine,
    normalize_inputs,
    to_snake_case,
    validate_alert_app,
    validate_broker_platform,
    validate_capital_available,
    validate_investment_goals,
    validate_investment_horizon,
    validate_investment_profile,
    validate_percentage,
    validate_portfolio_size,
    validate_review_frequency,
    validate_risk_model,
    validate_risk_tolerance,
    validate_screening_filters,
    validate_technical_indicator,
    validate_ticker,
    validate_ticker_list,
)
from research_workflow.workflow.state import ValidationResult


class TestNormalizeInputs:
    """Test input key normalization."""

    def test_camel_case_keys_become_snake_case(self):
        result = normalize_inputs({"riskTolerance": "low", "investmentHorizonYears": 5})

        assert result == {"risk_tolerance": "low", "investment_horizon_years": 5}

    def test_snake_case_keys_pass_through(self):
        assert normalize_inputs({"peer_tickers": ["MSFT"]}) == {"peer_tickers": ["MSFT"]}

    def test_nested_mappings_are_normalized(self):
        result = normalize_inputs({"alertThresholds": {"priceDropPercent": 10}})

        assert result == {"alert_thresholds": {"price_drop_percent": 10}}

    @pytest.mark.parametrize("value", [None, "text", 42, ["a", "b"]])
    def test_non_mapping_normalizes_to_empty_dict(self, value):
        assert normalize_inputs(value) == {}

    def test_to_snake_case(self):
        assert to_snake_case("dividendYieldMin") == "dividend_yield_min"
        assert to_snake_case("pe_ratio_max") == "pe_ratio_max"


class TestInvestmentProfile:
    """Test investment profile validators."""

    def test_valid_profile(self):
        result = validate_investment_profile(
            {
                "risk_tolerance": "high",
                "investment_horizon_years": 30,
                "capital_available": 1000.5,
                "long_term_goals": "dividend income",
            }
        )

        assert result.is_valid
        assert result.errors == []

    @pytest.mark.parametrize("value", [None, "text", 42])
    def test_malformed_profile_reports_every_field(self, value):
        result = validate_investment_profile(value)

        assert not result.is_valid
        assert result.errors == [
            "Risk tolerance is required",
            "Investment horizon is required",
            "Capital available is required",
            "Investment goals are required",
        ]

    def test_invalid_risk_tolerance(self):
        result = validate_risk_tolerance("extreme")

        assert result.errors == ["Risk tolerance must be one of: low, medium, high"]

    @pytest.mark.parametrize(
        "value, message",
        [
            (0, "Investment horizon must be greater than 0 years"),
            (-3, "Investment horizon must be greater than 0 years"),
            (101, "Investment horizon must be 100 years or less"),
            (5.5, "Investment horizon must be an integer"),
            ("10", "Investment horizon must be an integer"),
            (True, "Investment horizon must be an integer"),
        ],
    )
    def test_invalid_horizon(self, value, message):
        assert validate_investment_horizon(value).errors == [message]

    @pytest.mark.parametrize("value", [1, 100, 10.0])
    def test_horizon_boundaries_accepted(self, value):
        assert validate_investment_horizon(value).is_valid

    @pytest.mark.parametrize("value", [True, False, "1000", math.nan, math.inf])
    def test_capital_rejects_non_numbers(self, value):
        assert validate_capital_available(value).errors == ["Capital available must be a number"]

    def test_capital_must_be_positive(self):
        assert validate_capital_available(0).errors == ["Capital available must be greater than 0"]

    def test_invalid_goal(self):
        result = validate_investment_goals("get rich")

        assert not result.is_valid
        assert result.errors[0].startswith("Investment goals must be one of:")


class TestScreeningFilters:
    """Test stock screening filter validation."""

    def test_no_filters_is_valid(self):
        assert validate_screening_filters(None).is_valid
        assert validate_screening_filters({}).is_valid

    def test_non_mapping_is_rejected(self):
        assert validate_screening_filters("large").errors == ["Screening filters must be an object"]

    def test_valid_filters(self):
        result = validate_screening_filters(
            {
                "market_cap": "large",
                "dividend_yield_min": 2.5,
                "pe_ratio_max": 25,
                "sector": "Technology",
                "min_price": 10,
                "max_price": 500,
            }
        )

        assert result.is_valid

    def test_min_price_above_max_price(self):
        result = validate_screening_filters({"min_price": 100, "max_price": 50})

        assert result.errors == ["Minimum price cannot be greater than maximum price"]

    def test_equal_prices_accepted(self):
        assert validate_screening_filters({"min_price": 50, "max_price": 50}).is_valid

    def test_collects_multiple_errors(self):
        result = validate_screening_filters(
            {"market_cap": "mega", "dividend_yield_min": 150, "pe_ratio_max": -1, "min_price": True}
        )

        assert "Market cap must be one of: large, mid, small" in result.errors
        assert "Dividend yield cannot exceed 100%" in result.errors
        assert "PE ratio cannot be negative" in result.errors
        assert "Minimum price must be a number" in result.errors

    def test_empty_sector_rejected(self):
        assert validate_screening_filters({"sector": "  "}).errors == ["Sector cannot be empty"]


class TestTradeAndMonitoring:
    """Test position sizing, trade and monitoring validators."""

    def test_portfolio_size(self):
        assert validate_portfolio_size(100000).is_valid
        assert validate_portfolio_size(None).errors == ["Portfolio size is required"]
        assert validate_portfolio_size(0).errors == ["Portfolio size must be greater than 0"]
        assert validate_portfolio_size(False).errors == ["Portfolio size must be a number"]

    def test_risk_model(self):
        assert validate_risk_model("balanced").is_valid
        assert validate_risk_model("yolo").errors == [
            "Risk model must be one of: conservative, balanced, aggressive"
        ]

    def test_review_frequency(self):
        assert validate_review_frequency("yearly").is_valid
        assert validate_review_frequency("monthly").errors == [
            "Review frequency must be one of: quarterly, yearly"
        ]

    def test_alert_app_and_broker(self):
        assert validate_alert_app(None).errors == ["Alert application name is required"]
        assert validate_broker_platform("   ").errors == ["Broker platform name cannot be empty"]
        assert validate_broker_platform("E*TRADE").is_valid

    @pytest.mark.parametrize("value", [0, -5, 100.5])
    def test_percentage_out_of_range(self, value):
        result = validate_percentage(value, "Price drop percent", 100)

        assert result.errors == ["Price drop percent must be greater than 0 and at most 100"]

    def test_percentage_optional(self):
        assert validate_percentage(None, "Price gain percent", 1000).is_valid
        assert validate_percentage(1000, "Price gain percent", 1000).is_valid

    def test_technical_indicator(self):
        assert validate_technical_indicator(None).is_valid
        assert validate_technical_indicator("RSI").is_valid
        assert not validate_technical_indicator("MACD").is_valid


class TestTickers:
    """Test ticker validation."""

    @pytest.mark.parametrize("value", ["A", "AAPL", "GOOGL", " MSFT "])
    def test_valid_tickers(self, value):
        assert validate_ticker(value).is_valid

    @pytest.mark.parametrize("value", ["aapl", "TOOLONG", "BRK.B", "123"])
    def test_invalid_tickers(self, value):
        assert validate_ticker(value).errors == ["Ticker symbol must be 1-5 uppercase letters"]

    def test_required_ticker(self):
        assert validate_ticker(None).errors == ["Ticker symbol is required"]
        assert validate_ticker(None, required=False).is_valid

    def test_ticker_list(self):
        assert validate_ticker_list(None).is_valid
        assert validate_ticker_list(["MSFT", "GOOGL"]).is_valid
        assert validate_ticker_list("MSFT").errors == ["Peer tickers must be a list of ticker symbols"]
        assert validate_ticker_list(["MSFT", "bad"]).errors == [
            "Peer tickers contains an invalid symbol: 'bad'"
        ]


def test_combine_preserves_order():
    result = combine(
        ValidationResult.from_errors(["first"]),
        ValidationResult(),
        ValidationResult.from_errors(["second", "third"]),
    )

    assert not result.is_valid
    assert result.errors == ["first", "second", "third"]


def test_combine_of_valid_results_is_valid():
    assert combine(ValidationResult(), ValidationResult()).is_valid
