"""Field-level input validation for the research workflow.

Every function here is pure: it takes a loosely-typed value (anything a JSON
transport could produce, including ``None``) and returns a
``ValidationResult`` listing human-readable reasons. Nothing raises for
malformed input.

Booleans are never accepted where a number is expected, even though ``bool``
is a subclass of ``int`` in Python.
"""

import math
import re
from typing import Any, Iterable, Mapping, Optional

from research_workflow.workflow.state import ValidationResult

RISK_TOLERANCES = ("low", "medium", "high")
LONG_TERM_GOALS = ("steady growth", "dividend income", "capital preservation")
MARKET_CAPS = ("large", "mid", "small")
RISK_MODELS = ("conservative", "balanced", "aggressive")
REVIEW_FREQUENCIES = ("quarterly", "yearly")
TECHNICAL_INDICATORS = ("moving average", "RSI")

TICKER_PATTERN = re.compile(r"^[A-Z]{1,5}$")

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


def _is_number(value: Any) -> bool:
    """True for real ints and floats (not bools, not NaN)."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return not (isinstance(value, float) and math.isnan(value))


def _is_integer(value: Any) -> bool:
    if not _is_number(value):
        return False
    return isinstance(value, int) or float(value).is_integer()


def _is_missing(value: Any) -> bool:
    return value is None


def _choice(value: Any, label: str, choices: Iterable[str], required: bool) -> ValidationResult:
    choices = tuple(choices)
    errors = []
    if _is_missing(value):
        if required:
            errors.append(f"{label} is required")
    elif value not in choices:
        errors.append(f"{label} must be one of: {', '.join(choices)}")
    return ValidationResult.from_errors(errors)


def _non_empty_string(value: Any, label: str, required: bool = True) -> ValidationResult:
    errors = []
    if _is_missing(value):
        if required:
            errors.append(f"{label} is required")
    elif not isinstance(value, str):
        errors.append(f"{label} must be a string")
    elif not value.strip():
        errors.append(f"{label} cannot be empty")
    return ValidationResult.from_errors(errors)


def combine(*results: ValidationResult) -> ValidationResult:
    """Merge several results into one, preserving error order."""
    errors: list[str] = []
    for result in results:
        errors.extend(result.errors)
    return ValidationResult.from_errors(errors)


def to_snake_case(key: str) -> str:
    """Convert ``camelCase`` to ``snake_case``; snake_case keys pass through."""
    return _CAMEL_BOUNDARY.sub("_", key).lower()


def normalize_inputs(inputs: Any) -> dict[str, Any]:
    """
    Normalize a step input mapping.

    Keys are converted to snake_case (nested mappings too). Anything that is
    not a mapping normalizes to an empty dict so validators can report the
    missing fields.

    Args:
        inputs: Raw caller-supplied inputs

    Returns:
        New dict with snake_case keys
    """
    if not isinstance(inputs, Mapping):
        return {}

    normalized: dict[str, Any] = {}
    for key, value in inputs.items():
        name = to_snake_case(key) if isinstance(key, str) else key
        if isinstance(value, Mapping):
            value = normalize_inputs(value)
        normalized[name] = value
    return normalized


# Investment profile

def validate_risk_tolerance(value: Any) -> ValidationResult:
    """Risk tolerance must be low, medium or high."""
    return _choice(value, "Risk tolerance", RISK_TOLERANCES, required=True)


def validate_investment_horizon(value: Any) -> ValidationResult:
    """Investment horizon must be a whole number of years in 1..100."""
    errors = []
    if _is_missing(value):
        errors.append("Investment horizon is required")
    elif not _is_integer(value):
        errors.append("Investment horizon must be an integer")
    elif value <= 0:
        errors.append("Investment horizon must be greater than 0 years")
    elif value > 100:
        errors.append("Investment horizon must be 100 years or less")
    return ValidationResult.from_errors(errors)


def validate_capital_available(value: Any) -> ValidationResult:
    """Available capital must be a positive number."""
    errors = []
    if _is_missing(value):
        errors.append("Capital available is required")
    elif not _is_number(value) or math.isinf(value):
        errors.append("Capital available must be a number")
    elif value <= 0:
        errors.append("Capital available must be greater than 0")
    return ValidationResult.from_errors(errors)


def validate_investment_goals(value: Any) -> ValidationResult:
    """Long-term goal must be one of the supported goals."""
    errors = []
    if _is_missing(value):
        errors.append("Investment goals are required")
    elif value not in LONG_TERM_GOALS:
        errors.append(f"Investment goals must be one of: {', '.join(LONG_TERM_GOALS)}")
    return ValidationResult.from_errors(errors)


def validate_investment_profile(profile: Any) -> ValidationResult:
    """
    Validate a complete investment profile.

    Args:
        profile: Mapping with risk_tolerance, investment_horizon_years,
            capital_available and long_term_goals

    Returns:
        Combined result of the four field checks
    """
    profile = profile if isinstance(profile, Mapping) else {}
    return combine(
        validate_risk_tolerance(profile.get("risk_tolerance")),
        validate_investment_horizon(profile.get("investment_horizon_years")),
        validate_capital_available(profile.get("capital_available")),
        validate_investment_goals(profile.get("long_term_goals")),
    )


# Stock screening

def validate_market_cap(value: Any) -> ValidationResult:
    """Optional market-cap bucket: large, mid or small."""
    return _choice(value, "Market cap", MARKET_CAPS, required=False)


def validate_dividend_yield(value: Any) -> ValidationResult:
    """Optional minimum dividend yield, a percentage in 0..100."""
    errors = []
    if not _is_missing(value):
        if not _is_number(value):
            errors.append("Dividend yield must be a number")
        elif value < 0:
            errors.append("Dividend yield cannot be negative")
        elif value > 100:
            errors.append("Dividend yield cannot exceed 100%")
    return ValidationResult.from_errors(errors)


def validate_pe_ratio(value: Any) -> ValidationResult:
    """Optional maximum P/E ratio, non-negative."""
    errors = []
    if not _is_missing(value):
        if not _is_number(value):
            errors.append("PE ratio must be a number")
        elif value < 0:
            errors.append("PE ratio cannot be negative")
    return ValidationResult.from_errors(errors)


def validate_sector(value: Any) -> ValidationResult:
    """Optional sector name, non-empty when given."""
    return _non_empty_string(value, "Sector", required=False)


def _validate_price(value: Any, label: str) -> list[str]:
    if _is_missing(value):
        return []
    if not _is_number(value):
        return [f"{label} must be a number"]
    if value < 0:
        return [f"{label} cannot be negative"]
    return []


def validate_screening_filters(filters: Any) -> ValidationResult:
    """
    Validate the optional stock screening filters.

    Args:
        filters: Mapping with any of market_cap, dividend_yield_min,
            pe_ratio_max, sector, min_price, max_price

    Returns:
        Combined result, including the min_price <= max_price check
    """
    if _is_missing(filters):
        return ValidationResult()
    if not isinstance(filters, Mapping):
        return ValidationResult.from_errors(["Screening filters must be an object"])

    min_price = filters.get("min_price")
    max_price = filters.get("max_price")
    errors = _validate_price(min_price, "Minimum price") + _validate_price(max_price, "Maximum price")
    if _is_number(min_price) and _is_number(max_price) and min_price > max_price:
        errors.append("Minimum price cannot be greater than maximum price")

    return combine(
        validate_market_cap(filters.get("market_cap")),
        validate_dividend_yield(filters.get("dividend_yield_min")),
        validate_pe_ratio(filters.get("pe_ratio_max")),
        validate_sector(filters.get("sector")),
        ValidationResult.from_errors(errors),
    )


# Position sizing, trade and monitoring

def validate_portfolio_size(value: Any) -> ValidationResult:
    """Portfolio size must be a positive number."""
    errors = []
    if _is_missing(value):
        errors.append("Portfolio size is required")
    elif not _is_number(value):
        errors.append("Portfolio size must be a number")
    elif value <= 0:
        errors.append("Portfolio size must be greater than 0")
    return ValidationResult.from_errors(errors)


def validate_risk_model(value: Any) -> ValidationResult:
    return _choice(value, "Risk model", RISK_MODELS, required=True)


def validate_review_frequency(value: Any) -> ValidationResult:
    return _choice(value, "Review frequency", REVIEW_FREQUENCIES, required=True)


def validate_alert_app(value: Any) -> ValidationResult:
    return _non_empty_string(value, "Alert application name")


def validate_broker_platform(value: Any) -> ValidationResult:
    return _non_empty_string(value, "Broker platform name")


def validate_positive_number(value: Any, label: str, required: bool = True) -> ValidationResult:
    """Generic check for a strictly positive number."""
    errors = []
    if _is_missing(value):
        if required:
            errors.append(f"{label} is required")
    elif not _is_number(value):
        errors.append(f"{label} must be a number")
    elif value <= 0:
        errors.append(f"{label} must be greater than 0")
    return ValidationResult.from_errors(errors)


def validate_percentage(value: Any, label: str, maximum: float) -> ValidationResult:
    """Optional percentage in the half-open range (0, maximum]."""
    errors = []
    if not _is_missing(value):
        if not _is_number(value):
            errors.append(f"{label} must be a number")
        elif value <= 0 or value > maximum:
            errors.append(f"{label} must be greater than 0 and at most {maximum:g}")
    return ValidationResult.from_errors(errors)


def validate_technical_indicator(value: Any) -> ValidationResult:
    return _choice(value, "Indicator", TECHNICAL_INDICATORS, required=False)


# Tickers

def validate_ticker(value: Any, required: bool = True) -> ValidationResult:
    """
    Validate a ticker symbol.

    Args:
        value: Candidate symbol
        required: Whether a missing value is an error

    Returns:
        Valid when the symbol is 1-5 uppercase letters
    """
    errors = []
    if _is_missing(value):
        if required:
            errors.append("Ticker symbol is required")
    elif not isinstance(value, str):
        errors.append("Ticker symbol must be a string")
    elif not value.strip():
        errors.append("Ticker symbol cannot be empty")
    elif not TICKER_PATTERN.match(value.strip()):
        errors.append("Ticker symbol must be 1-5 uppercase letters")
    return ValidationResult.from_errors(errors)


def validate_ticker_list(value: Any, label: str = "Peer tickers") -> ValidationResult:
    """Optional list of ticker symbols."""
    if _is_missing(value):
        return ValidationResult()
    if isinstance(value, str) or not isinstance(value, (list, tuple)):
        return ValidationResult.from_errors([f"{label} must be a list of ticker symbols"])

    errors = []
    for item in value:
        if not validate_ticker(item).is_valid:
            errors.append(f"{label} contains an invalid symbol: {item!r}")
    return ValidationResult.from_errors(errors)


def clean_ticker(value: Optional[str]) -> Optional[str]:
    """Strip surrounding whitespace from a validated ticker."""
    return value.strip() if isinstance(value, str) else None
