"""FRED (Federal Reserve Economic Data) client.

Provides the latest macro readings from the FRED series observations API.
"""

from typing import Optional

import httpx

from research_workflow.processors import retry_on_error
from research_workflow.utils.config import get_settings
from research_workflow.workflow.error_handling import ExternalDependencyError

FRED_BASE_URL = "https://api.stlouisfed.org/fred"

INTEREST_RATE_SERIES = "FEDFUNDS"
INFLATION_SERIES = "CPIAUCSL"
UNEMPLOYMENT_SERIES = "UNRATE"


def _is_retryable(error: Exception) -> bool:
    return isinstance(error, ExternalDependencyError) and error.retryable


@retry_on_error(exceptions=(ExternalDependencyError,), retry_if=_is_retryable)
async def fetch_fred_series(
    series_id: str, limit: int = 1, api_key: Optional[str] = None
) -> list[float]:
    """Fetch the most recent observations of a FRED series.

    Args:
        series_id: FRED series identifier (e.g. "UNRATE")
        limit: Number of observations to request
        api_key: API key (FRED_API_KEY from settings if None)

    Returns:
        Observation values, newest first. Missing values (".") are dropped.

    Raises:
        ValueError: If series_id is empty
        ExternalDependencyError: If the key is missing or the request fails
    """
    if not series_id or not series_id.strip():
        raise ValueError("Series ID cannot be empty")

    settings = get_settings()
    api_key = api_key or settings.get_fred_api_key()
    if not api_key:
        raise ExternalDependencyError("FRED_API_KEY is not configured", provider="fred")

    try:
        async with httpx.AsyncClient() as client:
            response = await client.get(
                f"{FRED_BASE_URL}/series/observations",
                params={
                    "series_id": series_id,
                    "api_key": api_key,
                    "file_type": "json",
                    "sort_order": "desc",
                    "limit": limit,
                },
                timeout=float(settings.API_TIMEOUT),
            )
            response.raise_for_status()
            data = response.json()
    except httpx.HTTPStatusError as e:
        status = e.response.status_code
        raise ExternalDependencyError(
            f"FRED request for {series_id} failed with HTTP {status}",
            provider="fred",
            status_code=status,
            retryable=status == 429 or status >= 500,
        ) from e
    except httpx.RequestError as e:
        raise ExternalDependencyError(
            f"FRED request for {series_id} failed: {e}", provider="fred", retryable=True
        ) from e

    values = []
    for observation in data.get("observations", []):
        raw = observation.get("value")
        if raw in (None, "."):
            continue
        try:
            values.append(float(raw))
        except (TypeError, ValueError):
            continue
    return values


async def fetch_interest_rate(api_key: Optional[str] = None) -> float:
    """Latest effective federal funds rate (percent)."""
    values = await fetch_fred_series(INTEREST_RATE_SERIES, api_key=api_key)
    if not values:
        raise ExternalDependencyError("No interest rate data available", provider="fred")
    return values[0]


async def fetch_inflation_rate(api_key: Optional[str] = None) -> float:
    """Year-over-year CPI change (percent)."""
    values = await fetch_fred_series(INFLATION_SERIES, limit=13, api_key=api_key)
    if len(values) < 13:
        raise ExternalDependencyError(
            "Insufficient data for inflation calculation", provider="fred"
        )
    current, year_ago = values[0], values[12]
    return (current - year_ago) / year_ago * 100


async def fetch_unemployment_rate(api_key: Optional[str] = None) -> float:
    """Latest civilian unemployment rate (percent)."""
    values = await fetch_fred_series(UNEMPLOYMENT_SERIES, api_key=api_key)
    if not values:
        raise ExternalDependencyError("No unemployment data available", provider="fred")
    return values[0]
