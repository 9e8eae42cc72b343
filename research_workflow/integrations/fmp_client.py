"""Financial Modeling Prep client.

Thin async wrappers over the FMP REST API returning raw JSON payloads.
Mapping into ``market_data`` records happens in ``http_provider``.
"""

from typing import Any, Optional

import httpx

from research_workflow.processors import retry_on_error
from research_workflow.utils.config import get_settings
from research_workflow.workflow.error_handling import ExternalDependencyError

FMP_BASE_URL = "https://financialmodelingprep.com/api"


def _is_retryable(error: Exception) -> bool:
    return isinstance(error, ExternalDependencyError) and error.retryable


@retry_on_error(exceptions=(ExternalDependencyError,), retry_if=_is_retryable)
async def fmp_get(
    path: str,
    params: Optional[dict[str, Any]] = None,
    api_key: Optional[str] = None,
    version: str = "v3",
) -> Any:
    """Perform a GET against the FMP API.

    Args:
        path: Endpoint path without version prefix (e.g. "/profile/AAPL")
        params: Query parameters (the API key is added automatically)
        api_key: API key (FMP_API_KEY from settings if None)
        version: API version segment

    Returns:
        Decoded JSON payload

    Raises:
        ExternalDependencyError: If the key is missing, the request fails, or
            FMP answers with an error message
    """
    settings = get_settings()
    api_key = api_key or settings.get_fmp_api_key()
    if not api_key:
        raise ExternalDependencyError("FMP_API_KEY is not configured", provider="fmp")

    query = {key: value for key, value in (params or {}).items() if value is not None}
    query["apikey"] = api_key

    try:
        async with httpx.AsyncClient() as client:
            response = await client.get(
                f"{FMP_BASE_URL}/{version}{path}",
                params=query,
                timeout=float(settings.API_TIMEOUT),
            )
            response.raise_for_status()
            data = response.json()
    except httpx.HTTPStatusError as e:
        status = e.response.status_code
        raise ExternalDependencyError(
            f"FMP request {path} failed with HTTP {status}",
            provider="fmp",
            status_code=status,
            retryable=status == 429 or status >= 500,
        ) from e
    except httpx.RequestError as e:
        raise ExternalDependencyError(
            f"FMP request {path} failed: {e}", provider="fmp", retryable=True
        ) from e

    # FMP reports some failures (bad key, limit reached) with a 200 body
    if isinstance(data, dict) and "Error Message" in data:
        raise ExternalDependencyError(f"FMP error: {data['Error Message']}", provider="fmp")
    return data


def _symbol(ticker: str) -> str:
    if not ticker or not ticker.strip():
        raise ValueError("Ticker cannot be empty")
    return ticker.strip().upper()


async def fetch_income_statements(ticker: str, limit: int = 5) -> list[dict]:
    return await fmp_get(f"/income-statement/{_symbol(ticker)}", {"period": "annual", "limit": limit})


async def fetch_balance_sheets(ticker: str, limit: int = 5) -> list[dict]:
    return await fmp_get(
        f"/balance-sheet-statement/{_symbol(ticker)}", {"period": "annual", "limit": limit}
    )


async def fetch_cash_flow_statements(ticker: str, limit: int = 5) -> list[dict]:
    return await fmp_get(
        f"/cash-flow-statement/{_symbol(ticker)}", {"period": "annual", "limit": limit}
    )


async def fetch_profile(ticker: str) -> dict:
    """Company profile (name, sector, market cap, price)."""
    data = await fmp_get(f"/profile/{_symbol(ticker)}")
    if not data:
        raise ExternalDependencyError(f"No profile found for {ticker}", provider="fmp")
    return data[0]


async def fetch_key_metrics(ticker: str) -> dict:
    """Latest annual key metrics (P/E, P/B, per-share figures)."""
    data = await fmp_get(f"/key-metrics/{_symbol(ticker)}", {"limit": 1})
    return data[0] if data else {}


async def fetch_ratios(ticker: str) -> dict:
    data = await fmp_get(f"/ratios/{_symbol(ticker)}", {"limit": 1})
    return data[0] if data else {}


async def fetch_quotes(symbols: list[str]) -> list[dict]:
    """Real-time quotes for one or more symbols."""
    if not symbols:
        return []
    return await fmp_get(f"/quote/{','.join(symbols)}")


async def fetch_price_changes(symbols: list[str]) -> list[dict]:
    """Percent price change over standard windows (1D, 5D, 1M, 3M, 1Y)."""
    if not symbols:
        return []
    return await fmp_get(f"/stock-price-change/{','.join(symbols)}")


async def fetch_historical_closes(symbol: str, days: int = 200) -> list[dict]:
    """Daily price history, newest first."""
    data = await fmp_get(f"/historical-price-full/{symbol}", {"serietype": "line", "timeseries": days})
    return data.get("historical", []) if isinstance(data, dict) else []


async def screen(params: dict[str, Any]) -> list[dict]:
    """Run the FMP stock screener with native parameter names."""
    return await fmp_get("/stock-screener", params)


async def fetch_grades(ticker: str, limit: int = 30) -> list[dict]:
    return await fmp_get(f"/grade/{_symbol(ticker)}", {"limit": limit})


async def fetch_price_targets(ticker: str) -> list[dict]:
    return await fmp_get("/price-target", {"symbol": _symbol(ticker)}, version="v4")
