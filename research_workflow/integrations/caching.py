"""Caching and fallback in front of a market data provider.

Every answer is cached per call and arguments. Within ``ttl_seconds`` the
cached answer is served without touching any source. When the primary source
fails, the provider degrades in this order:

1. The last cached answer, however old (same source, possibly outdated)
2. Each fallback provider, in order

Either way the step receives a warning through ``report_degraded_data``. If
nothing can answer, the primary source's ``ExternalDependencyError`` is
raised. Only ``ExternalDependencyError`` triggers degradation; other
exceptions propagate.
"""

import copy
import json
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from research_workflow.analysis.models import MarketTrend
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
from research_workflow.utils.config import get_settings
from research_workflow.workflow.audit import AuditLogger
from research_workflow.workflow.error_handling import (
    ExternalDependencyError,
    report_degraded_data,
)
from research_workflow.workflow.state import utc_now

logger = logging.getLogger(__name__)

_LABELS = {
    "fetch_macro_indicators": "macro indicators",
    "fetch_market_trend": "market trend",
    "fetch_sector_performance": "sector performance",
    "screen_stocks": "screening results",
    "fetch_financials": "financial statements",
    "fetch_company_profile": "company profile",
    "fetch_valuation": "valuation data",
    "fetch_price_history": "price history",
    "fetch_analyst_ratings": "analyst ratings",
}


@dataclass
class _CacheEntry:
    value: Any
    stored_at: float
    cached_at: datetime
    hits: int = 0


def source_name(provider: MarketDataProvider) -> str:
    """Readable name of a provider, e.g. ``Http`` for HttpMarketDataProvider."""
    return type(provider).__name__.replace("MarketDataProvider", "") or type(provider).__name__


def _describe(operation: str, args: Tuple[Any, ...]) -> str:
    label = _LABELS.get(operation, operation)
    if args and isinstance(args[0], str):
        return f"{label} for {args[0].upper()}"
    return label


class CachingMarketDataProvider(MarketDataProvider):
    """Wrap a provider with a TTL cache, stale-cache fallback and fallback sources.

    Args:
        primary: Provider asked first
        fallbacks: Providers tried in order once the primary and the cache fail
        ttl_seconds: Freshness window (MARKET_DATA_CACHE_TTL if None; 0 always refetches)
        audit: Receives one access or error event per source call
        clock: Monotonic time source
    """

    def __init__(
        self,
        primary: MarketDataProvider,
        fallbacks: Sequence[MarketDataProvider] = (),
        ttl_seconds: Optional[float] = None,
        audit: Optional[AuditLogger] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.primary = primary
        self.fallbacks = list(fallbacks)
        self.ttl_seconds = get_settings().MARKET_DATA_CACHE_TTL if ttl_seconds is None else ttl_seconds
        self.audit = audit
        self._clock = clock
        self._cache: Dict[Tuple[str, str], _CacheEntry] = {}

    def cache_stats(self) -> Dict[str, int]:
        return {
            "entries": len(self._cache),
            "hits": sum(entry.hits for entry in self._cache.values()),
        }

    def clear_cache(self) -> None:
        self._cache.clear()

    async def _call(self, provider: MarketDataProvider, operation: str, args: Tuple[Any, ...]) -> Any:
        name = source_name(provider)
        start = time.perf_counter()
        try:
            value = await getattr(provider, operation)(*args)
        except ExternalDependencyError as e:
            if self.audit is not None:
                self.audit.log_data_source_error(name, operation, str(e))
            raise
        if self.audit is not None:
            self.audit.log_data_source_access(name, operation, (time.perf_counter() - start) * 1000)
        return value

    async def _fetch(self, operation: str, *args: Any) -> Any:
        key = (operation, json.dumps(args, sort_keys=True, default=str))
        entry = self._cache.get(key)
        if entry is not None and self._clock() - entry.stored_at < self.ttl_seconds:
            entry.hits += 1
            logger.debug(f"Cache hit for {_describe(operation, args)}")
            return copy.deepcopy(entry.value)

        try:
            value = await self._call(self.primary, operation, args)
        except ExternalDependencyError as primary_error:
            return await self._degrade(operation, args, entry, primary_error)

        self._cache[key] = _CacheEntry(value=value, stored_at=self._clock(), cached_at=utc_now())
        return copy.deepcopy(value)

    async def _degrade(
        self,
        operation: str,
        args: Tuple[Any, ...],
        entry: Optional[_CacheEntry],
        primary_error: ExternalDependencyError,
    ) -> Any:
        what = _describe(operation, args)
        primary = source_name(self.primary)

        if entry is not None:
            report_degraded_data(
                f"{primary} unavailable ({primary_error}); using cached {what} from "
                f"{entry.cached_at:%Y-%m-%d %H:%M} UTC. Data may be outdated."
            )
            return copy.deepcopy(entry.value)

        for fallback in self.fallbacks:
            try:
                value = await self._call(fallback, operation, args)
            except ExternalDependencyError as e:
                logger.warning(f"Fallback {source_name(fallback)} failed for {what}: {e}")
                continue
            report_degraded_data(
                f"{primary} unavailable ({primary_error}); using {what} from "
                f"{source_name(fallback)} instead."
            )
            return value

        raise primary_error

    async def fetch_macro_indicators(self) -> MacroIndicators:
        return await self._fetch("fetch_macro_indicators")

    async def fetch_market_trend(self) -> MarketTrend:
        return await self._fetch("fetch_market_trend")

    async def fetch_sector_performance(self) -> List[SectorPerformance]:
        return await self._fetch("fetch_sector_performance")

    async def screen_stocks(self, filters: Dict[str, Any]) -> List[ScreenResult]:
        return await self._fetch("screen_stocks", filters)

    async def fetch_financials(self, ticker: str) -> FinancialHistory:
        return await self._fetch("fetch_financials", ticker.upper())

    async def fetch_company_profile(self, ticker: str) -> CompanyProfile:
        return await self._fetch("fetch_company_profile", ticker.upper())

    async def fetch_valuation(self, ticker: str) -> ValuationSnapshot:
        return await self._fetch("fetch_valuation", ticker.upper())

    async def fetch_price_history(self, ticker: str, days: int = 200) -> List[float]:
        return await self._fetch("fetch_price_history", ticker.upper(), days)

    async def fetch_analyst_ratings(self, ticker: str) -> List[AnalystRating]:
        return await self._fetch("fetch_analyst_ratings", ticker.upper())


__all__ = ["CachingMarketDataProvider", "source_name"]
