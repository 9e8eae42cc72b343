"""The 12-step investment research catalog.

Wires one processor per step and builds a ready-to-use orchestrator.
"""

import logging
from typing import List, Optional

from research_workflow.database import create_state_store
from research_workflow.database.store import StateStore
from research_workflow.integrations.market_data import MarketDataProvider
from research_workflow.processors import BaseStepProcessor
from research_workflow.processors.analyst_sentiment import AnalystSentimentProcessor
from research_workflow.processors.competitive_position import CompetitivePositionProcessor
from research_workflow.processors.fundamental_analysis import FundamentalAnalysisProcessor
from research_workflow.processors.market_conditions import MarketConditionsProcessor
from research_workflow.processors.mock_trade import MockTradeProcessor
from research_workflow.processors.monitoring_setup import MonitoringSetupProcessor
from research_workflow.processors.position_sizing import PositionSizingProcessor
from research_workflow.processors.profile_definition import ProfileDefinitionProcessor
from research_workflow.processors.sector_identification import SectorIdentificationProcessor
from research_workflow.processors.stock_screening import StockScreeningProcessor
from research_workflow.processors.technical_trends import TechnicalTrendsProcessor
from research_workflow.processors.valuation_evaluation import ValuationEvaluationProcessor
from research_workflow.utils.config import get_settings
from research_workflow.workflow.audit import AuditLogger
from research_workflow.workflow.orchestrator import TOTAL_STEPS, WorkflowOrchestrator
from research_workflow.workflow.state import StepDefinition

logger = logging.getLogger(__name__)

STEP_DEFINITIONS: tuple[StepDefinition, ...] = (
    StepDefinition(step_number=1, name="Profile Definition"),
    StepDefinition(step_number=2, name="Market Conditions"),
    StepDefinition(step_number=3, name="Sector Identification"),
    StepDefinition(step_number=4, name="Stock Screening"),
    StepDefinition(step_number=5, name="Fundamental Analysis"),
    StepDefinition(step_number=6, name="Competitive Position"),
    StepDefinition(step_number=7, name="Valuation Evaluation"),
    StepDefinition(step_number=8, name="Technical Trends", is_optional=True),
    StepDefinition(step_number=9, name="Analyst Sentiment"),
    StepDefinition(step_number=10, name="Position Sizing"),
    StepDefinition(step_number=11, name="Mock Trade Execution"),
    StepDefinition(step_number=12, name="Monitoring Setup"),
)


def default_market_data(audit: Optional[AuditLogger] = None) -> MarketDataProvider:
    """
    Live FMP/FRED data when an FMP key is configured, offline data otherwise.

    Live data sits behind a cache that serves stale answers when the APIs
    fail; with MARKET_DATA_OFFLINE_FALLBACK the static dataset is the last
    resort.
    """
    from research_workflow.integrations.static_provider import StaticMarketDataProvider

    settings = get_settings()
    if settings.get_fmp_api_key():
        from research_workflow.integrations.caching import CachingMarketDataProvider
        from research_workflow.integrations.http_provider import HttpMarketDataProvider

        fallbacks = [StaticMarketDataProvider()] if settings.MARKET_DATA_OFFLINE_FALLBACK else []
        return CachingMarketDataProvider(HttpMarketDataProvider(), fallbacks, audit=audit)

    logger.info("FMP_API_KEY not set; using static offline market data")
    return StaticMarketDataProvider()


def build_processors(market_data: Optional[MarketDataProvider] = None) -> List[BaseStepProcessor]:
    """One processor per catalog step, in step order."""
    market_data = market_data or default_market_data()
    return [
        ProfileDefinitionProcessor(),
        MarketConditionsProcessor(market_data),
        SectorIdentificationProcessor(market_data),
        StockScreeningProcessor(market_data),
        FundamentalAnalysisProcessor(market_data),
        CompetitivePositionProcessor(market_data),
        ValuationEvaluationProcessor(market_data),
        TechnicalTrendsProcessor(market_data),
        AnalystSentimentProcessor(market_data),
        PositionSizingProcessor(),
        MockTradeProcessor(),
        MonitoringSetupProcessor(),
    ]


def build_default_orchestrator(
    store: Optional[StateStore] = None,
    market_data: Optional[MarketDataProvider] = None,
    audit: Optional[AuditLogger] = None,
    **kwargs,
) -> WorkflowOrchestrator:
    """
    Orchestrator over the full 12-step catalog.

    Args:
        store: State store (``create_state_store()`` if None)
        market_data: Provider for the data-driven steps
        audit: Audit trail shared by the orchestrator and the default
            market data provider (a fresh one if None)
        **kwargs: Passed to WorkflowOrchestrator (e.g. step_timeout)
    """
    audit = audit if audit is not None else AuditLogger()
    return WorkflowOrchestrator(
        store or create_state_store(),
        build_processors(market_data or default_market_data(audit)),
        total_steps=TOTAL_STEPS,
        audit=audit,
        **kwargs,
    )


__all__ = [
    "STEP_DEFINITIONS",
    "build_processors",
    "build_default_orchestrator",
    "default_market_data",
]
