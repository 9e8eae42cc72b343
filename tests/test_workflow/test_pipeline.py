"""End-to-end runs of the full 12-step catalog over offline market data."""

import re

import pytest

from research_workflow import build_default_orchestrator
from research_workflow.database import InMemoryStateStore
from research_workflow.integrations.static_provider import StaticMarketDataProvider
from research_workflow.processors.mock_trade import MOCK_TRADE_WARNING
from research_workflow.workflow.catalog import STEP_DEFINITIONS

PROFILE = {
    "riskTolerance": "medium",
    "investmentHorizonYears": 10,
    "capitalAvailable": 50000,
    "longTermGoals": "steady growth",
}

STEP_INPUTS = {
    1: PROFILE,
    2: {},
    3: {},
    4: {"market_cap": "large"},
    5: {"ticker": "AAPL"},
    6: {},
    7: {"peer_tickers": ["MSFT", "NVDA"]},
    8: {"indicator": "RSI"},
    9: {},
    10: {"portfolio_size": 100000, "risk_model": "balanced", "entry_price": 190},
    11: {"broker_platform": "E*TRADE"},
    12: {"alert_app": "Robinhood", "review_frequency": "quarterly"},
}


async def _run(orchestrator, session_id, steps, skip=()):
    outcomes = {}
    for step in steps:
        if step in skip:
            await orchestrator.skip_optional_step(session_id, step)
            continue
        outcome = await orchestrator.execute_step(session_id, step, STEP_INPUTS[step])
        assert outcome.success, f"step {step} failed: {outcome.errors}"
        outcomes[step] = outcome
    return outcomes


class TestFullPipeline:
    """Drive a session through every step."""

    @pytest.mark.asyncio
    async def test_all_steps_complete(self, orchestrator, store):
        session = await orchestrator.start_workflow("investor-1")

        outcomes = await _run(orchestrator, session.session_id, range(1, 13))

        status = await orchestrator.get_workflow_status(session.session_id)
        assert status.is_complete
        assert status.progress == 100
        assert status.completed_steps == list(range(1, 13))
        assert sorted(store.get_all_step_results(session.session_id)) == list(range(1, 13))

        assert outcomes[5].data["ticker"] == "AAPL"
        assert outcomes[6].data["ticker"] == "AAPL"
        assert outcomes[8].data["indicator"] == "RSI"
        assert outcomes[9].data["analyst_summary"]["ticker"] == "AAPL"

    @pytest.mark.asyncio
    async def test_skipping_technical_trends(self, orchestrator, store):
        session = await orchestrator.start_workflow("investor-1")

        await _run(orchestrator, session.session_id, range(1, 13), skip={8})

        status = await orchestrator.get_workflow_status(session.session_id)
        assert status.is_complete
        assert 8 not in status.completed_steps
        assert status.progress == 92
        assert store.get_step_result(session.session_id, 8) is None

    @pytest.mark.asyncio
    async def test_profile_is_persisted_by_step_one(self, orchestrator, store):
        session = await orchestrator.start_workflow("investor-1")

        await _run(orchestrator, session.session_id, [1])

        profile = store.get_user_profile("investor-1")
        assert profile.risk_tolerance.value == "medium"
        assert profile.investment_horizon_years == 10
        assert profile.capital_available == 50000
        result = store.get_step_result(session.session_id, 1)
        assert result.data["profile"]["long_term_goals"] == "steady growth"

    @pytest.mark.asyncio
    async def test_later_steps_use_earlier_outputs(self, orchestrator):
        session = await orchestrator.start_workflow("investor-1")

        outcomes = await _run(orchestrator, session.session_id, range(1, 13), skip={8})

        recommendation = outcomes[10].data["buy_recommendation"]
        assert recommendation == {
            "ticker": "AAPL",
            "shares_to_buy": 52,
            "entry_price": 190.0,
            "order_type": "limit",
            "total_investment": 9880.0,
            "portfolio_percentage": 9.88,
        }
        assert any("exceeds the capital available" in w for w in outcomes[10].warnings)

        trade = outcomes[11].data["trade_confirmation"]
        assert trade["ticker"] == "AAPL"
        assert trade["quantity"] == 52
        assert trade["price"] == 190.0
        assert trade["is_mock"] is True
        assert re.match(r"^MOCK-EXT-[0-9A-Z]+-[0-9A-F]{8}$", trade["confirmation_id"])
        assert outcomes[11].warnings == [MOCK_TRADE_WARNING]

        plan = outcomes[12].data["monitoring_plan"]
        assert plan["ticker"] == "AAPL"
        assert plan["review_frequency"] == "quarterly"

    @pytest.mark.asyncio
    async def test_unknown_ticker_fails_without_advancing(self, orchestrator, store):
        session = await orchestrator.start_workflow("investor-1")
        await _run(orchestrator, session.session_id, range(1, 5))

        outcome = await orchestrator.execute_step(session.session_id, 5, {"ticker": "ZZZZ"})

        assert not outcome.success
        assert "ZZZZ" in outcome.errors[0]
        assert store.get_session(session.session_id).current_step == 5

    @pytest.mark.asyncio
    async def test_invalid_profile_reports_every_error(self, orchestrator):
        session = await orchestrator.start_workflow("investor-1")

        outcome = await orchestrator.execute_step(
            session.session_id, 1, {"riskTolerance": "extreme", "capitalAvailable": -5}
        )

        assert not outcome.success
        assert "Risk tolerance must be one of: low, medium, high" in outcome.errors
        assert "Investment horizon is required" in outcome.errors
        assert "Capital available must be greater than 0" in outcome.errors
        assert "Investment goals are required" in outcome.errors

    @pytest.mark.asyncio
    async def test_status_lists_next_requirements(self, orchestrator):
        session = await orchestrator.start_workflow("investor-1")

        status = await orchestrator.get_workflow_status(session.session_id)

        assert status.current_step_name == "Profile Definition"
        assert status.next_step_requirements == [
            "risk_tolerance",
            "investment_horizon_years",
            "capital_available",
            "long_term_goals",
        ]


class TestCatalog:
    """Test the default catalog wiring."""

    def test_registered_steps_match_definitions(self, orchestrator):
        assert tuple(orchestrator.step_definitions()) == STEP_DEFINITIONS

    def test_only_technical_trends_is_optional(self):
        assert [d.step_number for d in STEP_DEFINITIONS if d.is_optional] == [8]

    @pytest.mark.asyncio
    async def test_build_default_orchestrator(self):
        orchestrator = build_default_orchestrator(
            InMemoryStateStore(), StaticMarketDataProvider(), step_timeout=None
        )

        session = await orchestrator.start_workflow("investor-1")

        assert orchestrator.total_steps == 12
        assert orchestrator.step_timeout is None
        assert session.current_step == 1

    @pytest.mark.asyncio
    async def test_build_default_orchestrator_shares_audit_trail(self, monkeypatch):
        from research_workflow.utils.config import reset_settings
        from research_workflow.workflow.audit import AuditLogger

        monkeypatch.setenv("FMP_API_KEY", "test-fmp-key")
        reset_settings()
        audit = AuditLogger()

        orchestrator = build_default_orchestrator(InMemoryStateStore(), audit=audit, step_timeout=None)
        session = await orchestrator.start_workflow("investor-1")

        assert orchestrator.audit is audit
        assert orchestrator.registry.get(2).market_data.audit is audit
        assert audit.get_events_by_session(session.session_id)[0].user_id == "investor-1"

    def test_default_market_data_is_offline_without_key(self):
        from research_workflow.workflow.catalog import default_market_data

        assert isinstance(default_market_data(), StaticMarketDataProvider)
