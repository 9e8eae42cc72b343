"""Shared fixtures for the research workflow test suite."""

import shutil
from pathlib import Path

import pytest

from research_workflow.database import InMemoryStateStore, SQLAlchemyStateStore
from research_workflow.integrations.static_provider import StaticMarketDataProvider
from research_workflow.utils.config import reset_settings
from research_workflow.utils.logging_config import reset_logging
from research_workflow.workflow.catalog import build_processors
from research_workflow.workflow.orchestrator import WorkflowOrchestrator

VALID_PROFILE = {
    "risk_tolerance": "medium",
    "investment_horizon_years": 10,
    "capital_available": 50000,
    "long_term_goals": "steady growth",
}


@pytest.fixture(scope="session", autouse=True)
def backup_env_file():
    """Backup .env file during test session to prevent pollution."""
    env_file = Path(".env")
    backup_file = Path(".env.test_backup")

    # Backup if exists
    if env_file.exists():
        shutil.copy(env_file, backup_file)
        env_file.unlink()

    yield

    # Restore
    if backup_file.exists():
        shutil.move(backup_file, env_file)


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch: pytest.MonkeyPatch):
    """Fresh settings per test, with no real credentials or database."""
    for name in (
        "DATABASE_URL",
        "FMP_API_KEY",
        "FRED_API_KEY",
        "STEP_TIMEOUT_SECONDS",
        "LOG_FORMAT",
        "AUDIT_LOG_FILE",
        "MARKET_DATA_CACHE_TTL",
        "MARKET_DATA_OFFLINE_FALLBACK",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("MARKET_DATA_MAX_RETRIES", "0")
    monkeypatch.setenv("DB_RETRY_DELAY", "0.01")
    reset_settings()
    yield
    reset_settings()
    reset_logging()


@pytest.fixture(params=["memory", "sqlite"])
def store(request):
    """Each state store implementation, so contract tests run against both."""
    if request.param == "memory":
        state_store = InMemoryStateStore()
    else:
        state_store = SQLAlchemyStateStore("sqlite://")
    yield state_store
    state_store.close()


@pytest.fixture
def market_data():
    return StaticMarketDataProvider()


@pytest.fixture
def orchestrator(store, market_data):
    return WorkflowOrchestrator(store, build_processors(market_data), step_timeout=5)
