"""Persistence layer for workflow sessions, step results and profiles."""

from typing import Optional

from research_workflow.database.db import (
    DatabaseConnectionError,
    DatabaseError,
    DatabaseRetryError,
    NotFoundError,
    ProfileNotFoundError,
    SessionNotFoundError,
    StorageError,
)
from research_workflow.database.memory import InMemoryStateStore
from research_workflow.database.store import SQLAlchemyStateStore, StateStore
from research_workflow.utils.config import get_settings


def create_state_store(database_url: Optional[str] = None) -> StateStore:
    """
    Build the state store for this process.

    Args:
        database_url: Explicit SQLAlchemy URL; falls back to DATABASE_URL

    Returns:
        SQLAlchemyStateStore when a URL is available, otherwise an
        InMemoryStateStore
    """
    url = database_url or get_settings().get_database_url()
    if url:
        return SQLAlchemyStateStore(url)
    return InMemoryStateStore()


__all__ = [
    "StateStore",
    "SQLAlchemyStateStore",
    "InMemoryStateStore",
    "create_state_store",
    "DatabaseError",
    "DatabaseConnectionError",
    "DatabaseRetryError",
    "StorageError",
    "NotFoundError",
    "SessionNotFoundError",
    "ProfileNotFoundError",
]
