"""Database connection layer with SQLAlchemy.

Engines are owned by the state store that creates them, so several stores
(and several orchestrator instances) can point at the same database without
sharing process-level globals.
"""

import functools
import time
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, exc, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from research_workflow.utils.config import get_settings
from research_workflow.utils.logging_config import get_logger


class DatabaseError(Exception):
    """Base exception for database errors."""


class DatabaseConnectionError(DatabaseError):
    """Exception raised when database connection fails."""


class DatabaseRetryError(DatabaseError):
    """Exception raised when all retry attempts are exhausted."""


# Storage failures as seen by the workflow engine
StorageError = DatabaseError


class NotFoundError(LookupError):
    """A keyed entity is absent from the state store."""


class SessionNotFoundError(NotFoundError):
    """Workflow session does not exist."""

    def __init__(self, session_id: str):
        super().__init__(f"Workflow session not found: {session_id}")
        self.session_id = session_id


class ProfileNotFoundError(NotFoundError):
    """User has no investment profile yet."""

    def __init__(self, user_id: str):
        super().__init__(f"Investment profile not found for user: {user_id}")
        self.user_id = user_id


def _get_logger():
    """Get logger instance lazily to avoid import-time config loading."""
    return get_logger(__name__)


def _is_transient_error(error: Exception) -> bool:
    """
    Check if the error is transient and should be retried.

    Args:
        error: The exception to check

    Returns:
        True if the error is transient, False otherwise
    """
    # SQLAlchemy operational errors are usually transient
    if isinstance(error, exc.OperationalError):
        return True

    error_str = str(error).lower()
    transient_keywords = [
        "connection refused",
        "connection reset",
        "connection timed out",
        "server closed the connection",
        "could not connect",
        "connection lost",
        "deadlock",
        "lock timeout",
        "database is locked",
        "connection pool exhausted",
    ]

    return any(keyword in error_str for keyword in transient_keywords)


def retry_on_transient_error(max_retries: int | None = None, delay: float | None = None):
    """
    Decorator to retry database operations on transient errors.

    Non-transient SQLAlchemy errors are re-raised as ``DatabaseError``;
    domain exceptions (not found, conflicts) pass through untouched.

    Args:
        max_retries: Maximum number of retry attempts (uses config default if None)
        delay: Initial delay between retries in seconds (uses config default if None)

    Returns:
        Decorated function with retry logic
    """

    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            settings = get_settings()
            retries = max_retries if max_retries is not None else settings.DB_MAX_RETRIES
            retry_delay = delay if delay is not None else settings.DB_RETRY_DELAY

            last_error = None
            for attempt in range(retries + 1):
                try:
                    return func(*args, **kwargs)
                except exc.SQLAlchemyError as e:
                    last_error = e

                    if not _is_transient_error(e):
                        _get_logger().error("Non-transient database error: %s", e)
                        raise DatabaseError(f"Database operation failed: {e}") from e

                    if attempt < retries:
                        wait_time = retry_delay * (2**attempt)
                        _get_logger().warning(
                            "Transient database error (attempt %d/%d): %s. Retrying in %.2fs...",
                            attempt + 1,
                            retries + 1,
                            e,
                            wait_time,
                        )
                        time.sleep(wait_time)
                    else:
                        _get_logger().error(
                            "All %d retry attempts exhausted for database operation", retries + 1
                        )

            raise DatabaseRetryError(
                f"Failed after {retries + 1} attempts. Last error: {last_error}"
            ) from last_error

        return wrapper

    return decorator


def create_db_engine(database_url: str | None = None) -> Engine:
    """
    Create a SQLAlchemy engine for the state store.

    SQLite URLs get a thread-shareable connection (and a single static
    connection for in-memory databases); every other backend gets a
    pre-pinged connection pool sized from settings.

    Args:
        database_url: SQLAlchemy URL; falls back to DATABASE_URL from settings

    Returns:
        Configured engine

    Raises:
        DatabaseConnectionError: If no URL is available
        DatabaseError: If engine creation fails
    """
    settings = get_settings()
    database_url = database_url or settings.get_database_url()

    if not database_url:
        raise DatabaseConnectionError(
            "DATABASE_URL is not configured. Please set it in environment variables."
        )

    try:
        _get_logger().info("Initializing database connection...")

        if database_url.startswith("sqlite"):
            engine_kwargs: dict = {"connect_args": {"check_same_thread": False}}
            if database_url in ("sqlite://", "sqlite:///:memory:"):
                engine_kwargs["poolclass"] = StaticPool
        else:
            engine_kwargs = {
                "pool_size": settings.DB_POOL_SIZE,
                "max_overflow": settings.DB_MAX_OVERFLOW,
                "pool_timeout": settings.DB_POOL_TIMEOUT,
                "pool_pre_ping": True,  # Verify connections before using them
            }

        engine = create_engine(database_url, echo=settings.DEBUG, **engine_kwargs)
        _get_logger().info("Database initialized successfully")
        return engine

    except Exception as e:
        _get_logger().error("Failed to initialize database: %s", e)
        raise DatabaseError(f"Database initialization failed: {e}") from e


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Build the session factory used by the state store."""
    return sessionmaker(
        bind=engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )


@contextmanager
def session_scope(factory: sessionmaker[Session]) -> Generator[Session, None, None]:
    """
    Context manager for database sessions.

    Automatically handles session lifecycle:
    - Creates session
    - Commits on success
    - Rolls back on error
    - Closes session

    Usage:
        with session_scope(factory) as session:
            session.execute(...)

    Yields:
        Database session
    """
    session = factory()
    try:
        yield session
        session.commit()
        _get_logger().debug("Database session committed successfully")
    except Exception as e:
        session.rollback()
        _get_logger().debug("Database session rolled back due to error: %s", e)
        raise
    finally:
        session.close()


@retry_on_transient_error()
def health_check(engine: Engine) -> bool:
    """
    Check database connectivity.

    Args:
        engine: Engine to check

    Returns:
        True if the database answered a trivial query

    Raises:
        DatabaseError: If the query fails
        DatabaseRetryError: If all retry attempts fail
    """
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    _get_logger().info("Database health check passed")
    return True
