"""
Database models for the workflow state store.

Three tables back the state store contract:
- workflow_sessions: one row per session, with a version column for
  optimistic concurrency
- step_results: one row per (session, step), deleted with the session
- investment_profiles: one row per user

JSON payloads use JSONB on PostgreSQL and generic JSON elsewhere.
"""

from datetime import datetime, timezone
from typing import List

from sqlalchemy import (
    JSON,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    event,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

JsonType = JSON().with_variant(JSONB(), "postgresql")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all database models."""


class WorkflowSessionRecord(Base):
    """
    Workflow session row.

    Relationships:
    - One-to-many with StepResultRecord (CASCADE on session delete)
    """
    __tablename__ = "workflow_sessions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    current_step: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    completed_steps: Mapped[list] = mapped_column(JsonType, nullable=False, default=list)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utc_now,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utc_now,
    )

    step_results: Mapped[List["StepResultRecord"]] = relationship(
        "StepResultRecord",
        back_populates="session",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("ix_workflow_sessions_user_id", "user_id"),
        Index("ix_workflow_sessions_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return (f"<WorkflowSessionRecord(id={self.id}, user_id={self.user_id}, "
                f"current_step={self.current_step}, version={self.version})>")


class StepResultRecord(Base):
    """
    Persisted output of one executed step.

    Relationships:
    - Many-to-one with WorkflowSessionRecord (CASCADE on session delete)
    """
    __tablename__ = "step_results"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("workflow_sessions.id", ondelete="CASCADE"),
        nullable=False,
    )
    step_number: Mapped[int] = mapped_column(Integer, nullable=False)
    success: Mapped[bool] = mapped_column(nullable=False, default=True)
    data: Mapped[dict] = mapped_column(JsonType, nullable=False, default=dict)
    warnings: Mapped[list] = mapped_column(JsonType, nullable=False, default=list)
    executed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utc_now,
    )

    session: Mapped["WorkflowSessionRecord"] = relationship(
        "WorkflowSessionRecord",
        back_populates="step_results",
    )

    __table_args__ = (
        UniqueConstraint("session_id", "step_number", name="uq_step_results_session_step"),
        Index("ix_step_results_session_id", "session_id"),
    )

    def __repr__(self) -> str:
        return (f"<StepResultRecord(session_id={self.session_id}, "
                f"step_number={self.step_number}, success={self.success})>")


class InvestmentProfileRecord(Base):
    """Investment profile row, one per user."""
    __tablename__ = "investment_profiles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    risk_tolerance: Mapped[str] = mapped_column(String(16), nullable=False)
    investment_horizon_years: Mapped[int] = mapped_column(Integer, nullable=False)
    capital_available: Mapped[float] = mapped_column(Float, nullable=False)
    long_term_goals: Mapped[str] = mapped_column(String(32), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utc_now,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utc_now,
    )

    def __repr__(self) -> str:
        return (f"<InvestmentProfileRecord(user_id={self.user_id}, "
                f"risk_tolerance={self.risk_tolerance})>")


@event.listens_for(InvestmentProfileRecord, "before_update")
def receive_before_update_profile(_mapper, _connection, target):
    """Update the updated_at timestamp before updating a profile."""
    target.updated_at = _utc_now()
