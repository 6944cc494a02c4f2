"""SQLAlchemy models for State Store."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime  # noqa: TC003 - used at runtime for SQLAlchemy
from typing import Any

from sqlalchemy import (
    JSON,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    mapped_column,
    relationship,
)

from repomerge.pipeline.models import PipelineRun, RunStatus, StepStatus


def generate_uuid() -> str:
    """Generate a new UUID string."""
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class RunRecord(Base):
    """Pipeline run row - one per run, results and error inlined."""

    __tablename__ = "pipeline_runs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, server_default=func.now()
    )
    started_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    ended_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    duration_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    files_processed: Mapped[int | None] = mapped_column(Integer, nullable=True)
    directories_copied: Mapped[int | None] = mapped_column(Integer, nullable=True)
    merge_request_id: Mapped[str | None] = mapped_column(String(50), nullable=True)
    merge_request_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    error_step: Mapped[str | None] = mapped_column(String(50), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    configuration: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    # Relationships
    steps: Mapped[list[StepRecord]] = relationship(
        "StepRecord",
        back_populates="run",
        cascade="all, delete-orphan",
        order_by="StepRecord.position",
    )

    def __init__(
        self,
        user_id: str,
        id: str | None = None,
        status: str | None = None,
        configuration: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self.id = id if id is not None else generate_uuid()
        self.user_id = user_id
        self.status = status if status is not None else RunStatus.IDLE.value
        self.configuration = dict(configuration or {})

    @property
    def run_status(self) -> RunStatus:
        """Get status as RunStatus enum."""
        return RunStatus(self.status)

    def __repr__(self) -> str:
        return f"<RunRecord(id={self.id!r}, user_id={self.user_id!r}, status={self.status!r})>"


class StepRecord(Base):
    """Pipeline step row - one per step of a run."""

    __tablename__ = "pipeline_steps"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    run_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("pipeline_runs.id", ondelete="CASCADE"), nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    started_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    ended_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    message: Mapped[str | None] = mapped_column(Text, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Relationships
    run: Mapped[RunRecord] = relationship("RunRecord", back_populates="steps")

    def __init__(
        self,
        name: str,
        position: int,
        status: str | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self.name = name
        self.position = position
        self.status = status if status is not None else StepStatus.IDLE.value

    def __repr__(self) -> str:
        return f"<StepRecord(run_id={self.run_id!r}, name={self.name!r}, status={self.status!r})>"


class UserSettingsRecord(Base):
    """Last-used, non-secret pipeline configuration of a user."""

    __tablename__ = "user_settings"

    user_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    settings: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self) -> str:
        return f"<UserSettingsRecord(user_id={self.user_id!r})>"


@dataclass
class RunPage:
    """One page of runs, newest first."""

    items: list[PipelineRun]
    total: int
    page: int
    limit: int

    @property
    def pages(self) -> int:
        if self.limit <= 0:
            return 0
        return (self.total + self.limit - 1) // self.limit


@dataclass
class RunStats:
    """Aggregated statistics over a user's runs."""

    total: int = 0
    successful: int = 0
    failed: int = 0
    in_progress: int = 0
    avg_duration_ms: float = 0.0
    recent: list[PipelineRun] = field(default_factory=list)
