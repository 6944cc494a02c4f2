"""StateStore - Main API for State Store operations."""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy import case, delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload

from repomerge.pipeline.models import (
    PipelineRun,
    RunError,
    RunResults,
    RunStatus,
    Step,
    StepName,
    StepStatus,
)
from repomerge.state_store.database import Database
from repomerge.state_store.exceptions import RunExistsError, RunNotFoundError
from repomerge.state_store.models import (
    RunPage,
    RunRecord,
    RunStats,
    StepRecord,
    UserSettingsRecord,
)

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100
RECENT_RUNS = 5
_TERMINAL = (RunStatus.SUCCESS.value, RunStatus.FAILED.value)


def _to_db(value: datetime | None) -> datetime | None:
    """SQLite keeps naive datetimes; store everything as naive UTC."""
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(UTC)
    return value.replace(tzinfo=None)


def _from_db(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    return value.replace(tzinfo=UTC)


def _to_domain(record: RunRecord) -> PipelineRun:
    steps = [
        Step(
            name=StepName(step.name),
            status=StepStatus(step.status),
            started_at=_from_db(step.started_at),
            ended_at=_from_db(step.ended_at),
            message=step.message,
            error_message=step.error_message,
        )
        for step in sorted(record.steps, key=lambda s: s.position)
    ]
    results = None
    if record.files_processed is not None or record.merge_request_id is not None:
        results = RunResults(
            files_processed=record.files_processed or 0,
            directories_copied=record.directories_copied or 0,
            merge_request_id=record.merge_request_id,
            merge_request_url=record.merge_request_url,
        )
    error = None
    if record.error_step is not None:
        error = RunError(step=record.error_step, message=record.error_message or "")
    return PipelineRun(
        id=record.id,
        user_id=record.user_id,
        status=RunStatus(record.status),
        steps=steps,
        created_at=_from_db(record.created_at),
        started_at=_from_db(record.started_at),
        ended_at=_from_db(record.ended_at),
        results=results,
        error=error,
        configuration=dict(record.configuration or {}),
    )


class StateStore:
    """Persistence of pipeline runs and per-user settings.

    Every method opens its own session, so one store can be shared by the
    API and the run threads. Runs are returned as detached PipelineRun
    snapshots with UTC-aware timestamps.
    """

    def __init__(self, db_path: str = "repomerge.db") -> None:
        """Initialize State Store with SQLite database.

        Creates database and tables if they don't exist.

        Args:
            db_path: Path to SQLite database file
        """
        self._db = Database(db_path)
        self._db.create_tables()

    def close(self) -> None:
        """Close the database connection."""
        self._db.close()

    # --- Run Operations ---

    def create_run(
        self,
        user_id: str,
        configuration: dict[str, Any] | None = None,
        run_id: str | None = None,
    ) -> PipelineRun:
        """Create an idle run with all steps idle.

        Args:
            user_id: Owning user reference
            configuration: Non-secret configuration summary
            run_id: Explicit run id (generated when omitted)

        Returns:
            The created run

        Raises:
            RunExistsError: If a run with the same id exists
        """
        session = self._db.get_session()
        try:
            record = RunRecord(
                user_id=user_id,
                id=run_id,
                configuration=configuration,
                created_at=_to_db(datetime.now(UTC)),
            )
            record.steps = [
                StepRecord(name=name.value, position=name.position) for name in StepName.ordered()
            ]
            session.add(record)
            session.commit()
            logger.debug("Created run %s for user %s", record.id, user_id)
            return _to_domain(record)
        except IntegrityError as e:
            session.rollback()
            raise RunExistsError(f"Run with id '{run_id}' already exists") from e
        finally:
            session.close()

    def get_run(self, run_id: str) -> PipelineRun:
        """Get run by ID.

        Raises:
            RunNotFoundError: If run doesn't exist
        """
        session = self._db.get_session()
        try:
            record = session.get(RunRecord, run_id, options=[selectinload(RunRecord.steps)])
            if record is None:
                raise RunNotFoundError(f"Run with id '{run_id}' not found")
            return _to_domain(record)
        finally:
            session.close()

    def list_runs(
        self,
        user_id: str | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> RunPage:
        """List runs, newest first.

        Args:
            user_id: Filter by user (None = all)
            page: 1-based page number
            limit: Page size, clamped to 1..100

        Returns:
            RunPage with items and pagination counts
        """
        page = max(page, 1)
        limit = min(max(limit, 1), MAX_PAGE_SIZE)
        session = self._db.get_session()
        try:
            count_stmt = select(func.count(RunRecord.id))
            stmt = select(RunRecord).options(selectinload(RunRecord.steps))
            if user_id is not None:
                count_stmt = count_stmt.where(RunRecord.user_id == user_id)
                stmt = stmt.where(RunRecord.user_id == user_id)

            total = session.execute(count_stmt).scalar_one()
            stmt = stmt.order_by(RunRecord.created_at.desc(), RunRecord.id.desc())
            stmt = stmt.limit(limit).offset((page - 1) * limit)
            records = session.execute(stmt).scalars().all()
            return RunPage(
                items=[_to_domain(record) for record in records],
                total=total,
                page=page,
                limit=limit,
            )
        finally:
            session.close()

    def save_run(self, run: PipelineRun) -> None:
        """Write a full run snapshot, steps included.

        Raises:
            RunNotFoundError: If run doesn't exist
        """
        session = self._db.get_session()
        try:
            record = session.get(RunRecord, run.id, options=[selectinload(RunRecord.steps)])
            if record is None:
                raise RunNotFoundError(f"Run with id '{run.id}' not found")

            record.status = RunStatus(run.status).value
            record.started_at = _to_db(run.started_at)
            record.ended_at = _to_db(run.ended_at)
            record.duration_ms = run.duration_ms
            if run.results is not None:
                record.files_processed = run.results.files_processed
                record.directories_copied = run.results.directories_copied
                record.merge_request_id = run.results.merge_request_id
                record.merge_request_url = run.results.merge_request_url
            if run.error is not None:
                record.error_step = run.error.step
                record.error_message = run.error.message

            by_name = {step.name: step for step in record.steps}
            for step in run.steps:
                row = by_name.get(step.name.value)
                if row is None:
                    row = StepRecord(name=step.name.value, position=step.name.position)
                    record.steps.append(row)
                row.status = StepStatus(step.status).value
                row.started_at = _to_db(step.started_at)
                row.ended_at = _to_db(step.ended_at)
                row.message = step.message
                row.error_message = step.error_message

            session.commit()
        finally:
            session.close()

    def delete_run(self, run_id: str) -> None:
        """Delete a run and its steps.

        Raises:
            RunNotFoundError: If run doesn't exist
        """
        session = self._db.get_session()
        try:
            record = session.get(RunRecord, run_id)
            if record is None:
                raise RunNotFoundError(f"Run with id '{run_id}' not found")
            session.delete(record)
            session.commit()
        finally:
            session.close()

    def get_run_stats(self, user_id: str | None = None) -> RunStats:
        """Aggregate run counts and the average duration of successful runs.

        Args:
            user_id: Filter by user (None = all)
        """
        session = self._db.get_session()
        try:
            stmt = select(
                func.count(RunRecord.id).label("total"),
                func.sum(
                    case((RunRecord.status == RunStatus.SUCCESS.value, 1), else_=0)
                ).label("successful"),
                func.sum(
                    case((RunRecord.status == RunStatus.FAILED.value, 1), else_=0)
                ).label("failed"),
                func.sum(
                    case((RunRecord.status == RunStatus.IN_PROGRESS.value, 1), else_=0)
                ).label("in_progress"),
                func.avg(
                    case((RunRecord.status == RunStatus.SUCCESS.value, RunRecord.duration_ms))
                ).label("avg_duration"),
            )
            if user_id is not None:
                stmt = stmt.where(RunRecord.user_id == user_id)
            row = session.execute(stmt).one()
        finally:
            session.close()

        return RunStats(
            total=row.total or 0,
            successful=row.successful or 0,
            failed=row.failed or 0,
            in_progress=row.in_progress or 0,
            avg_duration_ms=float(row.avg_duration or 0.0),
            recent=self.list_runs(user_id=user_id, page=1, limit=RECENT_RUNS).items,
        )

    def cleanup_old_runs(self, days: int = 30) -> int:
        """Delete terminal runs created more than `days` days ago.

        Returns:
            Number of runs deleted
        """
        cutoff = _to_db(datetime.now(UTC) - timedelta(days=days))
        session = self._db.get_session()
        try:
            old_ids = select(RunRecord.id).where(
                RunRecord.created_at < cutoff,
                RunRecord.status.in_(_TERMINAL),
            )
            ids = list(session.execute(old_ids).scalars().all())
            if not ids:
                return 0
            session.execute(delete(StepRecord).where(StepRecord.run_id.in_(ids)))
            session.execute(delete(RunRecord).where(RunRecord.id.in_(ids)))
            session.commit()
            logger.info("Deleted %d run(s) older than %d day(s)", len(ids), days)
            return len(ids)
        finally:
            session.close()

    # --- Settings Operations ---

    def get_settings(self, user_id: str) -> dict[str, Any] | None:
        """Last-used configuration of a user, or None."""
        session = self._db.get_session()
        try:
            record = session.get(UserSettingsRecord, user_id)
            return dict(record.settings) if record is not None else None
        finally:
            session.close()

    def save_settings(self, user_id: str, settings: dict[str, Any]) -> dict[str, Any]:
        """Replace a user's stored settings.

        Returns:
            The stored settings
        """
        session = self._db.get_session()
        try:
            record = session.get(UserSettingsRecord, user_id)
            if record is None:
                record = UserSettingsRecord(user_id=user_id, settings=dict(settings))
                session.add(record)
            else:
                record.settings = dict(settings)
            session.commit()
            return dict(record.settings)
        finally:
            session.close()
