"""Integration tests for StateStore run and settings operations."""

import tempfile
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from sqlalchemy import update

from repomerge.pipeline.models import (
    RunError,
    RunResults,
    RunStatus,
    StepName,
    StepStatus,
)
from repomerge.state_store import RunExistsError, RunNotFoundError, StateStore
from repomerge.state_store.models import RunRecord


@pytest.fixture
def temp_db_path() -> str:
    """Create a temporary database path."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        path = f.name
    yield path
    Path(path).unlink(missing_ok=True)
    Path(f"{path}-wal").unlink(missing_ok=True)
    Path(f"{path}-shm").unlink(missing_ok=True)


@pytest.fixture
def store(temp_db_path: str):
    """StateStore backed by a database file."""
    s = StateStore(temp_db_path)
    yield s
    s.close()


def age_run(store: StateStore, run_id: str, days: int) -> None:
    """Move a run's creation time into the past."""
    created = (datetime.now(UTC) - timedelta(days=days)).replace(tzinfo=None)
    session = store._db.get_session()
    try:
        session.execute(update(RunRecord).where(RunRecord.id == run_id).values(created_at=created))
        session.commit()
    finally:
        session.close()


def finish(store: StateStore, run_id: str, status: RunStatus, seconds: int = 2) -> None:
    run = store.get_run(run_id)
    run.status = status
    run.started_at = datetime(2026, 3, 1, 10, 0, tzinfo=UTC)
    run.ended_at = run.started_at + timedelta(seconds=seconds)
    store.save_run(run)


@pytest.mark.integration
class TestCreateRun:
    """Tests for StateStore.create_run."""

    def test_create_run(self, store: StateStore) -> None:
        """A new run is idle with every step idle."""
        run = store.create_run("user-1", configuration={"copy_mode": "files"})

        assert run.id
        assert run.user_id == "user-1"
        assert run.status == RunStatus.IDLE
        assert tuple(step.name for step in run.steps) == StepName.ordered()
        assert all(step.status == StepStatus.IDLE for step in run.steps)
        assert run.created_at is not None
        assert run.created_at.tzinfo is not None
        assert run.configuration == {"copy_mode": "files"}

    def test_create_run_with_id(self, store: StateStore) -> None:
        run = store.create_run("user-1", run_id="run-1")

        assert run.id == "run-1"
        assert store.get_run("run-1").user_id == "user-1"

    def test_create_run_duplicate_id(self, store: StateStore) -> None:
        store.create_run("user-1", run_id="run-1")

        with pytest.raises(RunExistsError):
            store.create_run("user-2", run_id="run-1")


@pytest.mark.integration
class TestGetRun:
    """Tests for StateStore.get_run."""

    def test_get_run_not_found(self, store: StateStore) -> None:
        with pytest.raises(RunNotFoundError):
            store.get_run("missing")

    def test_survives_reopen(self, temp_db_path: str) -> None:
        """Runs persist across store instances."""
        first = StateStore(temp_db_path)
        run_id = first.create_run("user-1").id
        first.close()

        second = StateStore(temp_db_path)
        try:
            assert second.get_run(run_id).user_id == "user-1"
        finally:
            second.close()


@pytest.mark.integration
class TestSaveRun:
    """Tests for StateStore.save_run."""

    def test_save_full_snapshot(self, store: StateStore) -> None:
        run = store.create_run("user-1")
        started = datetime(2026, 3, 1, 10, 0, tzinfo=UTC)
        run.status = RunStatus.SUCCESS
        run.started_at = started
        run.ended_at = started + timedelta(seconds=3)
        for step in run.steps:
            step.status = StepStatus.SUCCESS
            step.started_at = started
            step.ended_at = started + timedelta(milliseconds=250)
            step.message = f"{step.name.value} done"
        run.results = RunResults(
            files_processed=4,
            directories_copied=1,
            merge_request_id="12",
            merge_request_url="https://gitlab.example.com/g/p/-/merge_requests/2",
        )

        store.save_run(run)
        loaded = store.get_run(run.id)

        assert loaded.status == RunStatus.SUCCESS
        assert loaded.started_at == started
        assert loaded.duration_ms == 3000
        assert loaded.completion_percentage == 100
        assert loaded.is_terminal is True
        assert loaded.steps[2].message == "select_files done"
        assert loaded.steps[2].duration_ms == 250
        assert loaded.results == run.results
        assert loaded.error is None

    def test_save_failure(self, store: StateStore) -> None:
        run = store.create_run("user-1")
        run.status = RunStatus.FAILED
        run.steps[0].status = StepStatus.SUCCESS
        run.steps[1].status = StepStatus.FAILED
        run.steps[1].error_message = "clone failed"
        run.error = RunError(step="clone_source", message="clone failed")

        store.save_run(run)
        loaded = store.get_run(run.id)

        assert loaded.error == RunError(step="clone_source", message="clone failed")
        assert loaded.results is None
        assert loaded.steps[1].error_message == "clone failed"
        assert loaded.steps[2].status == StepStatus.IDLE

    def test_save_unknown_run(self, store: StateStore) -> None:
        run = store.create_run("user-1")
        store.delete_run(run.id)

        with pytest.raises(RunNotFoundError):
            store.save_run(run)


@pytest.mark.integration
class TestListRuns:
    """Tests for StateStore.list_runs."""

    def test_newest_first(self, store: StateStore) -> None:
        old = store.create_run("user-1").id
        new = store.create_run("user-1").id
        age_run(store, old, days=1)

        page = store.list_runs()

        assert [run.id for run in page.items] == [new, old]

    def test_pagination(self, store: StateStore) -> None:
        for _ in range(5):
            store.create_run("user-1")

        first = store.list_runs(page=1, limit=2)
        last = store.list_runs(page=3, limit=2)

        assert first.total == 5
        assert first.pages == 3
        assert len(first.items) == 2
        assert len(last.items) == 1

    def test_filter_by_user(self, store: StateStore) -> None:
        store.create_run("user-1")
        store.create_run("user-2")

        page = store.list_runs(user_id="user-2")

        assert page.total == 1
        assert page.items[0].user_id == "user-2"

    def test_limit_clamped(self, store: StateStore) -> None:
        page = store.list_runs(page=0, limit=1000)

        assert page.page == 1
        assert page.limit == 100
        assert page.pages == 0


@pytest.mark.integration
class TestDeleteRun:
    """Tests for StateStore.delete_run."""

    def test_delete_run(self, store: StateStore) -> None:
        run = store.create_run("user-1")

        store.delete_run(run.id)

        with pytest.raises(RunNotFoundError):
            store.get_run(run.id)

    def test_delete_missing(self, store: StateStore) -> None:
        with pytest.raises(RunNotFoundError):
            store.delete_run("missing")


@pytest.mark.integration
class TestRunStats:
    """Tests for StateStore.get_run_stats."""

    def test_stats(self, store: StateStore) -> None:
        ok_fast = store.create_run("user-1").id
        ok_slow = store.create_run("user-1").id
        failed = store.create_run("user-1").id
        store.create_run("user-1")
        store.create_run("user-2")
        finish(store, ok_fast, RunStatus.SUCCESS, seconds=2)
        finish(store, ok_slow, RunStatus.SUCCESS, seconds=4)
        finish(store, failed, RunStatus.FAILED, seconds=30)

        stats = store.get_run_stats(user_id="user-1")

        assert stats.total == 4
        assert stats.successful == 2
        assert stats.failed == 1
        assert stats.in_progress == 0
        assert stats.avg_duration_ms == 3000.0
        assert len(stats.recent) == 4

    def test_stats_empty(self, store: StateStore) -> None:
        stats = store.get_run_stats()

        assert stats.total == 0
        assert stats.avg_duration_ms == 0.0
        assert stats.recent == []


@pytest.mark.integration
class TestCleanupOldRuns:
    """Tests for StateStore.cleanup_old_runs."""

    def test_deletes_old_terminal_runs_only(self, store: StateStore) -> None:
        old_done = store.create_run("user-1").id
        old_idle = store.create_run("user-1").id
        recent_done = store.create_run("user-1").id
        finish(store, old_done, RunStatus.SUCCESS)
        finish(store, recent_done, RunStatus.FAILED)
        age_run(store, old_done, days=40)
        age_run(store, old_idle, days=40)

        deleted = store.cleanup_old_runs(days=30)

        assert deleted == 1
        remaining = {run.id for run in store.list_runs().items}
        assert remaining == {old_idle, recent_done}

    def test_nothing_to_delete(self, store: StateStore) -> None:
        store.create_run("user-1")

        assert store.cleanup_old_runs(days=30) == 0


@pytest.mark.integration
class TestSettings:
    """Tests for per-user settings."""

    def test_settings_round_trip(self, store: StateStore) -> None:
        assert store.get_settings("user-1") is None

        store.save_settings("user-1", {"copy_mode": "mixed", "file_patterns": ["*.md"]})

        assert store.get_settings("user-1") == {"copy_mode": "mixed", "file_patterns": ["*.md"]}

    def test_settings_replaced(self, store: StateStore) -> None:
        store.save_settings("user-1", {"a": 1})

        stored = store.save_settings("user-1", {"b": 2})

        assert stored == {"b": 2}
        assert store.get_settings("user-1") == {"b": 2}
