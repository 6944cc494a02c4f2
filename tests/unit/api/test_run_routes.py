"""Unit tests for run routes."""

from pathlib import Path
from unittest.mock import MagicMock

import pytest
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.testclient import TestClient

from repomerge.api.dependencies import get_orchestrator, get_state_store
from repomerge.api.models import APIResponse
from repomerge.api.routes import runs
from repomerge.orchestrator import Orchestrator
from repomerge.pipeline.exceptions import ConfigurationError
from repomerge.pipeline.models import CANCELLED_ERROR, RunStatus
from repomerge.providers.exceptions import AccessError
from repomerge.providers.models import MergeRequest, SyncResult
from repomerge.state_store import RunNotFoundError, StateStore


@pytest.fixture
def store():
    """Create an in-memory StateStore."""
    s = StateStore(":memory:")
    yield s
    s.close()


@pytest.fixture
def source_provider():
    """Mock source provider whose clone writes one markdown file."""
    provider = MagicMock()

    def clone(url, credential, destination, cancel_event=None):
        Path(destination).mkdir(parents=True, exist_ok=True)
        (Path(destination) / "README.md").write_text("# Readme\n")

    provider.clone_repository.side_effect = clone
    return provider


@pytest.fixture
def target_provider():
    """Mock target provider."""
    provider = MagicMock()
    provider.sync_content.return_value = SyncResult(
        files_processed=1, directories_copied=0, commit_sha="abc"
    )
    provider.create_merge_request.return_value = MergeRequest(
        id="55", url="https://gitlab.example.com/g/p/-/merge_requests/3", iid=3
    )
    return provider


@pytest.fixture
def orchestrator(store, source_provider, target_provider, tmp_path: Path) -> Orchestrator:
    """Orchestrator executing runs inline."""
    return Orchestrator(
        state_store=store,
        source_provider=source_provider,
        target_provider=target_provider,
        work_root=tmp_path / "work",
        run_async=False,
    )


@pytest.fixture
def app(store: StateStore, orchestrator: Orchestrator):
    """Create a test FastAPI app with overridden dependencies."""
    app = FastAPI()

    def override_get_state_store():
        yield store

    def override_get_orchestrator():
        yield orchestrator

    app.dependency_overrides[get_state_store] = override_get_state_store
    app.dependency_overrides[get_orchestrator] = override_get_orchestrator

    @app.exception_handler(ConfigurationError)
    async def configuration_error_handler(request: Request, exc: ConfigurationError):
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=APIResponse[None](data=None, error=str(exc)).model_dump(),
        )

    @app.exception_handler(RunNotFoundError)
    async def run_not_found_handler(request: Request, exc: RunNotFoundError):
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content=APIResponse[None](data=None, error="Run not found").model_dump(),
        )

    app.include_router(runs.router, prefix="/api/v1")
    return app


@pytest.fixture
def client(app: FastAPI):
    """Create a test client."""
    with TestClient(app, raise_server_exceptions=False) as client:
        yield client


def run_request(**overrides) -> dict:
    body = {
        "user_id": "user-1",
        "source_repo_url": "https://github.com/acme/source-repo",
        "source_credential": "ghp_" + "a" * 36,
        "target_repo_url": "https://gitlab.example.com/g/p",
        "target_credential": "glpat-" + "b" * 20,
        "target_branch": "feature/sync",
        "copy_mode": "files",
        "file_patterns": ["*.md"],
    }
    body.update(overrides)
    return body


@pytest.mark.unit
class TestStartRun:
    """Tests for POST /api/v1/runs."""

    def test_start_run(self, client: TestClient, store: StateStore) -> None:
        response = client.post("/api/v1/runs", json=run_request())

        assert response.status_code == 202
        data = response.json()
        assert data["error"] is None
        run_id = data["data"]["run_id"]
        assert store.get_run(run_id).status == RunStatus.SUCCESS

    def test_invalid_configuration(self, client: TestClient, store: StateStore) -> None:
        response = client.post("/api/v1/runs", json=run_request(target_branch="bad branch"))

        assert response.status_code == 422
        data = response.json()
        assert data["data"] is None
        assert "target_branch" in data["error"]
        assert store.list_runs().total == 0

    def test_missing_fields(self, client: TestClient) -> None:
        response = client.post("/api/v1/runs", json={"user_id": "user-1"})

        assert response.status_code == 422

    def test_unknown_copy_mode(self, client: TestClient) -> None:
        response = client.post("/api/v1/runs", json=run_request(copy_mode="everything"))

        assert response.status_code == 422


@pytest.mark.unit
class TestGetRun:
    """Tests for GET /api/v1/runs/{run_id}."""

    def test_get_run(self, client: TestClient) -> None:
        run_id = client.post("/api/v1/runs", json=run_request()).json()["data"]["run_id"]

        response = client.get(f"/api/v1/runs/{run_id}")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["id"] == run_id
        assert data["status"] == "success"
        assert data["completion_percentage"] == 100
        assert data["is_terminal"] is True
        assert [step["name"] for step in data["steps"]][0] == "validate_access"
        assert len(data["steps"]) == 7
        assert data["results"]["merge_request_url"].endswith("/merge_requests/3")
        assert data["configuration"]["target_branch"] == "feature/sync"
        assert "source_credential" not in data["configuration"]

    def test_failed_run_reports_error(self, client: TestClient, source_provider) -> None:
        source_provider.validate_access.side_effect = AccessError("token rejected")
        run_id = client.post("/api/v1/runs", json=run_request()).json()["data"]["run_id"]

        data = client.get(f"/api/v1/runs/{run_id}").json()["data"]

        assert data["status"] == "failed"
        assert data["error"] == {"step": "validate_access", "message": "token rejected"}
        assert data["steps"][0]["error_message"] == "token rejected"
        assert data["results"] is None

    def test_get_run_not_found(self, client: TestClient) -> None:
        response = client.get("/api/v1/runs/missing")

        assert response.status_code == 404
        assert response.json()["error"] == "Run not found"


@pytest.mark.unit
class TestListRuns:
    """Tests for GET /api/v1/runs."""

    def test_list_runs_paginated(self, client: TestClient) -> None:
        for _ in range(3):
            client.post("/api/v1/runs", json=run_request())
        client.post("/api/v1/runs", json=run_request(user_id="user-2"))

        response = client.get("/api/v1/runs", params={"user_id": "user-1", "limit": 2})

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["total"] == 3
        assert data["pages"] == 2
        assert len(data["items"]) == 2

    def test_list_runs_empty(self, client: TestClient) -> None:
        data = client.get("/api/v1/runs").json()["data"]

        assert data["items"] == []
        assert data["total"] == 0

    @pytest.mark.parametrize("params", [{"page": 0}, {"limit": 0}, {"limit": 101}])
    def test_list_runs_rejects_bad_paging(self, client: TestClient, params: dict) -> None:
        assert client.get("/api/v1/runs", params=params).status_code == 422


@pytest.mark.unit
class TestRunStats:
    """Tests for GET /api/v1/runs/stats."""

    def test_stats(self, client: TestClient, source_provider) -> None:
        client.post("/api/v1/runs", json=run_request())
        source_provider.validate_access.side_effect = AccessError("denied")
        client.post("/api/v1/runs", json=run_request())

        data = client.get("/api/v1/runs/stats", params={"user_id": "user-1"}).json()["data"]

        assert data["total"] == 2
        assert data["successful"] == 1
        assert data["failed"] == 1
        assert data["in_progress"] == 0
        assert len(data["recent"]) == 2


@pytest.mark.unit
class TestCancelRun:
    """Tests for POST /api/v1/runs/{run_id}/cancel."""

    def test_cancel_finished_run_not_accepted(self, client: TestClient) -> None:
        run_id = client.post("/api/v1/runs", json=run_request()).json()["data"]["run_id"]

        response = client.post(f"/api/v1/runs/{run_id}/cancel")

        assert response.status_code == 200
        assert response.json()["data"] == {"run_id": run_id, "accepted": False}

    def test_cancel_created_run(
        self, client: TestClient, orchestrator: Orchestrator, configuration
    ) -> None:
        """A run that has not executed yet is cancelled at its first step."""
        run = orchestrator.create_run(configuration, "user-1")

        first = client.post(f"/api/v1/runs/{run.id}/cancel")
        second = client.post(f"/api/v1/runs/{run.id}/cancel")

        assert first.json()["data"] == {"run_id": run.id, "accepted": True}
        assert second.json()["data"]["accepted"] is False
        result = orchestrator.execute_run(run.id)
        assert result.error is not None
        assert result.error.step == "validate_access"
        assert result.error.message == CANCELLED_ERROR

    def test_cancel_unknown_run(self, client: TestClient) -> None:
        response = client.post("/api/v1/runs/missing/cancel")

        assert response.status_code == 404
