"""RunStatusClient - reads run snapshots from the repomerge REST API."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

import httpx

from repomerge.pipeline.models import (
    PipelineRun,
    RunError,
    RunResults,
    RunStatus,
    Step,
    StepName,
    StepStatus,
)

logger = logging.getLogger(__name__)


class RunStatusError(Exception):
    """The API did not return a run snapshot."""


def _parse_datetime(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def run_from_json(data: dict[str, Any]) -> PipelineRun:
    """Convert an API run payload back into a PipelineRun."""
    results = data.get("results")
    error = data.get("error")
    return PipelineRun(
        id=data["id"],
        user_id=data["user_id"],
        status=RunStatus(data["status"]),
        steps=[
            Step(
                name=StepName(step["name"]),
                status=StepStatus(step["status"]),
                started_at=_parse_datetime(step.get("started_at")),
                ended_at=_parse_datetime(step.get("ended_at")),
                message=step.get("message"),
                error_message=step.get("error_message"),
            )
            for step in data.get("steps", [])
        ],
        created_at=_parse_datetime(data.get("created_at")),
        started_at=_parse_datetime(data.get("started_at")),
        ended_at=_parse_datetime(data.get("ended_at")),
        results=RunResults(**results) if results else None,
        error=RunError(**error) if error else None,
        configuration=data.get("configuration") or {},
    )


class RunStatusClient:
    """Fetches run snapshots over HTTP, for use as a poller fetch function."""

    def __init__(self, base_url: str = "http://localhost:8000", timeout: float = 30.0) -> None:
        """Initialize the client.

        Args:
            base_url: Server root, without the /api/v1 prefix
            timeout: Request timeout in seconds
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client: httpx.Client | None = None

    @property
    def client(self) -> httpx.Client:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.Client(base_url=f"{self.base_url}/api/v1", timeout=self.timeout)
        return self._client

    def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            self._client.close()
            self._client = None

    def get_run(self, run_id: str) -> PipelineRun:
        """Fetch one run snapshot.

        Raises:
            RunStatusError: If the API answers with an error
            httpx.HTTPError: On transport failures
        """
        response = self.client.get(f"/runs/{run_id}")
        body = response.json() if response.content else {}
        if response.status_code != 200 or body.get("data") is None:
            detail = body.get("error") or response.text
            raise RunStatusError(f"Failed to fetch run {run_id}: {response.status_code} - {detail}")
        return run_from_json(body["data"])
