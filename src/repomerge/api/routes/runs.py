"""Pipeline run endpoints."""

from fastapi import APIRouter, Query, status

from repomerge.api.dependencies import OrchestratorDep, StateStoreDep
from repomerge.api.models import (
    APIResponse,
    CancelResponse,
    RunCreate,
    RunCreated,
    RunPageResponse,
    RunResponse,
    RunStatsResponse,
    page_to_response,
    run_to_response,
    stats_to_response,
)

router = APIRouter(prefix="/runs", tags=["runs"])


@router.post(
    "",
    response_model=APIResponse[RunCreated],
    status_code=status.HTTP_202_ACCEPTED,
)
def start_run(request: RunCreate, orchestrator: OrchestratorDep) -> APIResponse[RunCreated]:
    """Validate the configuration and start a run in the background."""
    run_id = orchestrator.start_run(request.to_configuration(), request.user_id)
    return APIResponse(data=RunCreated(run_id=run_id))


@router.get("", response_model=APIResponse[RunPageResponse])
def list_runs(
    orchestrator: OrchestratorDep,
    user_id: str | None = Query(default=None, description="Filter by user ID"),
    page: int = Query(default=1, ge=1, description="1-based page number"),
    limit: int = Query(default=20, ge=1, le=100, description="Page size"),
) -> APIResponse[RunPageResponse]:
    """List runs, newest first."""
    run_page = orchestrator.list_runs(user_id=user_id, page=page, limit=limit)
    return APIResponse(data=page_to_response(run_page))


@router.get("/stats", response_model=APIResponse[RunStatsResponse])
def get_run_stats(
    store: StateStoreDep,
    user_id: str | None = Query(default=None, description="Filter by user ID"),
) -> APIResponse[RunStatsResponse]:
    """Get aggregated run statistics."""
    return APIResponse(data=stats_to_response(store.get_run_stats(user_id=user_id)))


@router.get("/{run_id}", response_model=APIResponse[RunResponse])
def get_run(run_id: str, orchestrator: OrchestratorDep) -> APIResponse[RunResponse]:
    """Get a run snapshot by ID."""
    return APIResponse(data=run_to_response(orchestrator.get_run(run_id)))


@router.post("/{run_id}/cancel", response_model=APIResponse[CancelResponse])
def cancel_run(run_id: str, orchestrator: OrchestratorDep) -> APIResponse[CancelResponse]:
    """Request cancellation of a run.

    `accepted` is false when the run already finished or a cancellation is pending.
    """
    orchestrator.get_run(run_id)
    accepted = orchestrator.cancel_run(run_id)
    return APIResponse(data=CancelResponse(run_id=run_id, accepted=accepted))
