"""Copy plan preview endpoint."""

from fastapi import APIRouter

from repomerge.api.dependencies import OrchestratorDep
from repomerge.api.models import (
    APIResponse,
    CopyPlanRequest,
    CopyPlanResponse,
    plan_to_response,
)
from repomerge.selection.patterns import validate_pattern

router = APIRouter(prefix="/copy-plan", tags=["copy-plan"])


@router.post("", response_model=APIResponse[CopyPlanResponse])
def preview_copy_plan(
    request: CopyPlanRequest,
    orchestrator: OrchestratorDep,
) -> APIResponse[CopyPlanResponse]:
    """Compute the copy plan of a local directory without starting a run.

    The directory must lie under the preview root. Malformed patterns raise
    PatternError and rejected directories ConfigurationError, both reported as 422.
    """
    for pattern in (*request.file_patterns, *request.include_folders, *request.exclude_patterns):
        validate_pattern(pattern)

    source_root = orchestrator.resolve_preview_source(request.source_root)
    plan = orchestrator.compute_copy_plan(source_root, request.to_configuration())
    return APIResponse(data=plan_to_response(plan.materialize()))
