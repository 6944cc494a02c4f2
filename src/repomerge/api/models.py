"""Pydantic models for REST API."""

from datetime import datetime
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from repomerge.pipeline.models import PipelineConfiguration, PipelineRun
from repomerge.selection.models import CopyMode, CopyPlanEntry, MaterializedPlan
from repomerge.state_store.models import RunPage, RunStats

T = TypeVar("T")


class APIResponse(BaseModel, Generic[T]):
    """Standard API response wrapper."""

    data: T | None = None
    error: str | None = None


# Run configuration


class SelectionRequest(BaseModel):
    """Selection rules shared by run creation and plan preview."""

    copy_mode: CopyMode = CopyMode.FILES
    file_patterns: list[str] = Field(default_factory=list)
    include_folders: list[str] = Field(default_factory=list)
    exclude_patterns: list[str] = Field(default_factory=list)
    preserve_structure: bool = True
    source_path: str = ""


class RunCreate(SelectionRequest):
    """Request model for starting a run."""

    user_id: str = Field(..., min_length=1, max_length=255)
    source_repo_url: str = Field(..., min_length=1)
    source_credential: str = Field(..., min_length=1, repr=False)
    target_repo_url: str = Field(..., min_length=1)
    target_credential: str = Field(..., min_length=1, repr=False)
    target_branch: str = Field(..., min_length=1, max_length=255)
    base_branch: str = Field(default="main", max_length=255)
    merge_request_title: str = Field(default="Automated repository merge", max_length=255)
    merge_request_description: str = ""
    merge_request_target_branch: str | None = Field(default=None, max_length=255)
    commit_message: str = "feat: Update from automated pipeline"
    destination_path: str = ""
    changes_description: str = ""

    def to_configuration(self) -> PipelineConfiguration:
        """Build the domain configuration (validated later by the orchestrator)."""
        return PipelineConfiguration(
            source_repo_url=self.source_repo_url,
            source_credential=self.source_credential,
            target_repo_url=self.target_repo_url,
            target_credential=self.target_credential,
            target_branch=self.target_branch,
            base_branch=self.base_branch,
            copy_mode=self.copy_mode,
            file_patterns=tuple(self.file_patterns),
            include_folders=tuple(self.include_folders),
            exclude_patterns=tuple(self.exclude_patterns),
            preserve_structure=self.preserve_structure,
            merge_request_title=self.merge_request_title,
            merge_request_description=self.merge_request_description,
            commit_message=self.commit_message,
            source_path=self.source_path,
            destination_path=self.destination_path,
            merge_request_target_branch=self.merge_request_target_branch,
            changes_description=self.changes_description,
        )


class RunCreated(BaseModel):
    """Response model for an accepted run."""

    run_id: str


class CancelResponse(BaseModel):
    """Response model for a cancellation request."""

    run_id: str
    accepted: bool


# Run snapshots


class StepResponse(BaseModel):
    """Response model for a step."""

    model_config = ConfigDict(from_attributes=True)

    name: str
    status: str
    started_at: datetime | None
    ended_at: datetime | None
    duration_ms: int | None
    message: str | None
    error_message: str | None


class RunResultsResponse(BaseModel):
    """Response model for run results."""

    model_config = ConfigDict(from_attributes=True)

    files_processed: int
    directories_copied: int
    merge_request_id: str | None
    merge_request_url: str | None


class RunErrorResponse(BaseModel):
    """Response model for a run error."""

    model_config = ConfigDict(from_attributes=True)

    step: str
    message: str


class RunResponse(BaseModel):
    """Response model for a run snapshot."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    status: str
    steps: list[StepResponse]
    results: RunResultsResponse | None
    error: RunErrorResponse | None
    created_at: datetime | None
    started_at: datetime | None
    ended_at: datetime | None
    duration_ms: int | None
    completion_percentage: int
    is_terminal: bool
    configuration: dict[str, Any]


def run_to_response(run: PipelineRun) -> RunResponse:
    """Convert a PipelineRun to RunResponse."""
    return RunResponse.model_validate(run)


class RunPageResponse(BaseModel):
    """Response model for a page of runs."""

    items: list[RunResponse]
    total: int
    page: int
    limit: int
    pages: int


def page_to_response(page: RunPage) -> RunPageResponse:
    """Convert a RunPage to RunPageResponse."""
    return RunPageResponse(
        items=[run_to_response(run) for run in page.items],
        total=page.total,
        page=page.page,
        limit=page.limit,
        pages=page.pages,
    )


class RunStatsResponse(BaseModel):
    """Response model for run statistics."""

    total: int
    successful: int
    failed: int
    in_progress: int
    avg_duration_ms: float
    recent: list[RunResponse]


def stats_to_response(stats: RunStats) -> RunStatsResponse:
    """Convert RunStats to RunStatsResponse."""
    return RunStatsResponse(
        total=stats.total,
        successful=stats.successful,
        failed=stats.failed,
        in_progress=stats.in_progress,
        avg_duration_ms=stats.avg_duration_ms,
        recent=[run_to_response(run) for run in stats.recent],
    )


# Copy plan preview


class CopyPlanRequest(SelectionRequest):
    """Request model for previewing a copy plan against a local directory."""

    source_root: str = Field(
        ...,
        min_length=1,
        description="Directory under the preview root, absolute or relative to it",
    )

    def to_configuration(self) -> PipelineConfiguration:
        """Configuration carrying only the selection rules."""
        return PipelineConfiguration(
            source_repo_url="",
            source_credential="",
            target_repo_url="",
            target_credential="",
            target_branch="",
            copy_mode=self.copy_mode,
            file_patterns=tuple(self.file_patterns),
            include_folders=tuple(self.include_folders),
            exclude_patterns=tuple(self.exclude_patterns),
            preserve_structure=self.preserve_structure,
            source_path=self.source_path,
        )


class CopyPlanEntryResponse(BaseModel):
    """Response model for a copy plan entry."""

    model_config = ConfigDict(from_attributes=True)

    source_path: str
    destination_path: str
    kind: str
    selected_by: str


class SelectionIssueResponse(BaseModel):
    """Response model for an unreadable path."""

    model_config = ConfigDict(from_attributes=True)

    path: str
    message: str


class CopyPlanResponse(BaseModel):
    """Response model for a copy plan preview."""

    entries: list[CopyPlanEntryResponse]
    errors: list[SelectionIssueResponse]
    file_count: int
    directory_count: int


def plan_to_response(plan: MaterializedPlan) -> CopyPlanResponse:
    """Convert a MaterializedPlan to CopyPlanResponse."""
    return CopyPlanResponse(
        entries=[entry_to_response(entry) for entry in plan.entries],
        errors=[SelectionIssueResponse.model_validate(issue) for issue in plan.errors],
        file_count=plan.file_count,
        directory_count=plan.directory_count,
    )


def entry_to_response(entry: CopyPlanEntry) -> CopyPlanEntryResponse:
    """Convert a CopyPlanEntry to CopyPlanEntryResponse."""
    return CopyPlanEntryResponse.model_validate(entry)


# Settings


class SettingsUpdate(BaseModel):
    """Request model for storing a user's settings."""

    settings: dict[str, Any] = Field(default_factory=dict)


class SettingsResponse(BaseModel):
    """Response model for a user's settings."""

    user_id: str
    settings: dict[str, Any] | None
