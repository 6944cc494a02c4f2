"""Domain models for pipeline runs."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from datetime import datetime  # noqa: TC003 - used at runtime by dataclasses
from enum import StrEnum
from typing import Any
from urllib.parse import urlparse

from repomerge.pipeline.exceptions import ConfigurationError
from repomerge.selection.exceptions import PatternError
from repomerge.selection.models import CopyMode
from repomerge.selection.patterns import validate_pattern, validate_relative_path

CANCELLED_MESSAGE = "cancelled"
CANCELLED_ERROR = "Pipeline run was cancelled"

_BRANCH_NAME = re.compile(r"^[A-Za-z0-9_/.-]+$")
_URL_FORBIDDEN = (";", "|", "&", "`", " ")


class StepName(StrEnum):
    """The fixed pipeline stages, declared in execution order."""

    VALIDATE_ACCESS = "validate_access"
    CLONE_SOURCE = "clone_source"
    SELECT_FILES = "select_files"
    CREATE_BRANCH = "create_branch"
    COPY_FILES = "copy_files"
    SYNC_TARGET = "sync_target"
    CREATE_MERGE_REQUEST = "create_merge_request"

    @classmethod
    def ordered(cls) -> tuple[StepName, ...]:
        """All steps in execution order."""
        return tuple(cls)

    @property
    def position(self) -> int:
        """Zero-based index of the step in the pipeline."""
        return StepName.ordered().index(self)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, StepName):
            return NotImplemented
        return self.position < other.position

    def __le__(self, other: object) -> bool:
        if not isinstance(other, StepName):
            return NotImplemented
        return self.position <= other.position

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, StepName):
            return NotImplemented
        return self.position > other.position

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, StepName):
            return NotImplemented
        return self.position >= other.position


class StepStatus(StrEnum):
    """Status of a single step."""

    IDLE = "idle"
    IN_PROGRESS = "in_progress"
    SUCCESS = "success"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (StepStatus.SUCCESS, StepStatus.FAILED)


class RunStatus(StrEnum):
    """Overall status of a run."""

    IDLE = "idle"
    IN_PROGRESS = "in_progress"
    SUCCESS = "success"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.SUCCESS, RunStatus.FAILED)


@dataclass(frozen=True)
class PipelineConfiguration:
    """Input of a run. Immutable once the run starts.

    Credentials are excluded from repr and from `summary()` so they never
    reach logs or the database.
    """

    source_repo_url: str
    source_credential: str = field(repr=False)
    target_repo_url: str
    target_credential: str = field(repr=False)
    target_branch: str
    base_branch: str = "main"
    copy_mode: CopyMode = CopyMode.FILES
    file_patterns: tuple[str, ...] = ()
    include_folders: tuple[str, ...] = ()
    exclude_patterns: tuple[str, ...] = ()
    preserve_structure: bool = True
    merge_request_title: str = "Automated repository merge"
    merge_request_description: str = ""
    commit_message: str = "feat: Update from automated pipeline"
    source_path: str = ""
    destination_path: str = ""
    merge_request_target_branch: str | None = None
    changes_description: str = ""

    def __post_init__(self) -> None:
        # Accept any iterable of strings and any copy mode spelling
        for name in ("file_patterns", "include_folders", "exclude_patterns"):
            value = getattr(self, name)
            cleaned = tuple(item.strip() for item in value if item and item.strip())
            object.__setattr__(self, name, cleaned)
        if not isinstance(self.copy_mode, CopyMode):
            try:
                object.__setattr__(self, "copy_mode", CopyMode(self.copy_mode))
            except ValueError as e:
                raise ConfigurationError(f"Invalid copy mode: {self.copy_mode!r}") from e

    @property
    def mr_target_branch(self) -> str:
        """Branch the merge request targets."""
        return self.merge_request_target_branch or self.base_branch

    @property
    def full_description(self) -> str:
        """Merge request description including the changes section."""
        if self.changes_description:
            return f"{self.merge_request_description}\n\n## Changes Made\n{self.changes_description}"
        return self.merge_request_description

    def validate(self) -> None:
        """Check the configuration before a run is created.

        Raises:
            ConfigurationError: Listing every problem found.
        """
        problems: list[str] = []

        for label, url in (
            ("source_repo_url", self.source_repo_url),
            ("target_repo_url", self.target_repo_url),
        ):
            if not _is_valid_url(url):
                problems.append(f"{label} must be an http(s) URL")
        if not self.source_credential:
            problems.append("source_credential is required")
        if not self.target_credential:
            problems.append("target_credential is required")

        for label, branch in (
            ("target_branch", self.target_branch),
            ("base_branch", self.base_branch),
            ("merge_request_target_branch", self.mr_target_branch),
        ):
            if not branch or not _BRANCH_NAME.match(branch.strip()):
                problems.append(
                    f"{label} must contain only letters, digits, '-', '_', '/' and '.'"
                )

        if self.copy_mode == CopyMode.FILES and not self.file_patterns:
            problems.append("copy mode 'files' requires at least one file pattern")
        if self.copy_mode == CopyMode.FOLDERS and not self.include_folders:
            problems.append("copy mode 'folders' requires at least one folder path")
        if (
            self.copy_mode == CopyMode.MIXED
            and not self.file_patterns
            and not self.include_folders
        ):
            problems.append("copy mode 'mixed' requires file patterns or folder paths")

        for pattern in (*self.file_patterns, *self.include_folders, *self.exclude_patterns):
            try:
                validate_pattern(pattern)
            except PatternError as e:
                problems.append(str(e))

        for label, path in (
            ("source_path", self.source_path),
            ("destination_path", self.destination_path),
        ):
            if path:
                try:
                    validate_relative_path(path)
                except PatternError as e:
                    problems.append(f"{label}: {e}")

        if not self.commit_message.strip():
            problems.append("commit_message is required")
        if not self.merge_request_title.strip():
            problems.append("merge_request_title is required")

        if problems:
            raise ConfigurationError("Invalid pipeline configuration: " + "; ".join(problems), problems)

    def summary(self) -> dict[str, Any]:
        """Non-secret view of the configuration, safe to persist and display."""
        return {
            "source_repo_url": self.source_repo_url,
            "target_repo_url": self.target_repo_url,
            "target_branch": self.target_branch,
            "base_branch": self.base_branch,
            "copy_mode": self.copy_mode.value,
            "file_patterns": list(self.file_patterns),
            "include_folders": list(self.include_folders),
            "exclude_patterns": list(self.exclude_patterns),
            "preserve_structure": self.preserve_structure,
            "merge_request_title": self.merge_request_title,
            "merge_request_description": self.merge_request_description,
            "merge_request_target_branch": self.mr_target_branch,
            "commit_message": self.commit_message,
            "source_path": self.source_path,
            "destination_path": self.destination_path,
            "changes_description": self.changes_description,
        }


def _is_valid_url(url: str) -> bool:
    if not url or any(ch in url for ch in _URL_FORBIDDEN):
        return False
    parsed = urlparse(url)
    return parsed.scheme in ("http", "https") and bool(parsed.hostname)


@dataclass
class Step:
    """State of one pipeline stage within a run."""

    name: StepName
    status: StepStatus = StepStatus.IDLE
    started_at: datetime | None = None
    ended_at: datetime | None = None
    message: str | None = None
    error_message: str | None = None

    @property
    def duration_ms(self) -> int | None:
        if self.started_at is None or self.ended_at is None:
            return None
        return int((self.ended_at - self.started_at).total_seconds() * 1000)


@dataclass
class RunResults:
    """Outputs collected while a run executes."""

    files_processed: int = 0
    directories_copied: int = 0
    merge_request_id: str | None = None
    merge_request_url: str | None = None


@dataclass
class RunError:
    """Where and why a run failed."""

    step: str
    message: str


@dataclass
class PipelineRun:
    """A snapshot of one pipeline execution.

    Attributes:
        id: Run identity.
        user_id: Owning user reference.
        status: Overall run status.
        steps: One record per StepName, in execution order.
        created_at: When the run record was created.
        started_at: When execution began.
        ended_at: When the run reached a terminal status.
        results: Outputs (counts, merge request), if any.
        error: Failing step and message, if the run failed.
        configuration: Non-secret configuration summary.
    """

    id: str
    user_id: str
    status: RunStatus = RunStatus.IDLE
    steps: list[Step] = field(default_factory=list)
    created_at: datetime | None = None
    started_at: datetime | None = None
    ended_at: datetime | None = None
    results: RunResults | None = None
    error: RunError | None = None
    configuration: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def new(
        cls,
        run_id: str,
        user_id: str,
        created_at: datetime | None = None,
        configuration: dict[str, Any] | None = None,
    ) -> PipelineRun:
        """Create an idle run with every step idle."""
        return cls(
            id=run_id,
            user_id=user_id,
            steps=[Step(name=name) for name in StepName.ordered()],
            created_at=created_at,
            configuration=dict(configuration or {}),
        )

    def get_step(self, name: StepName) -> Step:
        for step in self.steps:
            if step.name == name:
                return step
        raise KeyError(name)

    @property
    def completion_percentage(self) -> int:
        return compute_completion_percentage(self.steps)

    @property
    def is_terminal(self) -> bool:
        return is_run_terminal(self.status, self.steps)

    @property
    def duration_ms(self) -> int | None:
        if self.started_at is None or self.ended_at is None:
            return None
        return int((self.ended_at - self.started_at).total_seconds() * 1000)


def compute_completion_percentage(steps: list[Step]) -> int:
    """Percentage of executing steps that succeeded.

    While no step has failed every step is expected to execute. Once a step
    failed only the attempted steps (succeeded or failed) are counted.
    """
    succeeded = sum(1 for step in steps if step.status == StepStatus.SUCCESS)
    failed = sum(1 for step in steps if step.status == StepStatus.FAILED)
    denominator = succeeded + failed if failed else len(steps)
    if denominator == 0:
        return 0
    # Half-up rounding
    return int(math.floor(100 * succeeded / denominator + 0.5))


def is_run_terminal(status: RunStatus | str, steps: list[Step]) -> bool:
    """Completion test shared by the state machine and polling clients."""
    if RunStatus(status).is_terminal:
        return True
    return bool(steps) and all(StepStatus(step.status).is_terminal for step in steps)
