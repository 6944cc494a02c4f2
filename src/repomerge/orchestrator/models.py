"""Data models for the Orchestrator module."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from pathlib import Path

from repomerge.pipeline.models import PipelineConfiguration
from repomerge.selection.models import MaterializedPlan


@dataclass
class RunWorkspace:
    """Per-run working directories.

    Attributes:
        root: <work_root>/<run_id>
        source: Clone of the source repository.
        staging: Selected content laid out at destination paths.
        target: Checkout of the target branch.
    """

    root: Path

    @classmethod
    def for_run(cls, work_root: str | Path, run_id: str) -> RunWorkspace:
        return cls(root=Path(work_root) / run_id)

    @property
    def source(self) -> Path:
        return self.root / "source"

    @property
    def staging(self) -> Path:
        return self.root / "staging"

    @property
    def target(self) -> Path:
        return self.root / "target"


@dataclass
class RunHandle:
    """In-memory bookkeeping for a run this process executes.

    Attributes:
        run_id: The run's unique ID.
        user_id: Owning user.
        configuration: Full configuration, credentials included. Never persisted.
        cancel_event: Cancellation token shared with long-running provider calls.
        thread: Executing thread when the run runs in the background.
        finished: Set once execution ended.
    """

    run_id: str
    user_id: str
    configuration: PipelineConfiguration
    cancel_event: threading.Event = field(default_factory=threading.Event)
    thread: threading.Thread | None = None
    finished: bool = False


@dataclass
class RunContext:
    """State handed from one step body to the next."""

    handle: RunHandle
    workspace: RunWorkspace
    plan: MaterializedPlan | None = None
    plan_root: Path | None = None

    @property
    def configuration(self) -> PipelineConfiguration:
        return self.handle.configuration

    @property
    def cancel_event(self) -> threading.Event:
        return self.handle.cancel_event
