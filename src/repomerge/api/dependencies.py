"""FastAPI dependencies for dependency injection."""

from __future__ import annotations

from collections.abc import Generator  # noqa: TC003
from pathlib import Path  # noqa: TC003
from typing import TYPE_CHECKING, Annotated, Protocol

from fastapi import Depends

from repomerge.api.events import EventManager
from repomerge.state_store import StateStore

if TYPE_CHECKING:
    from repomerge.pipeline.models import PipelineConfiguration, PipelineRun
    from repomerge.selection.selector import CopyPlan
    from repomerge.state_store import RunPage


class Orchestrator(Protocol):
    """Interface for the Orchestrator component."""

    def start_run(self, configuration: PipelineConfiguration, user_id: str) -> str:
        """Validate and launch a run."""
        ...

    def get_run(self, run_id: str) -> PipelineRun:
        """Snapshot of a run."""
        ...

    def cancel_run(self, run_id: str) -> bool:
        """Request cancellation of a run."""
        ...

    def list_runs(self, user_id: str | None = ..., page: int = ..., limit: int = ...) -> RunPage:
        """A page of runs, newest first."""
        ...

    def compute_copy_plan(
        self,
        source_root: str | Path,
        configuration: PipelineConfiguration,
    ) -> CopyPlan:
        """Preview the copy plan for a local source tree."""
        ...

    def resolve_preview_source(self, source_root: str | Path) -> Path:
        """Directory to preview, confined to the preview root."""
        ...


# Global StateStore instance (initialized on app startup)
_state_store: StateStore | None = None


def init_state_store(db_path: str = "repomerge.db") -> StateStore:
    """Initialize the global StateStore instance."""
    global _state_store  # noqa: PLW0603
    _state_store = StateStore(db_path)
    return _state_store


def close_state_store() -> None:
    """Close the global StateStore instance."""
    global _state_store  # noqa: PLW0603
    if _state_store is not None:
        _state_store.close()
        _state_store = None


def get_state_store() -> Generator[StateStore, None, None]:
    """Dependency that provides the StateStore instance."""
    if _state_store is None:
        raise RuntimeError("StateStore not initialized. Call init_state_store() first.")
    yield _state_store


# Type alias for dependency injection
StateStoreDep = Annotated[StateStore, Depends(get_state_store)]

# Global Orchestrator instance (initialized on app startup)
_orchestrator: Orchestrator | None = None


def init_orchestrator(orchestrator: Orchestrator) -> None:
    """Initialize the global Orchestrator instance."""
    global _orchestrator  # noqa: PLW0603
    _orchestrator = orchestrator


def close_orchestrator() -> None:
    """Close the global Orchestrator instance."""
    global _orchestrator  # noqa: PLW0603
    _orchestrator = None


def get_orchestrator() -> Generator[Orchestrator, None, None]:
    """Dependency that provides the Orchestrator instance."""
    if _orchestrator is None:
        raise RuntimeError("Orchestrator not initialized. Call init_orchestrator() first.")
    yield _orchestrator


# Type alias for dependency injection
OrchestratorDep = Annotated[Orchestrator, Depends(get_orchestrator)]

# Global EventManager instance
_event_manager: EventManager | None = None


def init_event_manager() -> EventManager:
    """Initialize the global EventManager instance."""
    global _event_manager  # noqa: PLW0603
    _event_manager = EventManager()
    return _event_manager


def close_event_manager() -> None:
    """Drop the global EventManager instance."""
    global _event_manager  # noqa: PLW0603
    _event_manager = None


def get_event_manager() -> Generator[EventManager, None, None]:
    """Dependency that provides the EventManager instance."""
    if _event_manager is None:
        raise RuntimeError("EventManager not initialized. Call init_event_manager() first.")
    yield _event_manager


# Type alias for dependency injection
EventManagerDep = Annotated[EventManager, Depends(get_event_manager)]
