"""State Store - Persistent storage for pipeline runs and user settings."""

from repomerge.state_store.exceptions import (
    RunExistsError,
    RunNotFoundError,
    StateStoreError,
)
from repomerge.state_store.models import RunPage, RunRecord, RunStats, StepRecord
from repomerge.state_store.store import StateStore

__all__ = [
    "RunExistsError",
    "RunNotFoundError",
    "RunPage",
    "RunRecord",
    "RunStats",
    "StateStore",
    "StateStoreError",
    "StepRecord",
]
