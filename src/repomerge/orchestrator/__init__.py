"""Orchestrator - drives pipeline runs through their steps."""

from repomerge.orchestrator.exceptions import (
    EmptySelectionError,
    OrchestratorError,
    RunNotRegisteredError,
)
from repomerge.orchestrator.models import RunContext, RunHandle, RunWorkspace
from repomerge.orchestrator.orchestrator import Orchestrator

__all__ = [
    "EmptySelectionError",
    "Orchestrator",
    "OrchestratorError",
    "RunContext",
    "RunHandle",
    "RunNotRegisteredError",
    "RunWorkspace",
]
