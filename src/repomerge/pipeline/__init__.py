"""Pipeline - run and step models and the run state machine."""

from repomerge.pipeline.exceptions import (
    CancellationError,
    ConfigurationError,
    PipelineError,
    RunStateError,
)
from repomerge.pipeline.models import (
    CANCELLED_ERROR,
    CANCELLED_MESSAGE,
    PipelineConfiguration,
    PipelineRun,
    RunError,
    RunResults,
    RunStatus,
    Step,
    StepName,
    StepStatus,
    compute_completion_percentage,
    is_run_terminal,
)
from repomerge.pipeline.state_machine import RunRepository, RunStateMachine

__all__ = [
    "CANCELLED_ERROR",
    "CANCELLED_MESSAGE",
    "CancellationError",
    "ConfigurationError",
    "PipelineConfiguration",
    "PipelineError",
    "PipelineRun",
    "RunError",
    "RunRepository",
    "RunResults",
    "RunStateError",
    "RunStateMachine",
    "RunStatus",
    "Step",
    "StepName",
    "StepStatus",
    "compute_completion_percentage",
    "is_run_terminal",
]
