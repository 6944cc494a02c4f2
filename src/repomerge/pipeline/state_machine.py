"""Run State Machine - owns a PipelineRun and applies step transitions."""

from __future__ import annotations

import copy
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Protocol

from repomerge.pipeline.exceptions import RunStateError
from repomerge.pipeline.models import (
    CANCELLED_ERROR,
    CANCELLED_MESSAGE,
    PipelineRun,
    RunError,
    RunResults,
    RunStatus,
    Step,
    StepName,
    StepStatus,
)

logger = logging.getLogger(__name__)


class RunRepository(Protocol):
    """Persistence used by the state machine after every transition."""

    def save_run(self, run: PipelineRun) -> None:
        """Write the full run snapshot."""
        ...


def _utcnow() -> datetime:
    return datetime.now(UTC)


class RunStateMachine:
    """Applies transitions to a single run.

    The machine is the only writer of its run. Readers receive deep copies
    through `snapshot()`. Steps run strictly in StepName order:

        idle -> in_progress -> success | failed

    A failed step fails the run; the remaining steps stay idle and are left
    out of the completion percentage. The run succeeds only when every step
    succeeded.
    """

    def __init__(
        self,
        run: PipelineRun,
        repository: RunRepository | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """Initialize the state machine.

        Args:
            run: The run to drive. It is copied; the caller's object is untouched.
            repository: Where transitions are persisted (optional).
            clock: Source of timestamps.
        """
        self._run = copy.deepcopy(run)
        self._repository = repository
        self._clock = clock

    @property
    def run_id(self) -> str:
        return self._run.id

    @property
    def status(self) -> RunStatus:
        return self._run.status

    @property
    def is_terminal(self) -> bool:
        return self._run.is_terminal

    def snapshot(self) -> PipelineRun:
        """Independent copy of the current run state."""
        return copy.deepcopy(self._run)

    def step(self, name: StepName) -> Step:
        """Copy of a single step."""
        return copy.deepcopy(self._run.get_step(name))

    def start(self) -> None:
        """Move the run from idle to in_progress."""
        if self._run.status != RunStatus.IDLE:
            raise RunStateError(
                f"Run {self._run.id} cannot start from status {self._run.status.value}"
            )
        self._run.status = RunStatus.IN_PROGRESS
        self._run.started_at = self._clock()
        logger.info("Run %s started", self._run.id)
        self._persist()

    def start_step(self, name: StepName, message: str | None = None) -> None:
        """Mark a step in_progress. Every earlier step must have succeeded."""
        self._ensure_active()
        step = self._run.get_step(name)
        if step.status != StepStatus.IDLE:
            raise RunStateError(f"Step {name.value} cannot start from status {step.status.value}")
        self._ensure_predecessors_succeeded(name)

        step.status = StepStatus.IN_PROGRESS
        step.started_at = self._clock()
        if message:
            step.message = message
        logger.info("Run %s: step %s in progress", self._run.id, name.value)
        self._persist()

    def complete_step(self, name: StepName, message: str | None = None) -> None:
        """Mark an in_progress step successful."""
        self._ensure_active()
        step = self._run.get_step(name)
        if step.status != StepStatus.IN_PROGRESS:
            raise RunStateError(
                f"Step {name.value} cannot succeed from status {step.status.value}"
            )
        step.status = StepStatus.SUCCESS
        step.ended_at = self._clock()
        if message:
            step.message = message
        logger.info("Run %s: step %s succeeded", self._run.id, name.value)
        self._persist()

    def fail_step(
        self,
        name: StepName,
        error_message: str,
        message: str | None = None,
    ) -> None:
        """Fail a step and with it the run.

        An idle step may be failed directly when it is the next step to run;
        this is how a cancellation observed at a step boundary is recorded.

        Args:
            name: The failing step.
            error_message: Error text, stored verbatim.
            message: Optional human-readable summary.
        """
        self._ensure_active()
        step = self._run.get_step(name)
        if step.status == StepStatus.IDLE:
            self._ensure_predecessors_succeeded(name)
        elif step.status != StepStatus.IN_PROGRESS:
            raise RunStateError(f"Step {name.value} cannot fail from status {step.status.value}")

        now = self._clock()
        if step.started_at is None:
            step.started_at = now
        step.status = StepStatus.FAILED
        step.ended_at = now
        step.error_message = error_message
        if message:
            step.message = message

        self._run.status = RunStatus.FAILED
        self._run.error = RunError(step=name.value, message=error_message)
        self._run.ended_at = now
        logger.warning("Run %s: step %s failed: %s", self._run.id, name.value, error_message)
        self._persist()

    def cancel_step(self, name: StepName) -> None:
        """Fail a step with the distinguished cancellation message."""
        self.fail_step(name, CANCELLED_ERROR, message=CANCELLED_MESSAGE)

    def record_results(
        self,
        files_processed: int | None = None,
        directories_copied: int | None = None,
        merge_request_id: str | None = None,
        merge_request_url: str | None = None,
    ) -> None:
        """Merge result fields into the run. Only provided fields are updated."""
        self._ensure_active()
        results = self._run.results or RunResults()
        if files_processed is not None:
            results.files_processed = files_processed
        if directories_copied is not None:
            results.directories_copied = directories_copied
        if merge_request_id is not None:
            results.merge_request_id = merge_request_id
        if merge_request_url is not None:
            results.merge_request_url = merge_request_url
        self._run.results = results
        self._persist()

    def finish(self) -> None:
        """Mark the run successful. Every step must have succeeded."""
        self._ensure_active()
        pending = [s.name.value for s in self._run.steps if s.status != StepStatus.SUCCESS]
        if pending:
            raise RunStateError(
                f"Run {self._run.id} cannot succeed; unfinished steps: {', '.join(pending)}"
            )
        self._run.status = RunStatus.SUCCESS
        self._run.ended_at = self._clock()
        logger.info("Run %s succeeded", self._run.id)
        self._persist()

    def next_step(self) -> StepName | None:
        """First idle step, or None when no step remains."""
        for step in self._run.steps:
            if step.status == StepStatus.IDLE:
                return step.name
        return None

    def abort(self, error_message: str) -> None:
        """Fail the run after an error raised outside any step body.

        The in-progress step fails when there is one; otherwise the error is
        attributed to the last step that ran. A terminal run is left untouched.
        """
        if self._run.status.is_terminal:
            return
        running = [s for s in self._run.steps if s.status == StepStatus.IN_PROGRESS]
        if running and self._run.status == RunStatus.IN_PROGRESS:
            self.fail_step(running[0].name, error_message)
            return

        attempted = [s for s in self._run.steps if s.status != StepStatus.IDLE]
        step = attempted[-1] if attempted else self._run.steps[0]
        now = self._clock()
        self._run.status = RunStatus.FAILED
        self._run.error = RunError(step=step.name.value, message=error_message)
        self._run.ended_at = now
        logger.error("Run %s aborted: %s", self._run.id, error_message)
        self._persist()

    def _ensure_active(self) -> None:
        if self._run.status.is_terminal:
            raise RunStateError(f"Run {self._run.id} is terminal ({self._run.status.value})")
        if self._run.status != RunStatus.IN_PROGRESS:
            raise RunStateError(f"Run {self._run.id} has not been started")

    def _ensure_predecessors_succeeded(self, name: StepName) -> None:
        for step in self._run.steps:
            if step.name < name and step.status != StepStatus.SUCCESS:
                raise RunStateError(
                    f"Step {name.value} cannot run before {step.name.value} succeeded"
                )

    def _persist(self) -> None:
        if self._repository is not None:
            self._repository.save_run(self.snapshot())
