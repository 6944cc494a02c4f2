"""Orchestrator - runs the merge pipeline step by step."""

from __future__ import annotations

import logging
import os
import shutil
import threading
import uuid
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING

from repomerge.logging import sanitize_for_log
from repomerge.orchestrator.exceptions import EmptySelectionError, RunNotRegisteredError
from repomerge.orchestrator.models import RunContext, RunHandle, RunWorkspace
from repomerge.pipeline.exceptions import CancellationError, ConfigurationError
from repomerge.pipeline.models import StepName
from repomerge.pipeline.state_machine import RunStateMachine
from repomerge.selection.copier import stage_copy_plan
from repomerge.selection.selector import CopyPlan
from repomerge.selection.selector import compute_copy_plan as build_copy_plan

if TYPE_CHECKING:
    from repomerge.api.events import EventManager
    from repomerge.pipeline.models import PipelineConfiguration, PipelineRun
    from repomerge.providers.base import SourceProvider, TargetProvider
    from repomerge.selection.models import MaterializedPlan
    from repomerge.state_store import RunPage, StateStore

logger = logging.getLogger(__name__)

StepBody = Callable[[RunContext, RunStateMachine], str]


class Orchestrator:
    """Creates runs and drives them through the fixed step sequence.

    Each run executes on its own daemon thread. Steps run one at a time; the
    first failing step fails the run and the remaining steps stay idle.
    Remote side effects (branches, pushed commits) are not rolled back; a
    re-run with the same configuration reuses the branch.
    """

    def __init__(
        self,
        state_store: StateStore,
        source_provider: SourceProvider,
        target_provider: TargetProvider,
        event_manager: EventManager | None = None,
        work_root: str | Path = "workspaces",
        run_async: bool = True,
        keep_workspaces: bool = False,
        preview_root: str | Path | None = None,
    ) -> None:
        """Initialize the Orchestrator.

        Args:
            state_store: Persistence for runs and settings.
            source_provider: Host the content is copied from.
            target_provider: Host the content is merged into.
            event_manager: Optional SSE event sink.
            work_root: Parent of the per-run working directories.
            run_async: Execute runs on background threads (False runs inline).
            keep_workspaces: Keep working directories after a run ends.
            preview_root: Directory that copy plan previews are confined to.
                Defaults to work_root.
        """
        self.state_store = state_store
        self.source_provider = source_provider
        self.target_provider = target_provider
        self.event_manager = event_manager
        self.work_root = Path(work_root)
        self.run_async = run_async
        self.keep_workspaces = keep_workspaces
        self.preview_root = Path(preview_root) if preview_root is not None else self.work_root
        self._handles: dict[str, RunHandle] = {}
        self._lock = threading.Lock()
        self._steps: dict[StepName, StepBody] = {
            StepName.VALIDATE_ACCESS: self._validate_access,
            StepName.CLONE_SOURCE: self._clone_source,
            StepName.SELECT_FILES: self._select_files,
            StepName.CREATE_BRANCH: self._create_branch,
            StepName.COPY_FILES: self._copy_files,
            StepName.SYNC_TARGET: self._sync_target,
            StepName.CREATE_MERGE_REQUEST: self._create_merge_request,
        }

    # --- Public API ---

    def start_run(self, configuration: PipelineConfiguration, user_id: str) -> str:
        """Validate, persist and launch a run.

        Returns:
            The new run's ID, immediately; execution continues in the background.

        Raises:
            ConfigurationError: If the configuration is invalid. No run is created.
        """
        run = self.create_run(configuration, user_id)
        if self.run_async:
            thread = threading.Thread(
                target=self.execute_run,
                args=(run.id,),
                name=f"run-{run.id[:8]}",
                daemon=True,
            )
            with self._lock:
                self._handles[run.id].thread = thread
            thread.start()
        else:
            self.execute_run(run.id)
        return run.id

    def create_run(self, configuration: PipelineConfiguration, user_id: str) -> PipelineRun:
        """Validate and persist a run without executing it.

        Raises:
            ConfigurationError: If the configuration is invalid.
        """
        configuration.validate()
        summary = configuration.summary()
        run = self.state_store.create_run(
            user_id=user_id,
            configuration=summary,
            run_id=str(uuid.uuid4()),
        )
        self.state_store.save_settings(user_id, summary)
        with self._lock:
            self._handles[run.id] = RunHandle(
                run_id=run.id,
                user_id=user_id,
                configuration=configuration,
            )
        logger.info("Created run %s for user %s", run.id, user_id)
        if self.event_manager is not None:
            self.event_manager.emit_run_created(run.id, user_id, run.status.value)
        return run

    def execute_run(self, run_id: str) -> PipelineRun:
        """Run every step of a created run in order.

        Step failures, cancellation included, end up in the returned run and
        are never raised. An internal error outside the step bodies fails the
        run as well. The run's handle, credentials included, is released once
        execution ends.

        Raises:
            RunNotRegisteredError: If the run was not created by this orchestrator.
        """
        with self._lock:
            handle = self._handles.get(run_id)
        if handle is None:
            raise RunNotRegisteredError(f"Run {run_id} is not registered with this orchestrator")

        try:
            machine = RunStateMachine(self.state_store.get_run(run_id), repository=self.state_store)
            workspace = RunWorkspace.for_run(self.work_root, run_id)
            context = RunContext(handle=handle, workspace=workspace)
            try:
                self._run_steps(machine, context)
            except Exception as e:
                logger.exception("Run %s: internal error", run_id)
                machine.abort(sanitize_for_log(str(e)))
            finally:
                with self._lock:
                    handle.finished = True
                if not self.keep_workspaces:
                    shutil.rmtree(context.workspace.root, ignore_errors=True)

            run = machine.snapshot()
            logger.info("Run %s finished with status %s", run_id, run.status.value)
            if self.event_manager is not None:
                error = run.error.message if run.error else None
                self.event_manager.emit_run_completed(
                    run_id, handle.user_id, run.status.value, error
                )
            return run
        finally:
            with self._lock:
                self._handles.pop(run_id, None)

    def cancel_run(self, run_id: str) -> bool:
        """Request cancellation of a run.

        Returns:
            True only if the run is known, not terminal and not already cancelling.
        """
        with self._lock:
            handle = self._handles.get(run_id)
            if handle is None or handle.finished or handle.cancel_event.is_set():
                return False
            if self.state_store.get_run(run_id).is_terminal:
                return False
            handle.cancel_event.set()
        logger.info("Cancellation requested for run %s", run_id)
        self._log(handle, "warning", "Cancellation requested")
        return True

    def get_run(self, run_id: str) -> PipelineRun:
        """Snapshot of a run.

        Raises:
            RunNotFoundError: If run doesn't exist
        """
        return self.state_store.get_run(run_id)

    def list_runs(self, user_id: str | None = None, page: int = 1, limit: int = 20) -> RunPage:
        """A page of runs, newest first."""
        return self.state_store.list_runs(user_id=user_id, page=page, limit=limit)

    def compute_copy_plan(
        self,
        source_root: str | Path,
        configuration: PipelineConfiguration,
    ) -> CopyPlan:
        """Preview the copy plan for a local source tree."""
        return build_copy_plan(source_root, configuration)

    def resolve_preview_source(self, source_root: str | Path) -> Path:
        """Resolve a directory to preview. Relative paths start at the preview root.

        Raises:
            ConfigurationError: If the directory lies outside the preview root
                or does not exist.
        """
        base = os.path.realpath(self.preview_root)
        candidate = os.path.realpath(os.path.join(base, source_root))
        if os.path.commonpath([candidate, base]) != base:
            raise ConfigurationError(f"Source root '{source_root}' is outside the preview root")
        if not os.path.isdir(candidate):
            raise ConfigurationError(f"Source root '{source_root}' is not a directory")
        return Path(candidate)

    def wait(self, run_id: str, timeout: float | None = None) -> None:
        """Block until a background run's thread ends."""
        with self._lock:
            handle = self._handles.get(run_id)
        if handle is not None and handle.thread is not None:
            handle.thread.join(timeout)

    # --- Execution ---

    def _run_steps(self, machine: RunStateMachine, context: RunContext) -> None:
        handle = context.handle
        machine.start()
        self._log(handle, "info", "Run started")
        for name in StepName.ordered():
            if handle.cancel_event.is_set():
                machine.cancel_step(name)
                self._step_event(machine, handle, name)
                return
            if not self._run_step(machine, context, name):
                return
        machine.finish()

    def _run_step(self, machine: RunStateMachine, context: RunContext, name: StepName) -> bool:
        """Execute one step body. Returns False when the run must stop."""
        handle = context.handle
        machine.start_step(name)
        self._step_event(machine, handle, name)
        try:
            message = self._steps[name](context, machine)
        except CancellationError:
            logger.info("Run %s cancelled during %s", handle.run_id, name.value)
            machine.cancel_step(name)
            self._step_event(machine, handle, name)
            return False
        except Exception as e:
            error_message = str(e)
            logger.exception(
                "Run %s: step %s raised: %s", handle.run_id, name.value, sanitize_for_log(error_message)
            )
            machine.fail_step(name, error_message)
            self._step_event(machine, handle, name)
            self._log(handle, "error", f"{name.value} failed: {error_message}")
            return False

        machine.complete_step(name, message)
        self._step_event(machine, handle, name)
        self._log(handle, "info", message)
        return True

    def _validate_access(self, context: RunContext, machine: RunStateMachine) -> str:
        config = context.configuration
        self.source_provider.validate_access(config.source_repo_url, config.source_credential)
        self.target_provider.validate_access(config.target_repo_url, config.target_credential)
        return "Source and target repositories are accessible"

    def _clone_source(self, context: RunContext, machine: RunStateMachine) -> str:
        config = context.configuration
        self.source_provider.clone_repository(
            config.source_repo_url,
            config.source_credential,
            context.workspace.source,
            cancel_event=context.cancel_event,
        )
        return f"Cloned {config.source_repo_url}"

    def _select_files(self, context: RunContext, machine: RunStateMachine) -> str:
        plan = build_copy_plan(context.workspace.source, context.configuration)
        materialized = plan.materialize()
        context.plan = materialized
        context.plan_root = plan.root

        if not materialized.entries:
            materialized.check()
            raise EmptySelectionError("No files or folders matched the selection rules")

        message = (
            f"Selected {materialized.file_count} file(s) and "
            f"{materialized.directory_count} folder(s)"
        )
        if materialized.is_partial:
            skipped = ", ".join(issue.path for issue in materialized.errors)
            message += f"; skipped unreadable path(s): {skipped}"
        return message

    def _create_branch(self, context: RunContext, machine: RunStateMachine) -> str:
        config = context.configuration
        self.target_provider.create_branch(
            config.target_repo_url,
            config.target_credential,
            config.target_branch,
            config.base_branch,
        )
        return f"Branch {config.target_branch} ready"

    def _copy_files(self, context: RunContext, machine: RunStateMachine) -> str:
        plan, plan_root = self._require_plan(context)
        result = stage_copy_plan(plan.entries, plan_root, context.workspace.staging)
        return (
            f"Staged {result.files_copied} file(s) and "
            f"{result.directories_copied} folder(s)"
        )

    def _sync_target(self, context: RunContext, machine: RunStateMachine) -> str:
        config = context.configuration
        plan, _ = self._require_plan(context)
        result = self.target_provider.sync_content(
            plan.entries,
            context.workspace.staging,
            config.target_repo_url,
            config.target_credential,
            config.target_branch,
            config.commit_message,
            context.workspace.target,
            destination_path=config.destination_path,
            cancel_event=context.cancel_event,
        )
        machine.record_results(
            files_processed=result.files_processed,
            directories_copied=result.directories_copied,
        )
        if result.commit_sha is None:
            return f"{config.target_branch} already up to date"
        return f"Pushed {result.files_processed} file(s) to {config.target_branch}"

    def _create_merge_request(self, context: RunContext, machine: RunStateMachine) -> str:
        config = context.configuration
        merge_request = self.target_provider.create_merge_request(
            config.target_repo_url,
            config.target_credential,
            config.target_branch,
            config.mr_target_branch,
            config.merge_request_title,
            config.full_description,
        )
        machine.record_results(
            merge_request_id=merge_request.id,
            merge_request_url=merge_request.url,
        )
        return f"Merge request created: {merge_request.url}"

    @staticmethod
    def _require_plan(context: RunContext) -> tuple[MaterializedPlan, Path]:
        if context.plan is None or context.plan_root is None:
            raise RuntimeError("No copy plan; select_files has not run")
        return context.plan, context.plan_root

    # --- Events ---

    def _step_event(self, machine: RunStateMachine, handle: RunHandle, name: StepName) -> None:
        if self.event_manager is None:
            return
        run = machine.snapshot()
        step = run.get_step(name)
        self.event_manager.emit_step_updated(
            run_id=run.id,
            user_id=handle.user_id,
            step=name.value,
            status=step.status.value,
            completion_percentage=run.completion_percentage,
            message=step.error_message or step.message,
        )

    def _log(self, handle: RunHandle, level: str, message: str) -> None:
        if self.event_manager is not None:
            self.event_manager.emit_log(handle.run_id, handle.user_id, level, message)
