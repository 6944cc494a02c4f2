"""Capabilities the orchestrator consumes from repository hosts."""

from __future__ import annotations

import threading
from collections.abc import Iterable
from pathlib import Path
from typing import Protocol

from repomerge.providers.models import MergeRequest, SyncResult
from repomerge.selection.models import CopyPlanEntry


class SourceProvider(Protocol):
    """Host the content is copied from."""

    def validate_access(self, repo_url: str, credential: str) -> None:
        """Raise AccessError unless the credential can read the repository."""
        ...

    def clone_repository(
        self,
        repo_url: str,
        credential: str,
        destination: str | Path,
        cancel_event: threading.Event | None = None,
    ) -> None:
        """Clone the repository into `destination`, replacing anything there."""
        ...


class TargetProvider(Protocol):
    """Host the content is merged into."""

    def validate_access(self, repo_url: str, credential: str) -> None:
        """Raise AccessError unless the credential can write the repository."""
        ...

    def create_branch(
        self,
        repo_url: str,
        credential: str,
        branch: str,
        base_branch: str,
    ) -> None:
        """Create `branch` from `base_branch`."""
        ...

    def sync_content(
        self,
        plan: Iterable[CopyPlanEntry],
        staging_root: str | Path,
        repo_url: str,
        credential: str,
        branch: str,
        commit_message: str,
        workdir: str | Path,
        destination_path: str = "",
        cancel_event: threading.Event | None = None,
    ) -> SyncResult:
        """Commit the staged entries to `branch` and push them."""
        ...

    def create_merge_request(
        self,
        repo_url: str,
        credential: str,
        source_branch: str,
        target_branch: str,
        title: str,
        description: str,
    ) -> MergeRequest:
        """Open a merge request from `source_branch` into `target_branch`."""
        ...
