"""Stage a copy plan on disk."""

from __future__ import annotations

import logging
import shutil
from collections.abc import Iterable
from pathlib import Path

from repomerge.selection.models import CopyPlanEntry, EntryKind, StagingResult

logger = logging.getLogger(__name__)


def stage_copy_plan(
    plan: Iterable[CopyPlanEntry],
    source_root: str | Path,
    staging_root: str | Path,
) -> StagingResult:
    """Copy every plan entry from the source tree into a staging directory.

    An existing staging directory is removed first, so the staging tree
    always mirrors exactly one plan.

    Args:
        plan: Entries to copy (a CopyPlan or a materialized entry list).
        source_root: Directory the entry source paths are relative to.
        staging_root: Directory receiving the entries at their destination paths.

    Returns:
        Counts of the files and directories copied.

    Raises:
        OSError: If a file cannot be read or written.
    """
    source = Path(source_root)
    staging = Path(staging_root)
    if staging.exists():
        shutil.rmtree(staging)
    staging.mkdir(parents=True)

    result = StagingResult()
    for entry in plan:
        target = staging / entry.destination_path
        if entry.kind == EntryKind.DIRECTORY:
            target.mkdir(parents=True, exist_ok=True)
            result.directories_copied += 1
        else:
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(source / entry.source_path, target)
            result.files_copied += 1

    logger.info(
        "Staged %d file(s) and %d folder(s) into %s",
        result.files_copied,
        result.directories_copied,
        staging,
    )
    return result
