"""File Selector - enumerates a source tree into a copy plan."""

from __future__ import annotations

import logging
import os
import posixpath
from collections.abc import Iterator
from pathlib import Path
from typing import TYPE_CHECKING

from repomerge.selection.exceptions import PlanConsumedError
from repomerge.selection.models import (
    CopyPlanEntry,
    EntryKind,
    MaterializedPlan,
    SelectionIssue,
    SelectionRules,
)
from repomerge.selection.patterns import find_exclusion, match_path, validate_relative_path

if TYPE_CHECKING:
    from repomerge.pipeline.models import PipelineConfiguration

logger = logging.getLogger(__name__)


class CopyPlan:
    """Lazy, single-use sequence of CopyPlanEntry.

    The tree is walked depth-first while the plan is iterated; directories
    come before their contents and siblings are visited in sorted name order.
    Unreadable directories are recorded in `errors` and skipped.

    Attributes:
        root: Directory the entry source paths are relative to.
        errors: Issues collected so far.
    """

    def __init__(
        self,
        root: str | Path,
        rules: SelectionRules,
        preserve_structure: bool = True,
    ) -> None:
        self.root = Path(root)
        self.rules = rules
        self.preserve_structure = preserve_structure
        self.errors: list[SelectionIssue] = []
        self._started = False
        self._real_root = os.path.realpath(self.root)
        self._destinations: set[str] = set()
        self._sources: set[str] = set()

    def __iter__(self) -> Iterator[CopyPlanEntry]:
        if self._started:
            raise PlanConsumedError("Copy plan has already been iterated")
        self._started = True
        return self._generate()

    def materialize(self) -> MaterializedPlan:
        """Enumerate the whole plan into a list."""
        entries = list(self)
        return MaterializedPlan(entries=entries, errors=list(self.errors))

    def _generate(self) -> Iterator[CopyPlanEntry]:
        if not self.root.is_dir():
            self.errors.append(
                SelectionIssue(path=".", message=f"Source root {self.root} is not a directory")
            )
            return
        yield from self._walk(self.root, "", wholesale=None)

    def _scan(self, directory: Path, relative: str) -> list[os.DirEntry[str]] | None:
        try:
            with os.scandir(directory) as iterator:
                return sorted(iterator, key=lambda entry: entry.name)
        except OSError as e:
            logger.warning("Cannot read %s: %s", relative or ".", e)
            self.errors.append(SelectionIssue(path=relative or ".", message=str(e)))
            return None

    def _walk(
        self,
        directory: Path,
        relative: str,
        wholesale: tuple[str, str, str] | None,
    ) -> Iterator[CopyPlanEntry]:
        """Walk one directory.

        Args:
            directory: Absolute directory being read.
            relative: Its path relative to the root ("" for the root).
            wholesale: (rule, selected directory, its destination) when the
                directory lies inside a folder selected as a whole.
        """
        entries = self._scan(directory, relative)
        if entries is None:
            return

        for entry in entries:
            path = f"{relative}/{entry.name}" if relative else entry.name
            is_dir = self._classify(entry, path)
            if is_dir is None:
                continue

            if wholesale is not None:
                if find_exclusion(path, self.rules.exclude_patterns) is not None:
                    continue
                rule, selected_dir, selected_dest = wholesale
                below = path[len(selected_dir) + 1 :]
                destination = path if self.preserve_structure else f"{selected_dest}/{below}"
                planned = self._plan(path, destination, is_dir, rule)
                if planned is not None:
                    yield planned
                if is_dir:
                    yield from self._walk(Path(entry.path), path, wholesale)
                continue

            result = match_path(path, self.rules, is_dir=is_dir)
            if result.reason == "excluded":
                continue

            if is_dir:
                if result.selected and result.rule is not None:
                    destination = path if self.preserve_structure else entry.name
                    planned = self._plan(path, destination, True, result.rule)
                    if planned is None:
                        continue
                    yield planned
                    yield from self._walk(
                        Path(entry.path),
                        path,
                        (result.rule, path, planned.destination_path),
                    )
                else:
                    yield from self._walk(Path(entry.path), path, None)
            elif result.selected and result.rule is not None:
                destination = path if self.preserve_structure else entry.name
                planned = self._plan(path, destination, False, result.rule)
                if planned is not None:
                    yield planned

    def _classify(self, entry: os.DirEntry[str], path: str) -> bool | None:
        """Return True for a directory, False for a file, None to skip.

        Symbolic links are never followed: links to directories are skipped
        and links resolving outside the root are rejected.
        """
        try:
            if entry.is_symlink():
                target = os.path.realpath(entry.path)
                if os.path.commonpath([target, self._real_root]) != self._real_root:
                    logger.warning("Skipping %s: symlink points outside the source root", path)
                    return None
                if os.path.isdir(target):
                    logger.debug("Skipping %s: symlinked directory", path)
                    return None
                return False
            if entry.is_dir(follow_symlinks=False):
                return True
            if entry.is_file(follow_symlinks=False):
                return False
        except (OSError, ValueError) as e:
            self.errors.append(SelectionIssue(path=path, message=str(e)))
            return None
        # Sockets, fifos and devices
        return None

    def _plan(
        self,
        source: str,
        destination: str,
        is_dir: bool,
        rule: str,
    ) -> CopyPlanEntry | None:
        if source in self._sources:
            return None
        self._sources.add(source)
        destination = self._unique(destination, is_dir)
        self._destinations.add(destination)
        return CopyPlanEntry(
            source_path=source,
            destination_path=destination,
            kind=EntryKind.DIRECTORY if is_dir else EntryKind.FILE,
            selected_by=rule,
        )

    def _unique(self, destination: str, is_dir: bool) -> str:
        """Suffix a colliding destination with _1, _2, ... before the extension."""
        if destination not in self._destinations:
            return destination
        parent, name = posixpath.split(destination)
        stem, ext = (name, "") if is_dir else posixpath.splitext(name)
        counter = 1
        while True:
            candidate_name = f"{stem}_{counter}{ext}"
            candidate = f"{parent}/{candidate_name}" if parent else candidate_name
            if candidate not in self._destinations:
                logger.debug("Destination %s collides, using %s", destination, candidate)
                return candidate
            counter += 1


def compute_copy_plan(
    source_root: str | Path,
    configuration: PipelineConfiguration,
) -> CopyPlan:
    """Build the copy plan for a source tree.

    The configured `source_path` narrows the copy root to a sub-directory of
    `source_root`. Nothing is read until the plan is iterated.

    Args:
        source_root: Root of the cloned source repository.
        configuration: Pipeline configuration supplying the selection rules.

    Returns:
        A lazy CopyPlan.
    """
    root = Path(source_root)
    if configuration.source_path:
        root = root / validate_relative_path(configuration.source_path)
    rules = SelectionRules.from_configuration(configuration)
    logger.debug(
        "Computing copy plan under %s (mode=%s, preserve_structure=%s)",
        root,
        configuration.copy_mode,
        configuration.preserve_structure,
    )
    return CopyPlan(root, rules, preserve_structure=configuration.preserve_structure)
