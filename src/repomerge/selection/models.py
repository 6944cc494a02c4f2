"""Data models for file selection."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

from repomerge.selection.exceptions import SelectionPartialError

if TYPE_CHECKING:
    from repomerge.pipeline.models import PipelineConfiguration


class CopyMode(StrEnum):
    """Which configured lists drive the selection."""

    FILES = "files"
    FOLDERS = "folders"
    MIXED = "mixed"


class EntryKind(StrEnum):
    """Kind of a copy plan entry."""

    FILE = "file"
    DIRECTORY = "directory"


@dataclass(frozen=True)
class SelectionRules:
    """Pattern rules evaluated by the matcher.

    Attributes:
        file_patterns: Glob patterns selecting individual files.
        include_folders: Folder paths or globs selected wholesale.
        exclude_patterns: Globs that reject a path and everything below it.
    """

    file_patterns: tuple[str, ...] = ()
    include_folders: tuple[str, ...] = ()
    exclude_patterns: tuple[str, ...] = ()

    @classmethod
    def from_configuration(cls, configuration: PipelineConfiguration) -> SelectionRules:
        """Build rules, dropping the list the copy mode ignores."""
        mode = CopyMode(configuration.copy_mode)
        return cls(
            file_patterns=tuple(configuration.file_patterns) if mode != CopyMode.FOLDERS else (),
            include_folders=tuple(configuration.include_folders) if mode != CopyMode.FILES else (),
            exclude_patterns=tuple(configuration.exclude_patterns),
        )


@dataclass(frozen=True)
class MatchResult:
    """Outcome of matching one path.

    Attributes:
        selected: Whether the path is selected.
        rule: The pattern that decided the outcome, if any.
        reason: Short machine-readable reason (file_pattern, folder,
            excluded, no_match, outside_root).
    """

    selected: bool
    rule: str | None = None
    reason: str = "no_match"


@dataclass(frozen=True)
class CopyPlanEntry:
    """One entry to copy, relative to the copy root and the destination."""

    source_path: str
    destination_path: str
    kind: EntryKind
    selected_by: str

    @property
    def is_dir(self) -> bool:
        return self.kind == EntryKind.DIRECTORY


@dataclass(frozen=True)
class SelectionIssue:
    """A path that could not be read during enumeration."""

    path: str
    message: str


@dataclass
class MaterializedPlan:
    """A fully enumerated copy plan."""

    entries: list[CopyPlanEntry] = field(default_factory=list)
    errors: list[SelectionIssue] = field(default_factory=list)

    @property
    def file_count(self) -> int:
        return sum(1 for entry in self.entries if entry.kind == EntryKind.FILE)

    @property
    def directory_count(self) -> int:
        return sum(1 for entry in self.entries if entry.kind == EntryKind.DIRECTORY)

    @property
    def is_partial(self) -> bool:
        return bool(self.errors)

    def check(self) -> None:
        """Raise SelectionPartialError if any path could not be read."""
        if self.errors:
            raise SelectionPartialError(list(self.entries), list(self.errors))


@dataclass
class StagingResult:
    """Counts of a plan materialised on disk."""

    files_copied: int = 0
    directories_copied: int = 0
