"""Custom exceptions for file selection."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from repomerge.selection.models import CopyPlanEntry, SelectionIssue


class SelectionError(Exception):
    """Base exception for file selection errors."""


class PatternError(SelectionError):
    """A file pattern or folder path is malformed or escapes the copy root."""


class PlanConsumedError(SelectionError):
    """A copy plan was iterated a second time."""


class SelectionPartialError(SelectionError):
    """Part of the source tree could not be enumerated.

    Attributes:
        entries: Entries that were selected despite the failures.
        errors: One issue per unreadable path.
    """

    def __init__(
        self,
        entries: list[CopyPlanEntry],
        errors: list[SelectionIssue],
    ) -> None:
        paths = ", ".join(issue.path for issue in errors)
        super().__init__(f"Could not read {len(errors)} path(s): {paths}")
        self.entries = entries
        self.errors = errors
