"""Selection - pattern matching and copy plan computation."""

from repomerge.selection.copier import stage_copy_plan
from repomerge.selection.exceptions import (
    PatternError,
    PlanConsumedError,
    SelectionError,
    SelectionPartialError,
)
from repomerge.selection.models import (
    CopyMode,
    CopyPlanEntry,
    EntryKind,
    MatchResult,
    MaterializedPlan,
    SelectionIssue,
    SelectionRules,
    StagingResult,
)
from repomerge.selection.patterns import match_path, normalize_path, validate_pattern
from repomerge.selection.selector import CopyPlan, compute_copy_plan

__all__ = [
    "CopyMode",
    "CopyPlan",
    "CopyPlanEntry",
    "EntryKind",
    "MatchResult",
    "MaterializedPlan",
    "PatternError",
    "PlanConsumedError",
    "SelectionError",
    "SelectionIssue",
    "SelectionPartialError",
    "SelectionRules",
    "StagingResult",
    "compute_copy_plan",
    "match_path",
    "normalize_path",
    "stage_copy_plan",
    "validate_pattern",
]
