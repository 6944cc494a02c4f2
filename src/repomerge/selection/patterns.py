"""Pattern Matcher - decides whether a relative path is selected.

Glob syntax:
    *       any run of characters within one path segment
    **      any number of whole segments, including none
    ?       one character other than '/'
    [...]   a character class ('!' or '^' negates)
    {a,b}   alternation, may be nested

A pattern without '/' is compared with the base name of the path at any
depth. A pattern containing '/' is anchored at the copy root; a leading '/'
only marks the anchor. Matching is case-sensitive.
"""

from __future__ import annotations

import re
from functools import lru_cache
from typing import TYPE_CHECKING

from repomerge.selection.exceptions import PatternError
from repomerge.selection.models import MatchResult

if TYPE_CHECKING:
    from repomerge.selection.models import SelectionRules

GLOB_CHARS = frozenset("*?[{")
_DRIVE = re.compile(r"^[A-Za-z]:/")


def normalize_path(path: str) -> str | None:
    """Normalize a relative path to 'a/b/c' form.

    Returns:
        The normalized path ("" for the root itself), or None when the path
        is absolute or resolves above the root.
    """
    candidate = path.replace("\\", "/")
    if candidate.startswith("/") or _DRIVE.match(candidate):
        return None
    parts: list[str] = []
    for segment in candidate.split("/"):
        if segment in ("", "."):
            continue
        if segment == "..":
            if not parts:
                return None
            parts.pop()
        else:
            parts.append(segment)
    return "/".join(parts)


def has_glob(pattern: str) -> bool:
    return any(ch in GLOB_CHARS for ch in pattern)


def _clean_pattern(pattern: str) -> tuple[str, bool]:
    """Strip a pattern to its matchable form.

    Returns:
        The cleaned pattern and whether it is anchored at the root.
    """
    cleaned = pattern.strip().replace("\\", "/")
    anchored = cleaned.startswith("/")
    while cleaned.startswith("./"):
        cleaned = cleaned[2:]
    cleaned = cleaned.strip("/")
    cleaned = re.sub(r"/{2,}", "/", cleaned)
    return cleaned, anchored or "/" in cleaned


def validate_pattern(pattern: str) -> None:
    """Check that a glob pattern is well formed and stays inside the root.

    Raises:
        PatternError: If the pattern is empty, has unbalanced braces or
            brackets, or escapes the root.
    """
    if not pattern or not pattern.strip():
        raise PatternError("Pattern must not be empty")

    depth = 0
    in_class = False
    first_member = 0
    for index, ch in enumerate(pattern):
        if in_class:
            # ']' as the first member of a class is a literal
            if ch == "]" and index > first_member:
                in_class = False
            continue
        if ch == "[":
            in_class = True
            first_member = index + 1
            if pattern[first_member : first_member + 1] in ("!", "^"):
                first_member += 1
        elif ch == "]":
            raise PatternError(f"Unbalanced ']' in pattern {pattern!r}")
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth < 0:
                raise PatternError(f"Unbalanced '}}' in pattern {pattern!r}")
    if in_class:
        raise PatternError(f"Unclosed '[' in pattern {pattern!r}")
    if depth:
        raise PatternError(f"Unclosed '{{' in pattern {pattern!r}")

    cleaned, _ = _clean_pattern(pattern)
    if _DRIVE.match(pattern.replace("\\", "/")) or pattern.startswith("//"):
        raise PatternError(f"Pattern {pattern!r} is an absolute path")
    if normalize_path(cleaned) is None:
        raise PatternError(f"Pattern {pattern!r} escapes the copy root")


def validate_relative_path(path: str) -> str:
    """Validate a plain relative directory path and return it normalized.

    Raises:
        PatternError: If the path is absolute or resolves above the root.
    """
    normalized = normalize_path(path)
    if normalized is None:
        raise PatternError(f"Path {path!r} must be relative and stay inside the repository")
    return normalized


def _find_class_end(pattern: str, start: int) -> int:
    """Index of the ']' closing the class opened at `start`, or -1."""
    index = start + 1
    if index < len(pattern) and pattern[index] in "!^":
        index += 1
    if index < len(pattern) and pattern[index] == "]":
        index += 1
    return pattern.find("]", index)


def _find_brace_end(pattern: str, start: int) -> int:
    depth = 0
    for index in range(start, len(pattern)):
        if pattern[index] == "{":
            depth += 1
        elif pattern[index] == "}":
            depth -= 1
            if depth == 0:
                return index
    return -1


def _split_alternatives(body: str) -> list[str]:
    alternatives: list[str] = []
    depth = 0
    current: list[str] = []
    for ch in body:
        if ch == "," and depth == 0:
            alternatives.append("".join(current))
            current = []
            continue
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
        current.append(ch)
    alternatives.append("".join(current))
    return alternatives


def _translate(pattern: str) -> str:
    """Translate a glob into a regular expression body."""
    out: list[str] = []
    index = 0
    length = len(pattern)
    while index < length:
        ch = pattern[index]
        if ch == "*":
            end = index
            while end < length and pattern[end] == "*":
                end += 1
            if end - index >= 2:
                segment_start = index == 0 or pattern[index - 1] == "/"
                if segment_start and end < length and pattern[end] == "/":
                    # '**/' spans zero or more whole segments
                    out.append("(?:[^/]+/)*")
                    end += 1
                else:
                    out.append(".*")
            else:
                out.append("[^/]*")
            index = end
            continue
        if ch == "?":
            out.append("[^/]")
        elif ch == "[":
            end = _find_class_end(pattern, index)
            if end == -1:
                out.append(re.escape(ch))
            else:
                body = pattern[index + 1 : end]
                negate = body[:1] in ("!", "^")
                if negate:
                    body = body[1:]
                body = body.replace("\\", "\\\\")
                out.append(f"[^/{body}]" if negate else f"[{body}]")
                index = end
        elif ch == "{":
            end = _find_brace_end(pattern, index)
            if end == -1:
                out.append(re.escape(ch))
            else:
                alternatives = _split_alternatives(pattern[index + 1 : end])
                out.append("(?:" + "|".join(_translate(alt) for alt in alternatives) + ")")
                index = end
        else:
            out.append(re.escape(ch))
        index += 1
    return "".join(out)


@lru_cache(maxsize=1024)
def compile_pattern(pattern: str) -> re.Pattern[str]:
    """Compile a cleaned glob pattern into a full-match regex."""
    return re.compile(f"(?s:{_translate(pattern)})")


def _glob_matches(pattern: str, path: str) -> bool:
    cleaned, anchored = _clean_pattern(pattern)
    if not cleaned:
        return False
    target = path if anchored else path.rsplit("/", 1)[-1]
    return compile_pattern(cleaned).fullmatch(target) is not None


def _ancestors(path: str) -> list[str]:
    """Proper ancestor directories of a path, outermost first."""
    parts = path.split("/")
    return ["/".join(parts[:i]) for i in range(1, len(parts))]


def find_exclusion(path: str, exclude_patterns: tuple[str, ...] | list[str]) -> str | None:
    """Return the exclude pattern matching the path or an ancestor, if any."""
    candidates = [*_ancestors(path), path]
    for pattern in exclude_patterns:
        for candidate in candidates:
            if _glob_matches(pattern, candidate):
                return pattern
    return None


def _folder_matches(rule: str, path: str, is_dir: bool) -> bool:
    candidates = _ancestors(path)
    if is_dir:
        candidates.append(path)
    if not has_glob(rule):
        folder = normalize_path(rule.strip())
        if not folder:
            return False
        return folder in candidates
    return any(_glob_matches(rule, candidate) for candidate in candidates)


def match_path(path: str, rules: SelectionRules, is_dir: bool = False) -> MatchResult:
    """Decide whether a path relative to the copy root is selected.

    Exclusion wins over inclusion. Files are tested against file patterns,
    then against folder rules (a file inside a selected folder is selected).
    Directories are only tested against folder rules.

    Args:
        path: Path relative to the copy root, '/' or '\\' separated.
        rules: Rules to evaluate.
        is_dir: Whether the path names a directory.

    Returns:
        The match result. Paths outside the root are reported with
        reason "outside_root" rather than raised.
    """
    normalized = normalize_path(path)
    if not normalized:
        return MatchResult(selected=False, reason="outside_root")

    excluded_by = find_exclusion(normalized, rules.exclude_patterns)
    if excluded_by is not None:
        return MatchResult(selected=False, rule=excluded_by, reason="excluded")

    if not is_dir:
        for pattern in rules.file_patterns:
            if _glob_matches(pattern, normalized):
                return MatchResult(selected=True, rule=pattern, reason="file_pattern")

    for rule in rules.include_folders:
        if _folder_matches(rule, normalized, is_dir):
            return MatchResult(selected=True, rule=rule, reason="folder")

    return MatchResult(selected=False, reason="no_match")
