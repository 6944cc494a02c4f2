"""Unit tests for the glob pattern matcher."""

import re

import pytest

from repomerge.selection.exceptions import PatternError
from repomerge.selection.models import SelectionRules
from repomerge.selection.patterns import (
    find_exclusion,
    match_path,
    normalize_path,
    validate_pattern,
    validate_relative_path,
)


def files(*patterns: str, exclude: tuple[str, ...] = ()) -> SelectionRules:
    return SelectionRules(file_patterns=patterns, exclude_patterns=exclude)


def folders(*paths: str, exclude: tuple[str, ...] = ()) -> SelectionRules:
    return SelectionRules(include_folders=paths, exclude_patterns=exclude)


@pytest.mark.unit
class TestNormalizePath:
    """Tests for normalize_path."""

    def test_collapses_dots_and_separators(self) -> None:
        assert normalize_path("a/./b/../c") == "a/c"
        assert normalize_path("a\\b\\c.txt") == "a/b/c.txt"
        assert normalize_path("a//b/") == "a/b"

    def test_root_is_empty_string(self) -> None:
        assert normalize_path("") == ""
        assert normalize_path("./") == ""

    def test_outside_root_is_none(self) -> None:
        """Absolute paths and paths climbing above the root are rejected."""
        assert normalize_path("../secret") is None
        assert normalize_path("a/../../b") is None
        assert normalize_path("/etc/passwd") is None
        assert normalize_path("C:/Windows") is None


@pytest.mark.unit
class TestFilePatterns:
    """Tests for file pattern matching."""

    def test_basename_pattern_matches_at_any_depth(self) -> None:
        """A pattern without '/' matches the base name anywhere."""
        rules = files("*.md")

        result = match_path("docs/guide/intro.md", rules)

        assert result.selected is True
        assert result.rule == "*.md"
        assert result.reason == "file_pattern"
        assert match_path("README.md", rules).selected is True

    def test_anchored_pattern_matches_from_root(self) -> None:
        """A pattern containing '/' is anchored at the copy root."""
        rules = files("docs/*.md")

        assert match_path("docs/guide.md", rules).selected is True
        assert match_path("other/docs/guide.md", rules).selected is False
        assert match_path("docs/nested/guide.md", rules).selected is False

    def test_leading_slash_only_anchors(self) -> None:
        assert match_path("README.md", files("/README.md")).selected is True
        assert match_path("docs/README.md", files("/README.md")).selected is False

    def test_double_star_spans_segments(self) -> None:
        """'**/' matches zero or more whole segments."""
        rules = files("**/*.py")

        assert match_path("app.py", rules).selected is True
        assert match_path("src/lib/util.py", rules).selected is True
        assert match_path("src/lib/util.pyc", rules).selected is False

    def test_double_star_inside_path(self) -> None:
        rules = files("src/**/test_*.py")

        assert match_path("src/test_a.py", rules).selected is True
        assert match_path("src/pkg/sub/test_b.py", rules).selected is True
        assert match_path("tests/test_c.py", rules).selected is False

    def test_single_star_stays_in_segment(self) -> None:
        assert match_path("src/lib/util.py", files("src/*.py")).selected is False

    def test_question_mark_matches_one_character(self) -> None:
        rules = files("file?.txt")

        assert match_path("file1.txt", rules).selected is True
        assert match_path("file10.txt", rules).selected is False

    def test_character_classes(self) -> None:
        assert match_path("a.py", files("[abc].py")).selected is True
        assert match_path("d.py", files("[abc].py")).selected is False
        assert match_path("d.py", files("[!abc].py")).selected is True
        assert match_path("a.py", files("[!abc].py")).selected is False

    def test_brace_alternation(self) -> None:
        rules = files("*.{md,txt}")

        assert match_path("notes.txt", rules).selected is True
        assert match_path("README.md", rules).selected is True
        assert match_path("setup.cfg", rules).selected is False

    def test_nested_braces(self) -> None:
        rules = files("config.{json,y{a,}ml}")

        assert match_path("config.yaml", rules).selected is True
        assert match_path("config.yml", rules).selected is True
        assert match_path("config.json", rules).selected is True

    def test_matching_is_case_sensitive(self) -> None:
        assert match_path("README.md", files("*.MD")).selected is False

    def test_backslash_separators_are_accepted(self) -> None:
        assert match_path("docs\\guide.md", files("docs/*.md")).selected is True

    def test_directories_ignore_file_patterns(self) -> None:
        """File patterns never select a directory."""
        result = match_path("docs.md", files("*.md"), is_dir=True)

        assert result.selected is False
        assert result.reason == "no_match"

    def test_no_match(self) -> None:
        result = match_path("src/app.py", files("*.md"))

        assert result.selected is False
        assert result.rule is None
        assert result.reason == "no_match"


@pytest.mark.unit
class TestFolderRules:
    """Tests for folder selection."""

    def test_plain_folder_selects_itself_and_contents(self) -> None:
        rules = folders("docs")

        assert match_path("docs", rules, is_dir=True).selected is True
        result = match_path("docs/api/index.md", rules)
        assert result.selected is True
        assert result.reason == "folder"
        assert result.rule == "docs"

    def test_plain_folder_requires_whole_segment(self) -> None:
        assert match_path("documents/a.md", folders("docs")).selected is False

    def test_nested_plain_folder(self) -> None:
        rules = folders("src/lib/")

        assert match_path("src/lib/util.py", rules).selected is True
        assert match_path("src/app.py", rules).selected is False
        assert match_path("src", rules, is_dir=True).selected is False

    def test_glob_folder(self) -> None:
        rules = folders("packages/*")

        assert match_path("packages/core", rules, is_dir=True).selected is True
        assert match_path("packages/core/setup.py", rules).selected is True
        assert match_path("packages", rules, is_dir=True).selected is False

    def test_folder_rule_does_not_select_a_file_of_that_name(self) -> None:
        assert match_path("docs", folders("docs")).selected is False

    def test_root_folder_rule_selects_nothing(self) -> None:
        assert match_path("a.txt", folders(".")).selected is False


@pytest.mark.unit
class TestExclusion:
    """Tests for exclude patterns."""

    def test_exclusion_wins_over_file_pattern(self) -> None:
        result = match_path("docs/draft.md", files("*.md", exclude=("draft.md",)))

        assert result.selected is False
        assert result.reason == "excluded"
        assert result.rule == "draft.md"

    def test_excluded_ancestor_excludes_descendants(self) -> None:
        rules = files("*.js", exclude=("node_modules",))

        result = match_path("web/node_modules/pkg/index.js", rules)

        assert result.selected is False
        assert result.reason == "excluded"
        assert match_path("web/app.js", rules).selected is True

    def test_exclusion_wins_over_folder(self) -> None:
        rules = folders("src", exclude=("src/generated",))

        assert match_path("src/generated/api.py", rules).reason == "excluded"
        assert match_path("src/app.py", rules).selected is True

    def test_find_exclusion_returns_pattern(self) -> None:
        assert find_exclusion("a/.git/config", (".git",)) == ".git"
        assert find_exclusion("a/b/c", ("*.tmp",)) is None


@pytest.mark.unit
class TestOutsideRoot:
    """Paths outside the copy root are never selected."""

    @pytest.mark.parametrize("path", ["../escape.md", "/etc/passwd.md", "", "a/../../b.md"])
    def test_outside_root(self, path: str) -> None:
        result = match_path(path, files("*.md"))

        assert result.selected is False
        assert result.reason == "outside_root"


@pytest.mark.unit
class TestValidatePattern:
    """Tests for validate_pattern."""

    @pytest.mark.parametrize(
        "pattern",
        ["*.md", "docs/**/*.md", "/README.md", "[]]x", "[!]]x", "*.{md,txt}", "src/"],
    )
    def test_valid_patterns(self, pattern: str) -> None:
        validate_pattern(pattern)

    @pytest.mark.parametrize(
        ("pattern", "fragment"),
        [
            ("", "empty"),
            ("   ", "empty"),
            ("*.{md,txt", "Unclosed '{'"),
            ("*.md}", "Unbalanced '}'"),
            ("[abc.py", "Unclosed '['"),
            ("abc].py", "Unbalanced ']'"),
            ("../*.md", "escapes the copy root"),
            ("docs/../../x", "escapes the copy root"),
            ("C:/temp/*.md", "absolute path"),
            ("//server/share", "absolute path"),
        ],
    )
    def test_invalid_patterns(self, pattern: str, fragment: str) -> None:
        with pytest.raises(PatternError, match=re.escape(fragment)):
            validate_pattern(pattern)


@pytest.mark.unit
class TestValidateRelativePath:
    """Tests for validate_relative_path."""

    def test_returns_normalized_path(self) -> None:
        assert validate_relative_path("vendor/lib/") == "vendor/lib"
        assert validate_relative_path("./a/b/../c") == "a/c"

    @pytest.mark.parametrize("path", ["../outside", "/absolute"])
    def test_rejects_escaping_paths(self, path: str) -> None:
        with pytest.raises(PatternError):
            validate_relative_path(path)
