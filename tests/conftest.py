"""Shared pytest fixtures and configuration."""

import pytest

from repomerge.pipeline.models import PipelineConfiguration
from repomerge.selection.models import CopyMode


# Register custom markers
def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers for test categorization."""
    config.addinivalue_line("markers", "unit: fast tests with no external dependencies")
    config.addinivalue_line("markers", "integration: component interaction tests")
    config.addinivalue_line("markers", "real: tests that need git and network access (local only)")


# Shared fixtures


def make_configuration(**overrides: object) -> PipelineConfiguration:
    """Build a valid configuration, overriding selected fields."""
    values: dict[str, object] = {
        "source_repo_url": "https://github.com/acme/source-repo",
        "source_credential": "ghp_" + "a" * 36,
        "target_repo_url": "https://gitlab.example.com/platform/target-repo",
        "target_credential": "glpat-" + "b" * 20,
        "target_branch": "feature/import-docs",
        "base_branch": "main",
        "copy_mode": CopyMode.FILES,
        "file_patterns": ("*.md",),
        "merge_request_title": "Import documentation",
        "merge_request_description": "Imported from the source repository",
    }
    values.update(overrides)
    return PipelineConfiguration(**values)  # type: ignore[arg-type]


@pytest.fixture
def configuration() -> PipelineConfiguration:
    """A valid files-mode configuration selecting markdown files."""
    return make_configuration()


@pytest.fixture
def configuration_factory():
    """Factory for configurations with overridden fields."""
    return make_configuration
