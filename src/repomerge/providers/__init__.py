"""Providers - GitHub source and GitLab target repository access."""

from repomerge.providers.base import SourceProvider, TargetProvider
from repomerge.providers.exceptions import (
    AccessError,
    BranchError,
    CloneError,
    MergeRequestError,
    ProviderError,
    SyncError,
)
from repomerge.providers.github import GitHubSourceProvider
from repomerge.providers.gitlab import GitLabTargetProvider
from repomerge.providers.models import MergeRequest, SyncResult

__all__ = [
    "AccessError",
    "BranchError",
    "CloneError",
    "GitHubSourceProvider",
    "GitLabTargetProvider",
    "MergeRequest",
    "MergeRequestError",
    "ProviderError",
    "SourceProvider",
    "SyncError",
    "SyncResult",
    "TargetProvider",
]
