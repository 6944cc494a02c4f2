"""Custom exceptions for repository providers."""


class ProviderError(Exception):
    """Base exception for provider errors."""


class AccessError(ProviderError):
    """Credential rejected or repository not reachable."""


class CloneError(ProviderError):
    """Error cloning a repository."""


class BranchError(ProviderError):
    """Error creating a branch on the target repository."""


class SyncError(ProviderError):
    """Error committing or pushing content to the target repository."""


class MergeRequestError(ProviderError):
    """Error opening a merge request."""
