"""Data models for repository providers."""

from dataclasses import dataclass


@dataclass
class SyncResult:
    """Outcome of pushing staged content to the target branch."""

    files_processed: int
    directories_copied: int
    commit_sha: str | None = None

    @property
    def changed(self) -> bool:
        return self.commit_sha is not None


@dataclass
class MergeRequest:
    """Merge request data."""

    id: str
    url: str
    iid: int
