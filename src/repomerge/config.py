"""Runtime configuration read from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_DB_PATH = "repomerge.db"
DEFAULT_WORK_ROOT = "workspaces"
DEFAULT_GITHUB_API_URL = "https://api.github.com"
DEFAULT_RETENTION_DAYS = 0
DEFAULT_GIT_USER_NAME = "Repo Merge Pipeline"
DEFAULT_GIT_USER_EMAIL = "pipeline@repomerge.local"

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in _TRUE_VALUES


def _env_path(name: str) -> Path | None:
    value = os.environ.get(name, "").strip()
    return Path(value) if value else None


@dataclass
class Settings:
    """Service settings.

    Attributes:
        db_path: SQLite database file (":memory:" for an in-memory store).
        work_root: Parent directory of the per-run working directories.
        github_api_url: GitHub REST API base URL.
        gitlab_verify_ssl: Whether TLS certificates of the GitLab host are verified.
        preview_root: Directory copy plan previews are confined to (work_root
            when unset).
        retention_days: Terminal runs older than this are deleted on startup
            (0 keeps every run).
        git_user_name: Committer name used by the sync step.
        git_user_email: Committer email used by the sync step.
    """

    db_path: str = DEFAULT_DB_PATH
    work_root: Path = Path(DEFAULT_WORK_ROOT)
    github_api_url: str = DEFAULT_GITHUB_API_URL
    gitlab_verify_ssl: bool = True
    preview_root: Path | None = None
    retention_days: int = DEFAULT_RETENTION_DAYS
    git_user_name: str = DEFAULT_GIT_USER_NAME
    git_user_email: str = DEFAULT_GIT_USER_EMAIL

    @classmethod
    def from_env(cls) -> Settings:
        """Build settings from REPOMERGE_* environment variables."""
        return cls(
            db_path=os.environ.get("REPOMERGE_DB_PATH", DEFAULT_DB_PATH),
            work_root=Path(os.environ.get("REPOMERGE_WORK_ROOT", DEFAULT_WORK_ROOT)),
            github_api_url=os.environ.get("REPOMERGE_GITHUB_API_URL", DEFAULT_GITHUB_API_URL),
            gitlab_verify_ssl=_env_bool("REPOMERGE_GITLAB_VERIFY_SSL", True),
            preview_root=_env_path("REPOMERGE_PREVIEW_ROOT"),
            retention_days=int(
                os.environ.get("REPOMERGE_RETENTION_DAYS", str(DEFAULT_RETENTION_DAYS))
            ),
            git_user_name=os.environ.get("REPOMERGE_GIT_USER_NAME", DEFAULT_GIT_USER_NAME),
            git_user_email=os.environ.get("REPOMERGE_GIT_USER_EMAIL", DEFAULT_GIT_USER_EMAIL),
        )
