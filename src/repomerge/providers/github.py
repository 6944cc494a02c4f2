"""GitHubSourceProvider - reads source repositories from GitHub."""

from __future__ import annotations

import logging
import shutil
import subprocess
import threading
from pathlib import Path

import httpx

from repomerge.providers.exceptions import AccessError, CloneError
from repomerge.providers.git import (
    DEFAULT_GIT_TIMEOUT,
    authenticated_url,
    describe_git_error,
    repository_path,
    run_git,
)

logger = logging.getLogger(__name__)


class GitHubSourceProvider:
    """Validates access to and clones GitHub repositories.

    Credentials are passed per call; the HTTP client carries no token.
    """

    def __init__(
        self,
        base_url: str = "https://api.github.com",
        git_timeout: float = DEFAULT_GIT_TIMEOUT,
    ) -> None:
        """Initialize the provider.

        Args:
            base_url: GitHub API base URL (for testing/enterprise)
            git_timeout: Seconds allowed for a clone
        """
        self.base_url = base_url.rstrip("/")
        self.git_timeout = git_timeout
        self._client: httpx.Client | None = None

    @property
    def client(self) -> httpx.Client:
        """Get or create HTTP client for GitHub API."""
        if self._client is None:
            self._client = httpx.Client(
                base_url=self.base_url,
                headers={
                    "Accept": "application/vnd.github+json",
                    "X-GitHub-Api-Version": "2022-11-28",
                },
                timeout=30.0,
            )
        return self._client

    def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            self._client.close()
            self._client = None

    def validate_access(self, repo_url: str, credential: str) -> None:
        """Check that the token can read the repository.

        Raises:
            AccessError: If the repository is unreachable or the token is rejected
        """
        repo = repository_path(repo_url)
        logger.info("Validating GitHub access to %s", repo)
        try:
            response = self.client.get(
                f"/repos/{repo}",
                headers={"Authorization": f"Bearer {credential}"},
            )
        except httpx.HTTPError as e:
            raise AccessError(f"Cannot reach GitHub for '{repo}': {e}") from e

        if response.status_code in (401, 403):
            raise AccessError(f"GitHub rejected the source credential for '{repo}'")
        if response.status_code == 404:
            raise AccessError(f"Source repository '{repo}' not found or not accessible")
        if response.status_code != 200:
            raise AccessError(
                f"Failed to validate source repository '{repo}': "
                f"{response.status_code} - {response.text}"
            )
        logger.info("GitHub access to %s confirmed", repo)

    def clone_repository(
        self,
        repo_url: str,
        credential: str,
        destination: str | Path,
        cancel_event: threading.Event | None = None,
    ) -> None:
        """Shallow-clone the repository, replacing the destination directory.

        Raises:
            CloneError: If git fails or times out
            CancellationError: If cancelled while cloning
        """
        target = Path(destination)
        if target.exists():
            shutil.rmtree(target)
        target.parent.mkdir(parents=True, exist_ok=True)

        logger.info("Cloning %s into %s", repository_path(repo_url), target)
        try:
            run_git(
                "clone",
                "--depth",
                "1",
                authenticated_url(repo_url, "x-access-token", credential),
                str(target),
                cancel_event=cancel_event,
                timeout=self.git_timeout,
            )
        except subprocess.SubprocessError as e:
            message = describe_git_error(e)
            logger.error("Failed to clone %s: %s", repository_path(repo_url), message)
            raise CloneError(f"Failed to clone source repository: {message}") from e
        logger.info("Cloned %s", repository_path(repo_url))
