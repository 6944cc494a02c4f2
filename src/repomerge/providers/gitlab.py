"""GitLabTargetProvider - branches, commits and merge requests on GitLab."""

from __future__ import annotations

import logging
import shutil
import subprocess
import threading
from collections.abc import Iterable
from pathlib import Path
from urllib.parse import quote, urlsplit

import httpx

from repomerge.providers.exceptions import (
    AccessError,
    BranchError,
    MergeRequestError,
    SyncError,
)
from repomerge.providers.git import (
    DEFAULT_GIT_TIMEOUT,
    authenticated_url,
    describe_git_error,
    repository_path,
    run_git,
)
from repomerge.providers.models import MergeRequest, SyncResult
from repomerge.selection.models import CopyPlanEntry, EntryKind

logger = logging.getLogger(__name__)


def api_base_url(repo_url: str) -> str:
    """REST API root of the GitLab instance hosting `repo_url`."""
    parts = urlsplit(repo_url)
    return f"{parts.scheme}://{parts.netloc.rsplit('@', 1)[-1]}/api/v4"


def project_id(repo_url: str) -> str:
    """URL-encoded project path, usable wherever GitLab expects a project id."""
    return quote(repository_path(repo_url), safe="")


class GitLabTargetProvider:
    """Target repository operations against GitLab.

    REST calls use the `PRIVATE-TOKEN` header; git pushes authenticate as
    `oauth2` with the same token.
    """

    def __init__(
        self,
        verify_ssl: bool = True,
        git_user_name: str = "Repo Merge Pipeline",
        git_user_email: str = "pipeline@repomerge.local",
        git_timeout: float = DEFAULT_GIT_TIMEOUT,
    ) -> None:
        """Initialize the provider.

        Args:
            verify_ssl: Verify TLS certificates of the GitLab host
            git_user_name: Committer name
            git_user_email: Committer email
            git_timeout: Seconds allowed per git command
        """
        self.verify_ssl = verify_ssl
        self.git_user_name = git_user_name
        self.git_user_email = git_user_email
        self.git_timeout = git_timeout
        self._client: httpx.Client | None = None

    @property
    def client(self) -> httpx.Client:
        """Get or create HTTP client for the GitLab API."""
        if self._client is None:
            self._client = httpx.Client(verify=self.verify_ssl, timeout=30.0)
        return self._client

    def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            self._client.close()
            self._client = None

    def _url(self, repo_url: str, suffix: str = "") -> str:
        return f"{api_base_url(repo_url)}/projects/{project_id(repo_url)}{suffix}"

    @staticmethod
    def _headers(credential: str) -> dict[str, str]:
        return {"PRIVATE-TOKEN": credential}

    def validate_access(self, repo_url: str, credential: str) -> None:
        """Check that the token can see the target project.

        Raises:
            AccessError: If the project is unreachable or the token is rejected
        """
        project = repository_path(repo_url)
        logger.info("Validating GitLab access to %s", project)
        try:
            response = self.client.get(self._url(repo_url), headers=self._headers(credential))
        except httpx.HTTPError as e:
            raise AccessError(f"Cannot reach GitLab for '{project}': {e}") from e

        if response.status_code in (401, 403):
            raise AccessError(f"GitLab rejected the target credential for '{project}'")
        if response.status_code == 404:
            raise AccessError(f"Target project '{project}' not found or not accessible")
        if response.status_code != 200:
            raise AccessError(
                f"Failed to validate target project '{project}': "
                f"{response.status_code} - {response.text}"
            )
        logger.info("GitLab access to %s confirmed", project)

    def create_branch(
        self,
        repo_url: str,
        credential: str,
        branch: str,
        base_branch: str,
    ) -> None:
        """Create a branch from `base_branch`. An existing branch is reused.

        Raises:
            BranchError: If GitLab refuses to create the branch
        """
        logger.info("Creating branch %s from %s", branch, base_branch)
        try:
            response = self.client.post(
                self._url(repo_url, "/repository/branches"),
                headers=self._headers(credential),
                params={"branch": branch, "ref": base_branch},
            )
        except httpx.HTTPError as e:
            raise BranchError(f"Failed to create branch '{branch}': {e}") from e

        if response.status_code == 201:
            logger.info("Created branch %s", branch)
            return
        if response.status_code == 400 and "already exists" in response.text:
            logger.info("Branch %s already exists, reusing it", branch)
            return
        logger.error("Failed to create branch %s: %s", branch, response.text)
        raise BranchError(
            f"Failed to create branch '{branch}' from '{base_branch}': "
            f"{response.status_code} - {response.text}"
        )

    def sync_content(
        self,
        plan: Iterable[CopyPlanEntry],
        staging_root: str | Path,
        repo_url: str,
        credential: str,
        branch: str,
        commit_message: str,
        workdir: str | Path,
        destination_path: str = "",
        cancel_event: threading.Event | None = None,
    ) -> SyncResult:
        """Check out `branch`, copy the staged entries in, commit and push.

        A branch already containing the content yields a result without a
        commit.

        Raises:
            SyncError: If git fails or the staged content cannot be copied
            CancellationError: If cancelled while git is running
        """
        checkout = Path(workdir)
        if checkout.exists():
            shutil.rmtree(checkout)
        checkout.parent.mkdir(parents=True, exist_ok=True)

        def git(*args: str) -> str:
            return run_git(*args, cwd=checkout, cancel_event=cancel_event, timeout=self.git_timeout)

        try:
            run_git(
                "clone",
                "--depth",
                "1",
                "--branch",
                branch,
                authenticated_url(repo_url, "oauth2", credential),
                str(checkout),
                cancel_event=cancel_event,
                timeout=self.git_timeout,
            )
            files, directories = self._copy_staged(plan, Path(staging_root), checkout / destination_path)

            git("add", "--all")
            if not git("status", "--porcelain"):
                logger.info("Branch %s already up to date, nothing to commit", branch)
                return SyncResult(files_processed=files, directories_copied=directories)

            git(
                "-c",
                f"user.name={self.git_user_name}",
                "-c",
                f"user.email={self.git_user_email}",
                "commit",
                "-m",
                commit_message,
            )
            git("push", "origin", branch)
            sha = git("rev-parse", "HEAD")
        except subprocess.SubprocessError as e:
            message = describe_git_error(e)
            logger.error("Failed to sync branch %s: %s", branch, message)
            raise SyncError(f"Failed to sync content to '{branch}': {message}") from e
        except OSError as e:
            raise SyncError(f"Failed to copy staged content: {e}") from e

        logger.info("Pushed %s to %s (%d files)", sha[:12], branch, files)
        return SyncResult(files_processed=files, directories_copied=directories, commit_sha=sha)

    @staticmethod
    def _copy_staged(
        plan: Iterable[CopyPlanEntry],
        staging: Path,
        target: Path,
    ) -> tuple[int, int]:
        files = 0
        directories = 0
        target.mkdir(parents=True, exist_ok=True)
        for entry in plan:
            destination = target / entry.destination_path
            if entry.kind == EntryKind.DIRECTORY:
                destination.mkdir(parents=True, exist_ok=True)
                directories += 1
            else:
                destination.parent.mkdir(parents=True, exist_ok=True)
                shutil.copy2(staging / entry.destination_path, destination)
                files += 1
        return files, directories

    def create_merge_request(
        self,
        repo_url: str,
        credential: str,
        source_branch: str,
        target_branch: str,
        title: str,
        description: str,
    ) -> MergeRequest:
        """Open a merge request.

        Returns:
            MergeRequest with id, url and iid

        Raises:
            MergeRequestError: If creation fails
        """
        logger.info("Creating merge request: %s (%s -> %s)", title, source_branch, target_branch)
        try:
            response = self.client.post(
                self._url(repo_url, "/merge_requests"),
                headers=self._headers(credential),
                json={
                    "source_branch": source_branch,
                    "target_branch": target_branch,
                    "title": title,
                    "description": description,
                },
            )
        except httpx.HTTPError as e:
            raise MergeRequestError(f"Failed to create merge request: {e}") from e

        if response.status_code != 201:
            logger.error("Failed to create merge request: %s", response.text)
            raise MergeRequestError(
                f"Failed to create merge request: {response.status_code} - {response.text}"
            )

        data = response.json()
        merge_request = MergeRequest(id=str(data["id"]), url=data["web_url"], iid=data["iid"])
        logger.info("Created merge request !%d: %s", merge_request.iid, merge_request.url)
        return merge_request
