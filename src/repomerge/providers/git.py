"""Git subprocess helpers shared by the providers."""

from __future__ import annotations

import logging
import subprocess
import threading
import time
from pathlib import Path
from urllib.parse import quote, urlsplit, urlunsplit

from repomerge.logging import sanitize_for_log, truncate_output
from repomerge.pipeline.exceptions import CancellationError

logger = logging.getLogger(__name__)

DEFAULT_GIT_TIMEOUT = 600.0
_POLL_SECONDS = 0.5


def authenticated_url(repo_url: str, username: str, token: str) -> str:
    """Embed credentials into an http(s) clone URL."""
    parts = urlsplit(repo_url)
    host = parts.hostname or ""
    if parts.port:
        host = f"{host}:{parts.port}"
    netloc = f"{quote(username, safe='')}:{quote(token, safe='')}@{host}"
    return urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))


def repository_path(repo_url: str) -> str:
    """'group/sub/project' part of a repository URL, without '.git'."""
    path = urlsplit(repo_url).path.strip("/")
    if path.endswith(".git"):
        path = path[: -len(".git")]
    return path


def run_git(
    *args: str,
    cwd: str | Path | None = None,
    cancel_event: threading.Event | None = None,
    timeout: float = DEFAULT_GIT_TIMEOUT,
) -> str:
    """Run a git command, honouring a cancellation token.

    Args:
        *args: Git command arguments
        cwd: Working directory
        cancel_event: Terminates the process when set
        timeout: Seconds before the process is killed

    Returns:
        Command stdout

    Raises:
        CancellationError: If the token was set while git was running
        subprocess.TimeoutExpired: If the command exceeded `timeout`
        subprocess.CalledProcessError: If the command fails
    """
    command = ["git", *args]
    logger.debug("Running %s", sanitize_for_log(" ".join(command)))
    process = subprocess.Popen(
        command,
        cwd=cwd,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
    )
    deadline = time.monotonic() + timeout
    while True:
        try:
            stdout, stderr = process.communicate(timeout=_POLL_SECONDS)
            break
        except subprocess.TimeoutExpired:
            if cancel_event is not None and cancel_event.is_set():
                process.terminate()
                process.communicate()
                raise CancellationError("git command cancelled") from None
            if time.monotonic() >= deadline:
                process.kill()
                process.communicate()
                raise subprocess.TimeoutExpired(command, timeout) from None

    if process.returncode != 0:
        raise subprocess.CalledProcessError(process.returncode, command, stdout, stderr)
    return stdout.strip()


def describe_git_error(error: subprocess.SubprocessError) -> str:
    """Credential-free description of a failed git command."""
    if isinstance(error, subprocess.TimeoutExpired):
        return f"git timed out after {error.timeout:.0f}s"
    if isinstance(error, subprocess.CalledProcessError):
        detail = (error.stderr or error.stdout or "").strip()
        if not detail:
            return f"git exited with status {error.returncode}"
        return sanitize_for_log(truncate_output(detail))
    return sanitize_for_log(str(error))
