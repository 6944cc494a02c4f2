"""Poller - follows runs until they finish."""

from repomerge.poller.client import RunStatusClient, RunStatusError, run_from_json
from repomerge.poller.poller import (
    DEFAULT_INTERVAL,
    MIN_INTERVAL,
    PollHandle,
    StatusPoller,
    poll_run_status,
)

__all__ = [
    "DEFAULT_INTERVAL",
    "MIN_INTERVAL",
    "PollHandle",
    "RunStatusClient",
    "RunStatusError",
    "StatusPoller",
    "poll_run_status",
    "run_from_json",
]
