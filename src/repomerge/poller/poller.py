"""Status Poller - follows a run until it reaches a terminal state."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from repomerge.pipeline.models import PipelineRun

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = 5.0
MIN_INTERVAL = 5.0

FetchRun = Callable[[], "PipelineRun"]
RunCallback = Callable[["PipelineRun"], None]
ErrorCallback = Callable[[Exception], None]


class PollHandle:
    """Cancellation handle of a polling loop.

    Cancelling stops the polling only; the run itself keeps going.
    """

    def __init__(self, stop_event: threading.Event) -> None:
        self._stop = stop_event
        self._finished = threading.Event()

    def cancel(self) -> None:
        """Stop polling at the next check; the run is not affected."""
        self._stop.set()

    def join(self, timeout: float | None = None) -> bool:
        """Wait for the loop to end. Returns True if it ended."""
        return self._finished.wait(timeout)

    @property
    def cancelled(self) -> bool:
        return self._stop.is_set()

    @property
    def done(self) -> bool:
        return self._finished.is_set()


class StatusPoller:
    """Fetches run snapshots on a fixed interval on a background thread.

    Each snapshot goes to `on_update`. When a terminal snapshot is seen, the
    run is fetched once more, that final snapshot is passed to `on_update`,
    then to `on_complete`, and polling stops. A failed fetch is reported to
    `on_error` once and polling stops.
    """

    def __init__(
        self,
        fetch: FetchRun,
        interval: float = DEFAULT_INTERVAL,
        min_interval: float = MIN_INTERVAL,
    ) -> None:
        """Initialize the poller.

        Args:
            fetch: Returns the current run snapshot.
            interval: Seconds between fetches.
            min_interval: Lower bound applied to `interval`.
        """
        if interval < min_interval:
            logger.debug("Polling interval %.2fs raised to minimum %.2fs", interval, min_interval)
        self.fetch = fetch
        self.interval = max(interval, min_interval)

    def start(
        self,
        on_update: RunCallback,
        on_complete: RunCallback | None = None,
        on_error: ErrorCallback | None = None,
    ) -> PollHandle:
        """Start polling on a daemon thread and return its handle."""
        handle = PollHandle(threading.Event())
        thread = threading.Thread(
            target=self._loop,
            args=(handle, on_update, on_complete, on_error),
            name="status-poller",
            daemon=True,
        )
        thread.start()
        return handle

    def _loop(
        self,
        handle: PollHandle,
        on_update: RunCallback,
        on_complete: RunCallback | None,
        on_error: ErrorCallback | None,
    ) -> None:
        try:
            while not handle.cancelled:
                run = self._fetch(handle, on_error)
                if run is None:
                    return
                on_update(run)

                if run.is_terminal:
                    final = self._fetch(handle, on_error)
                    if final is None:
                        return
                    on_update(final)
                    if on_complete is not None:
                        on_complete(final)
                    logger.debug("Run %s reached %s, polling stopped", final.id, final.status.value)
                    return

                if handle._stop.wait(self.interval):
                    return
        finally:
            handle._finished.set()

    def _fetch(self, handle: PollHandle, on_error: ErrorCallback | None) -> PipelineRun | None:
        """Fetch a snapshot, or None when polling must stop."""
        try:
            run = self.fetch()
        except Exception as e:
            if handle.cancelled:
                return None
            logger.warning("Polling stopped after fetch error: %s", e)
            if on_error is not None:
                on_error(e)
            return None
        if handle.cancelled:
            return None
        return run


def poll_run_status(
    run_id: str,
    fetch: Callable[[str], PipelineRun],
    on_update: RunCallback,
    on_complete: RunCallback | None = None,
    on_error: ErrorCallback | None = None,
    interval: float = DEFAULT_INTERVAL,
    min_interval: float = MIN_INTERVAL,
) -> PollHandle:
    """Poll one run by ID until it is terminal.

    Args:
        run_id: The run to follow.
        fetch: Returns the snapshot of a run ID (e.g. RunStatusClient.get_run).
        on_update: Called with every snapshot.
        on_complete: Called once with the final snapshot.
        on_error: Called once if a fetch fails.
        interval: Seconds between fetches.
        min_interval: Lower bound applied to `interval`.

    Returns:
        Handle to cancel or join the polling loop.
    """
    poller = StatusPoller(lambda: fetch(run_id), interval=interval, min_interval=min_interval)
    return poller.start(on_update, on_complete=on_complete, on_error=on_error)
