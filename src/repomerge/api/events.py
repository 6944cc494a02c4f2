"""Event manager for Server-Sent Events (SSE)."""

from __future__ import annotations

import asyncio
import json
import threading
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any
from uuid import uuid4


class EventType(StrEnum):
    """Types of events that can be emitted."""

    RUN_CREATED = "run_created"
    STEP_UPDATED = "step_updated"
    RUN_COMPLETED = "run_completed"
    LOG = "log"
    HEARTBEAT = "heartbeat"


def _timestamp() -> str:
    return datetime.now(UTC).isoformat()


@dataclass
class Event:
    """An event to be sent via SSE."""

    event_type: EventType
    data: dict[str, Any]
    user_id: str | None = None

    def to_sse(self) -> str:
        """Convert to SSE format."""
        return f"event: {self.event_type.value}\ndata: {json.dumps(self.data)}\n\n"


@dataclass
class Subscriber:
    """A subscriber to the event stream."""

    id: str
    queue: asyncio.Queue[Event]
    user_id: str | None = None  # None means every user's runs
    loop: asyncio.AbstractEventLoop | None = None

    @classmethod
    def create(cls, user_id: str | None = None) -> Subscriber:
        """Create a new subscriber bound to the running event loop, if any."""
        try:
            loop: asyncio.AbstractEventLoop | None = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
        return cls(id=str(uuid4()), queue=asyncio.Queue(), user_id=user_id, loop=loop)

    def wants(self, event: Event) -> bool:
        return self.user_id is None or event.user_id is None or self.user_id == event.user_id

    def deliver(self, event: Event) -> None:
        """Queue an event from any thread."""
        if self.loop is not None and not self.loop.is_closed():
            try:
                running = asyncio.get_running_loop()
            except RuntimeError:
                running = None
            if running is not self.loop:
                self.loop.call_soon_threadsafe(self.queue.put_nowait, event)
                return
        self.queue.put_nowait(event)


@dataclass
class EventManager:
    """Manager for SSE events.

    Run threads emit through `emit_sync`; events are handed to each
    subscriber's event loop thread-safely.
    """

    _subscribers: dict[str, Subscriber] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock)
    _heartbeat_interval: int = 30  # seconds

    def subscribe(self, user_id: str | None = None) -> Subscriber:
        """Subscribe a client to events.

        Args:
            user_id: Optional user filter. None means all users.
        """
        subscriber = Subscriber.create(user_id)
        with self._lock:
            self._subscribers[subscriber.id] = subscriber
        return subscriber

    def unsubscribe(self, subscriber_id: str) -> None:
        """Unsubscribe a client from events."""
        with self._lock:
            self._subscribers.pop(subscriber_id, None)

    def _targets(self, event: Event) -> list[Subscriber]:
        with self._lock:
            return [s for s in self._subscribers.values() if s.wants(event)]

    async def emit(self, event: Event) -> None:
        """Emit an event to all matching subscribers."""
        for subscriber in self._targets(event):
            subscriber.deliver(event)

    def emit_sync(self, event: Event) -> None:
        """Emit an event from a non-async context such as a run thread."""
        for subscriber in self._targets(event):
            subscriber.deliver(event)

    @property
    def subscriber_count(self) -> int:
        """Get the number of active subscribers."""
        with self._lock:
            return len(self._subscribers)

    # Convenience methods for emitting specific event types

    def emit_run_created(self, run_id: str, user_id: str, status: str) -> None:
        """Emit a run_created event."""
        self.emit_sync(
            Event(
                event_type=EventType.RUN_CREATED,
                user_id=user_id,
                data={"run_id": run_id, "user_id": user_id, "status": status},
            )
        )

    def emit_step_updated(
        self,
        run_id: str,
        user_id: str,
        step: str,
        status: str,
        completion_percentage: int,
        message: str | None = None,
    ) -> None:
        """Emit a step_updated event."""
        self.emit_sync(
            Event(
                event_type=EventType.STEP_UPDATED,
                user_id=user_id,
                data={
                    "run_id": run_id,
                    "step": step,
                    "status": status,
                    "completion_percentage": completion_percentage,
                    "message": message,
                },
            )
        )

    def emit_run_completed(
        self,
        run_id: str,
        user_id: str,
        status: str,
        error: str | None = None,
    ) -> None:
        """Emit a run_completed event."""
        self.emit_sync(
            Event(
                event_type=EventType.RUN_COMPLETED,
                user_id=user_id,
                data={"run_id": run_id, "status": status, "error": error},
            )
        )

    def emit_log(self, run_id: str, user_id: str, level: str, message: str) -> None:
        """Emit a log event."""
        self.emit_sync(
            Event(
                event_type=EventType.LOG,
                user_id=user_id,
                data={
                    "run_id": run_id,
                    "level": level,
                    "message": message,
                    "timestamp": _timestamp(),
                },
            )
        )

    def create_heartbeat_event(self) -> Event:
        """Create a heartbeat event."""
        return Event(
            event_type=EventType.HEARTBEAT,
            user_id=None,  # Heartbeat goes to all subscribers
            data={"timestamp": _timestamp()},
        )
