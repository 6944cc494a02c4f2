"""Integration tests for SSE events endpoint."""

import tempfile
import threading
import time
from pathlib import Path

import httpx
import pytest
import uvicorn

from repomerge.api.app import create_app
from repomerge.api.dependencies import get_event_manager, init_event_manager
from repomerge.api.events import EventManager
from repomerge.config import Settings


@pytest.fixture
def db_path():
    """Create a temporary database file path."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        yield f.name
    Path(f.name).unlink(missing_ok=True)
    Path(f"{f.name}-wal").unlink(missing_ok=True)
    Path(f"{f.name}-shm").unlink(missing_ok=True)


@pytest.fixture
def event_manager():
    """Create an EventManager with a short heartbeat."""
    em = init_event_manager()
    em._heartbeat_interval = 2
    return em


@pytest.fixture
def app(db_path: str, tmp_path: Path, event_manager: EventManager):
    """Create the FastAPI app."""
    app = create_app(settings_override=Settings(db_path=db_path, work_root=tmp_path / "work"))

    def override_get_event_manager():
        yield event_manager

    app.dependency_overrides[get_event_manager] = override_get_event_manager
    return app


@pytest.fixture
def server(app):
    """Start the app in a background thread."""
    config = uvicorn.Config(app, host="127.0.0.1", port=8765, log_level="error")
    server = uvicorn.Server(config)

    thread = threading.Thread(target=server.run)
    thread.daemon = True
    thread.start()

    # Wait for server to start
    time.sleep(0.5)
    yield "http://127.0.0.1:8765"

    server.should_exit = True
    thread.join(timeout=2)


@pytest.mark.integration
class TestSSEConnection:
    """Tests for SSE connection."""

    def test_sse_connection_opens(self, server: str) -> None:
        with (
            httpx.Client(timeout=5.0) as client,
            client.stream("GET", f"{server}/api/v1/events/stream") as response,
        ):
            assert response.status_code == 200
            assert response.headers["content-type"] == "text/event-stream; charset=utf-8"
            assert response.headers["cache-control"] == "no-cache"


@pytest.mark.integration
class TestSSEHeartbeat:
    """Tests for SSE heartbeat."""

    def test_sse_receives_heartbeat(self, server: str, event_manager: EventManager) -> None:
        event_manager._heartbeat_interval = 1

        received_heartbeat = False
        with (
            httpx.Client(timeout=5.0) as client,
            client.stream("GET", f"{server}/api/v1/events/stream") as response,
        ):
            for line in response.iter_lines():
                if "event: heartbeat" in line:
                    received_heartbeat = True
                    break

        assert received_heartbeat


@pytest.mark.integration
class TestSSEEvents:
    """Tests for SSE events."""

    def test_sse_receives_emitted_event(self, server: str, event_manager: EventManager) -> None:
        """An event emitted from another thread reaches the client."""
        received: list[str] = []

        def emit_after_delay():
            time.sleep(0.3)
            event_manager.emit_step_updated(
                run_id="run-123",
                user_id="user-1",
                step="clone_source",
                status="running",
                completion_percentage=14,
            )

        emitter = threading.Thread(target=emit_after_delay)
        emitter.start()

        with (
            httpx.Client(timeout=5.0) as client,
            client.stream("GET", f"{server}/api/v1/events/stream") as response,
        ):
            lines = response.iter_lines()
            for line in lines:
                if "event: step_updated" in line:
                    received.append(line)
                    received.append(next(lines))
                    break

        emitter.join()
        assert received[0] == "event: step_updated"
        assert '"run_id": "run-123"' in received[1]
        assert '"completion_percentage": 14' in received[1]

    def test_sse_filter_by_user(self, server: str, event_manager: EventManager) -> None:
        """Only the subscribed user's events are received."""
        event_manager._heartbeat_interval = 1
        received: list[str] = []
        event_count = 0

        def emit_events():
            time.sleep(0.3)
            event_manager.emit_run_created(run_id="run-1", user_id="user-1", status="idle")
            event_manager.emit_run_created(run_id="run-2", user_id="user-2", status="idle")
            time.sleep(0.2)

        emitter = threading.Thread(target=emit_events)
        emitter.start()

        url = f"{server}/api/v1/events/stream?user_id=user-1"
        with (
            httpx.Client(timeout=5.0) as client,
            client.stream("GET", url) as response,
        ):
            start = time.time()
            for line in response.iter_lines():
                received.append(line)
                if "event: run_created" in line:
                    event_count += 1
                if time.time() - start > 1.5:
                    break

        emitter.join()

        assert event_count == 1
        all_text = " ".join(received)
        assert "run-1" in all_text
        assert "run-2" not in all_text


@pytest.mark.integration
class TestSSEDisconnect:
    """Tests for SSE client disconnect."""

    def test_sse_client_disconnect(self, server: str, event_manager: EventManager) -> None:
        """Cleanup on disconnect."""
        initial_count = event_manager.subscriber_count

        with (
            httpx.Client(timeout=5.0) as client,
            client.stream("GET", f"{server}/api/v1/events/stream"),
        ):
            time.sleep(0.2)
            assert event_manager.subscriber_count == initial_count + 1

        time.sleep(0.3)
        assert event_manager.subscriber_count == initial_count
