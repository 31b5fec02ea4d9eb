"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

# Add the src directory to Python path so tests run without an install
_repo_root = Path(__file__).parent.parent
_src = _repo_root / "src"

if str(_src) not in sys.path:
    sys.path.insert(0, str(_src))

from showdown_client.client import ShowdownClient  # noqa: E402
from showdown_client.config import ClientConfig  # noqa: E402
from showdown_client.events import Event, EventBus  # noqa: E402
from showdown_client.settings import MemoryBlobStore  # noqa: E402


class FakeTransport:
    """In-memory transport recording every line sent."""

    def __init__(self) -> None:
        self.sent: list[str] = []
        self.queued: list[str] = []
        self.started = False
        self.stopped = False
        self._open = False
        self._on_open: Callable[[], None] = lambda: None
        self._on_message: Callable[[str], None] = lambda frame: None
        self._on_error: Callable[[Exception], None] = lambda error: None
        self._on_close: Callable[[str], None] = lambda reason: None

    @property
    def is_open(self) -> bool:
        return self._open

    def set_handlers(self, on_open, on_message, on_error, on_close) -> None:  # type: ignore[no-untyped-def]
        self._on_open = on_open
        self._on_message = on_message
        self._on_error = on_error
        self._on_close = on_close

    async def start(self) -> None:
        self.started = True

    async def stop(self) -> None:
        self.stopped = True

    def send(self, text: str) -> None:
        if self._open:
            self.sent.append(text)
        else:
            self.queued.append(text)

    # Test helpers

    @property
    def lines(self) -> list[str]:
        """Everything handed to send, in order, written or not."""
        return [*self.sent, *self.queued]

    def open(self) -> None:
        self._open = True
        self.sent.extend(self.queued)
        self.queued.clear()
        self._on_open()

    def receive(self, frame: str) -> None:
        self._on_message(frame)

    def fail(self, error: Exception) -> None:
        self._on_error(error)

    def close(self, reason: str = "") -> None:
        self._open = False
        self._on_close(reason)


class EventRecorder:
    """Subscribes to every event class and keeps what was published."""

    def __init__(self, bus: EventBus) -> None:
        self.events: list[Event] = []
        for event_type in Event.__subclasses__():
            bus.subscribe(event_type, self.events.append)

    def of_type(self, event_type: type[Any]) -> list[Any]:
        return [event for event in self.events if isinstance(event, event_type)]

    def clear(self) -> None:
        self.events.clear()


@pytest.fixture
def config() -> ClientConfig:
    """Config that never touches the network or the home directory."""
    return ClientConfig(
        server_url="ws://127.0.0.1:1/showdown/websocket",
        loginserver_url="http://127.0.0.1:1/api/",
        auto_login=False,
        message_retry_delay=0.01,
        challenge_poll_interval=0.01,
    )


@pytest.fixture
def blob_store() -> MemoryBlobStore:
    return MemoryBlobStore()


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def recorder(bus: EventBus) -> EventRecorder:
    return EventRecorder(bus)


@pytest.fixture
def client(
    config: ClientConfig,
    blob_store: MemoryBlobStore,
    transport: FakeTransport,
    bus: EventBus,
) -> ShowdownClient:
    """Client wired to the fake transport and an in-memory blob store."""
    return ShowdownClient(config, blob_store=blob_store, transport=transport, bus=bus)


@pytest.fixture
def lobby_frame() -> str:
    return ">lobby\n|init|chat\n|title|Lobby\n|users|,+Bob,@Alice\n|:|1690000000"
