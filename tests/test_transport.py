"""Tests for the WebSocket transport.

Runs the transport against a local WebSocket server and checks that:
- Lines sent before the connection opens are flushed in order
- Every received frame reaches the message handler in arrival order
- A server-side close and a failed connection are both reported
"""

from __future__ import annotations

import asyncio
import socket
from collections.abc import Callable
from typing import Any

import pytest

from showdown_client.transport import WebSocketTransport


# ==============================================================================
# Helpers
# ==============================================================================


def get_free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


async def wait_for(predicate: Callable[[], bool], timeout: float = 2.0) -> bool:
    """Poll until predicate() is true or the timeout expires."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() >= deadline:
            return False
        await asyncio.sleep(0.01)
    return True


class MockChatServer:
    """Local WebSocket server that greets clients and records what they send."""

    def __init__(self, port: int, greeting: list[str | bytes] | None = None) -> None:
        self.port = port
        self.greeting = greeting or []
        self.received: list[str] = []
        self.clients: list[Any] = []
        self._server: Any = None

    @property
    def url(self) -> str:
        return f"ws://127.0.0.1:{self.port}/showdown/websocket"

    async def start(self) -> None:
        import websockets

        async def handler(websocket: Any) -> None:
            self.clients.append(websocket)
            try:
                for frame in self.greeting:
                    await websocket.send(frame)
                async for message in websocket:
                    self.received.append(message)
            except websockets.exceptions.ConnectionClosed:
                pass
            finally:
                self.clients.remove(websocket)

        self._server = await websockets.serve(handler, "127.0.0.1", self.port)

    async def stop(self) -> None:
        if self._server:
            self._server.close()
            await self._server.wait_closed()


class HandlerLog:
    """Records every transport callback."""

    def __init__(self) -> None:
        self.opened = 0
        self.frames: list[str] = []
        self.errors: list[Exception] = []
        self.closed: list[str] = []

    def attach(self, transport: WebSocketTransport) -> None:
        transport.set_handlers(
            on_open=self.on_open,
            on_message=self.frames.append,
            on_error=self.errors.append,
            on_close=self.closed.append,
        )

    def on_open(self) -> None:
        self.opened += 1


@pytest.fixture
async def server() -> Any:
    server = MockChatServer(
        get_free_port(),
        greeting=["|challstr|4|abc", b">lobby\n|c|+Bob|hi", "|updateuser| Guest 1|0|1"],
    )
    await server.start()
    yield server
    await server.stop()


# ==============================================================================
# Happy Path Tests
# ==============================================================================


class TestWebSocketTransport:
    async def test_queued_lines_are_flushed_in_order(self, server: MockChatServer) -> None:
        transport = WebSocketTransport(server.url)
        log = HandlerLog()
        log.attach(transport)

        transport.send("|/cmd rooms")
        transport.send("|/join lobby")
        assert transport.pending == 2
        assert not transport.is_open

        await transport.start()
        try:
            assert await wait_for(lambda: len(server.received) == 2)
            assert server.received == ["|/cmd rooms", "|/join lobby"]
            assert transport.pending == 0
            assert log.opened == 1

            transport.send("lobby|hello")
            assert await wait_for(lambda: len(server.received) == 3)
            assert server.received[-1] == "lobby|hello"
        finally:
            await transport.stop()

    async def test_frames_arrive_in_order(self, server: MockChatServer) -> None:
        transport = WebSocketTransport(server.url)
        log = HandlerLog()
        log.attach(transport)

        await transport.start()
        try:
            assert await wait_for(lambda: len(log.frames) == 3)
            assert log.frames == [
                "|challstr|4|abc",
                ">lobby\n|c|+Bob|hi",
                "|updateuser| Guest 1|0|1",
            ]
        finally:
            await transport.stop()

    async def test_failing_handler_does_not_stop_delivery(self, server: MockChatServer) -> None:
        transport = WebSocketTransport(server.url)
        frames: list[str] = []

        def on_message(frame: str) -> None:
            frames.append(frame)
            raise RuntimeError("handler bug")

        transport.set_handlers(lambda: None, on_message, lambda e: None, lambda r: None)
        await transport.start()
        try:
            assert await wait_for(lambda: len(frames) == 3)
        finally:
            await transport.stop()

    async def test_server_close_is_reported(self, server: MockChatServer) -> None:
        transport = WebSocketTransport(server.url)
        log = HandlerLog()
        log.attach(transport)

        await transport.start()
        assert await wait_for(lambda: transport.is_open and bool(server.clients))
        await server.clients[0].close()

        assert await wait_for(lambda: len(log.closed) == 1)
        assert not transport.is_open
        assert log.errors == []
        await transport.stop()

    async def test_stop_reports_close_once(self, server: MockChatServer) -> None:
        transport = WebSocketTransport(server.url)
        log = HandlerLog()
        log.attach(transport)

        await transport.start()
        assert await wait_for(lambda: transport.is_open)
        await transport.stop()
        await transport.stop()

        assert len(log.closed) == 1
        assert not transport.is_open


# ==============================================================================
# Error Handling Tests
# ==============================================================================


class TestWebSocketTransportErrors:
    async def test_unreachable_server_reports_error_then_close(self) -> None:
        transport = WebSocketTransport(f"ws://127.0.0.1:{get_free_port()}/", open_timeout=2.0)
        log = HandlerLog()
        log.attach(transport)
        transport.send("|/join lobby")

        await transport.start()
        await transport.wait_closed()

        assert log.opened == 0
        assert len(log.errors) == 1
        assert len(log.closed) == 1
        assert transport.pending == 1
        assert not transport.is_open

    async def test_start_twice_is_ignored(self, server: MockChatServer) -> None:
        transport = WebSocketTransport(server.url)
        log = HandlerLog()
        log.attach(transport)

        await transport.start()
        await transport.start()
        try:
            assert await wait_for(lambda: len(log.frames) == 3)
            assert log.opened == 1
        finally:
            await transport.stop()
