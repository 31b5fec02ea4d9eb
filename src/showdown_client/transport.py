"""Transport adapter.

WebSocket client for the chat server. Exposes open/message/error/close
callbacks and a synchronous `send` that queues lines until the connection is
open, then flushes them in order.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections import deque
from collections.abc import Callable
from typing import Any, Protocol

import websockets

logger = logging.getLogger(__name__)

OpenHandler = Callable[[], None]
MessageHandler = Callable[[str], None]
ErrorHandler = Callable[[Exception], None]
CloseHandler = Callable[[str], None]


class Transport(Protocol):
    """Duplex text channel used by the client."""

    @property
    def is_open(self) -> bool:
        ...

    def set_handlers(
        self,
        on_open: OpenHandler,
        on_message: MessageHandler,
        on_error: ErrorHandler,
        on_close: CloseHandler,
    ) -> None:
        ...

    async def start(self) -> None:
        ...

    async def stop(self) -> None:
        ...

    def send(self, text: str) -> None:
        """Send a line, or queue it until the channel is open."""
        ...


def _noop(*args: Any) -> None:
    return None


class WebSocketTransport:
    """WebSocket connection to the chat server.

    This transport:
    - Connects once (no reconnection; a close is reported through on_close)
    - Delivers every received frame to on_message, in arrival order
    - Queues sends while not open and flushes them FIFO once open
    - Never lets a failing handler break the receive loop
    """

    def __init__(self, url: str, open_timeout: float | None = 10.0) -> None:
        """Initialize the transport.

        Args:
            url: WebSocket URL of the chat server
            open_timeout: Timeout of the opening handshake in seconds
        """
        self._url = url
        self._open_timeout = open_timeout

        self._websocket: Any = None
        self._outbox: deque[str] = deque()
        self._outbox_ready = asyncio.Event()
        self._connection_task: asyncio.Task[None] | None = None
        self._writer_task: asyncio.Task[None] | None = None
        self._open = False
        self._running = False

        self._on_open: OpenHandler = _noop
        self._on_message: MessageHandler = _noop
        self._on_error: ErrorHandler = _noop
        self._on_close: CloseHandler = _noop

    @property
    def url(self) -> str:
        return self._url

    @property
    def is_open(self) -> bool:
        return self._open and self._websocket is not None

    @property
    def pending(self) -> int:
        """Number of queued lines not written yet."""
        return len(self._outbox)

    def set_handlers(
        self,
        on_open: OpenHandler,
        on_message: MessageHandler,
        on_error: ErrorHandler,
        on_close: CloseHandler,
    ) -> None:
        self._on_open = on_open
        self._on_message = on_message
        self._on_error = on_error
        self._on_close = on_close

    async def start(self) -> None:
        """Start the connection (runs in a background task)."""
        if self._running:
            logger.warning("WebSocketTransport already running")
            return
        self._running = True
        self._connection_task = asyncio.create_task(self._connection_loop())
        logger.info(f"Connecting to {self._url}")

    async def stop(self) -> None:
        """Close the connection and wait for the background task."""
        if not self._running:
            return
        self._running = False

        if self._websocket is not None:
            try:
                await self._websocket.close()
            except Exception as e:
                logger.debug(f"Error closing WebSocket: {e}")

        if self._connection_task is not None:
            self._connection_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._connection_task
            self._connection_task = None

    async def wait_closed(self) -> None:
        """Wait until the background connection task has finished."""
        if self._connection_task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await self._connection_task

    def send(self, text: str) -> None:
        self._outbox.append(text)
        self._outbox_ready.set()
        if not self.is_open:
            logger.debug(f"Queued line (queue size: {len(self._outbox)})")

    def _call(self, name: str, handler: Callable[..., None], *args: Any) -> None:
        try:
            handler(*args)
        except Exception as e:
            logger.error(f"Error in transport {name} handler: {e}", exc_info=True)

    async def _connection_loop(self) -> None:
        reason = ""
        try:
            self._websocket = await websockets.connect(
                self._url, open_timeout=self._open_timeout, max_size=None
            )
            self._open = True
            logger.info(f"Connected to {self._url}")
            self._call("open", self._on_open)
            self._writer_task = asyncio.create_task(self._writer_loop())

            async for frame in self._websocket:
                if isinstance(frame, bytes):
                    frame = frame.decode("utf-8", errors="replace")
                self._call("message", self._on_message, frame)
            reason = "closed by server"
        except websockets.exceptions.ConnectionClosed as e:
            reason = str(e)
            logger.info(f"WebSocket connection closed: {e}")
        except (websockets.exceptions.WebSocketException, OSError, asyncio.TimeoutError) as e:
            reason = str(e) or type(e).__name__
            logger.warning(f"WebSocket error: {e}")
            self._call("error", self._on_error, e)
        finally:
            self._open = False
            self._websocket = None
            if self._writer_task is not None:
                self._writer_task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await self._writer_task
                self._writer_task = None
            self._call("close", self._on_close, reason)

    async def _writer_loop(self) -> None:
        """Write queued lines in order while the connection is open."""
        while self.is_open:
            if not self._outbox:
                self._outbox_ready.clear()
                await self._outbox_ready.wait()
                continue
            line = self._outbox[0]
            try:
                await self._websocket.send(line)
            except websockets.exceptions.ConnectionClosed as e:
                logger.warning(f"Failed to send line, connection closed: {e}")
                return
            self._outbox.popleft()
            logger.debug(f">> {line}")
