"""Transport to the coach controller.

The controller speaks plain text frames over a WebSocket. The transport
only moves frames: every inbound frame goes to a single message handler,
one at a time, on the event loop.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable

import websockets
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidURI

from protocol.commands import KEEPALIVE
from utils.retry import RetryExhausted, retry_async

logger = logging.getLogger(__name__)

MessageHandler = Callable[[str], None]


class Transport(ABC):
    """Duplex text channel to the controller.

    The owner binds ``on_message`` and ``on_disconnect`` before connecting.
    """

    on_message: MessageHandler | None = None
    on_disconnect: Callable[[], None] | None = None

    @abstractmethod
    async def send(self, text: str) -> bool:
        """Send one frame. Returns False if it could not be sent."""
        pass

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        pass

    async def close(self) -> None:
        """Close the channel."""
        pass


class WebSocketTransport(Transport):
    """WebSocket transport with keepalive and automatic reconnection."""

    def __init__(
        self,
        url: str,
        on_message: MessageHandler | None = None,
        handshake: str | None = "?*!",
        ping_interval: float = 30.0,
        reconnect_attempts: int = 5,
        reconnect_delay: float = 5.0,
        on_disconnect: Callable[[], None] | None = None,
    ):
        """Initialize transport.

        Args:
            url: ws:// or wss:// URL of the controller
            on_message: Called with every inbound text frame
            handshake: Token sent right after each connect
            ping_interval: Seconds between keepalive frames
            reconnect_attempts: Connection attempts before giving up
            reconnect_delay: Seconds between connection attempts
            on_disconnect: Called when an open connection drops
        """
        self.url = url
        self.on_message = on_message
        self.handshake = handshake
        self.ping_interval = ping_interval
        self.reconnect_attempts = reconnect_attempts
        self.reconnect_delay = reconnect_delay
        self.on_disconnect = on_disconnect

        self._ws: Any = None
        self._connected = False
        self._closing = False
        self._reader_task: asyncio.Task | None = None
        self._ping_task: asyncio.Task | None = None

    @property
    def is_connected(self) -> bool:
        return self._connected and self._ws is not None

    async def connect(self) -> None:
        """Open the connection and start the reader and keepalive tasks.

        Raises:
            RetryExhausted: If every connection attempt fails
        """
        self._closing = False
        await self._open_with_retry()
        self._reader_task = asyncio.create_task(self._reader_loop())
        self._ping_task = asyncio.create_task(self._ping_loop())

    async def _open(self) -> Any:
        logger.info(f"Connecting to {self.url}...")
        return await websockets.connect(self.url)

    async def _open_with_retry(self) -> None:
        self._ws = await retry_async(
            self._open,
            max_attempts=self.reconnect_attempts + 1,
            initial_delay=self.reconnect_delay,
            exponential_base=1.0,
            retryable_exceptions=(OSError, TimeoutError, InvalidHandshake, InvalidURI),
        )
        self._connected = True
        logger.info("WebSocket connected")
        if self.handshake:
            await self.send(self.handshake)

    async def send(self, text: str) -> bool:
        """Send a frame, logging instead of raising when the link is down."""
        if not self.is_connected:
            logger.error(f"WebSocket not ready to send: {text}")
            return False
        try:
            logger.debug(f"Sending: {text}")
            await self._ws.send(text)
            return True
        except ConnectionClosed as e:
            logger.error(f"WebSocket closed while sending {text}: {e}")
            self._connected = False
            return False

    async def _reader_loop(self) -> None:
        """Feed inbound frames to the handler; reconnect when the link drops."""
        while not self._closing:
            try:
                async for message in self._ws:
                    if isinstance(message, bytes):
                        message = message.decode("utf-8", errors="replace")
                    logger.debug(f"Received: {message}")
                    if self.on_message is None:
                        continue
                    try:
                        self.on_message(message)
                    except Exception as e:
                        logger.error(f"Error handling message {message!r}: {e}")
            except ConnectionClosed as e:
                logger.warning(f"WebSocket connection closed: {e}")
            except asyncio.CancelledError:
                break

            self._connected = False
            if self._closing:
                break
            if self.on_disconnect:
                self.on_disconnect()

            try:
                await self._open_with_retry()
            except RetryExhausted as e:
                logger.error(f"Max reconnection attempts reached: {e}")
                break

    async def _ping_loop(self) -> None:
        while not self._closing:
            try:
                await asyncio.sleep(self.ping_interval)
                if self.is_connected:
                    await self.send(KEEPALIVE)
            except asyncio.CancelledError:
                break

    async def close(self) -> None:
        """Stop background tasks and close the socket."""
        self._closing = True
        self._connected = False
        for task in (self._ping_task, self._reader_task):
            if task:
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._ping_task = None
        self._reader_task = None
        if self._ws is not None:
            await self._ws.close()
            self._ws = None
        logger.info("Disconnected from controller")

    async def wait_closed(self) -> None:
        """Wait until the reader gives up (closed or reconnection exhausted)."""
        if self._reader_task:
            await asyncio.shield(self._reader_task)
