"""Request/response correlation over an untagged text channel.

Each outbound request is answered by an inbound ``TAG=VALUE`` frame. A
waiter is a one-shot future keyed by tag: the first matching delivery
resolves it, and nothing else ever does.
"""

import asyncio
import logging
from typing import Awaitable, Callable

from utils.errors import CorrelationTimeout, NotConnectedError

logger = logging.getLogger(__name__)


class CorrelationEngine:
    """Matches inbound tagged frames to the requests awaiting them.

    Registering a second waiter for a tag that already has one replaces it;
    the replaced waiter is never resolved and runs into its own timeout.
    """

    def __init__(self) -> None:
        self._waiters: dict[str, asyncio.Future[str]] = {}

    def expect(self, tag: str) -> asyncio.Future[str]:
        """Register a one-shot waiter for ``tag``."""
        future: asyncio.Future[str] = asyncio.get_running_loop().create_future()
        previous = self._waiters.get(tag)
        if previous is not None and not previous.done():
            logger.debug(f"Replacing pending waiter for {tag}")
        self._waiters[tag] = future
        return future

    async def wait(self, tag: str, future: asyncio.Future[str], timeout: float) -> str:
        """Wait for a registered waiter to resolve.

        Raises:
            CorrelationTimeout: If nothing is delivered within ``timeout``
        """
        try:
            async with asyncio.timeout(timeout):
                return await future
        except TimeoutError:
            raise CorrelationTimeout(tag, timeout) from None
        finally:
            self.discard(tag, future)

    async def await_once(self, tag: str, timeout: float) -> str:
        """Register a waiter for ``tag`` and wait for its value."""
        return await self.wait(tag, self.expect(tag), timeout)

    async def request(
        self,
        tag: str,
        token: str,
        send: Callable[[str], Awaitable[bool]],
        timeout: float,
    ) -> str:
        """Send ``token`` and wait for the response tagged ``tag``.

        The waiter is registered before the send so a fast answer can't slip
        past. A failed send still waits out the timeout; a send that raises
        drops the waiter and propagates.
        """
        future = self.expect(tag)
        try:
            sent = await send(token)
        except BaseException:
            self.discard(tag, future)
            raise
        if not sent:
            logger.debug(f"Send failed for {tag}; waiting out timeout")
        return await self.wait(tag, future, timeout)

    def deliver(self, tag: str, value: str) -> bool:
        """Route an inbound value to its waiter.

        Returns:
            True if a waiter took the value, False if it was unsolicited
        """
        future = self._waiters.pop(tag, None)
        if future is None or future.done():
            logger.debug(f"Unsolicited {tag}={value[:60]}")
            return False
        future.set_result(value)
        return True

    def pending(self) -> list[str]:
        """Tags with a waiter still outstanding."""
        return [tag for tag, future in self._waiters.items() if not future.done()]

    def fail_all(self, reason: str = "connection closed") -> None:
        """Fail every outstanding waiter with NotConnectedError."""
        for future in self._waiters.values():
            if not future.done():
                future.set_exception(NotConnectedError(reason))
        self._waiters.clear()

    def discard(self, tag: str, future: asyncio.Future[str]) -> None:
        """Drop a waiter that will never be awaited."""
        if self._waiters.get(tag) is future:
            del self._waiters[tag]
