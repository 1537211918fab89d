"""Discovery workflow: count request, then one fetch per light.

The controller first answers ``GET_LIGHT_COUNT=N``, then each
``GET_LIGHT_OBJECT[i]`` request with a JSON light object. All object
fetches are sent up front and awaited concurrently; the whole workflow
shares one time budget measured from its start.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum

from devices.registry import DeviceRegistry
from models.device import Device
from protocol.commands import LIGHT_COUNT_TAG, light_object_tag
from protocol.correlation import CorrelationEngine
from protocol.transport import Transport
from utils.errors import (
    CorrelationTimeout,
    DeviceParseError,
    DiscoveryError,
    DiscoveryTimeout,
    NotConnectedError,
)

logger = logging.getLogger(__name__)

DEFAULT_DISCOVERY_TIMEOUT = 10.0


class DiscoveryState(Enum):
    """Discovery workflow states."""

    IDLE = "idle"
    COUNTING = "counting"
    FETCHING = "fetching"
    READY = "ready"
    FAILED = "failed"


@dataclass
class DiscoveryResult:
    """Outcome of a discovery pass that reached Ready."""

    expected: int
    devices: list[Device] = field(default_factory=list)
    parse_failures: int = 0
    duplicates: int = 0

    @property
    def complete(self) -> bool:
        return len(self.devices) >= self.expected


class Discovery:
    """Populates a DeviceRegistry from the controller.

    Every run is a full re-discovery: the registry is cleared first. Scenes
    and schedules that reference lights missing afterwards are left for
    their owners to revalidate.
    """

    def __init__(
        self,
        transport: Transport,
        registry: DeviceRegistry,
        correlation: CorrelationEngine,
        timeout: float = DEFAULT_DISCOVERY_TIMEOUT,
        allow_partial: bool = False,
    ):
        """Initialize discovery.

        Args:
            transport: Channel to the controller
            registry: Registry to populate
            correlation: Correlation engine fed by the session dispatcher
            timeout: Overall budget in seconds for the whole pass
            allow_partial: Resolve Ready with fewer lights than advertised
                instead of failing with DiscoveryTimeout
        """
        self.transport = transport
        self.registry = registry
        self.correlation = correlation
        self.timeout = timeout
        self.allow_partial = allow_partial
        self.state = DiscoveryState.IDLE

    @property
    def in_progress(self) -> bool:
        return self.state in (DiscoveryState.COUNTING, DiscoveryState.FETCHING)

    async def run(self) -> DiscoveryResult:
        """Run one discovery pass.

        Returns:
            DiscoveryResult once the workflow is Ready

        Raises:
            DiscoveryTimeout: If the count never arrived, or fewer lights than
                advertised were registered within the budget (their devices
                stay in the registry)
            DiscoveryError: If a pass is already running or the count is
                malformed
        """
        if self.in_progress:
            raise DiscoveryError("Discovery already in progress")

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout
        self.registry.clear()

        logger.info("Discovering lights...")
        self.state = DiscoveryState.COUNTING
        try:
            return await self._discover(loop, deadline)
        finally:
            # Cancelled or failed mid-pass
            if self.in_progress:
                self.state = DiscoveryState.FAILED

    async def _discover(self, loop: asyncio.AbstractEventLoop, deadline: float) -> DiscoveryResult:
        try:
            raw_count = await self.correlation.request(
                LIGHT_COUNT_TAG, LIGHT_COUNT_TAG, self.transport.send, self.timeout
            )
        except (CorrelationTimeout, NotConnectedError):
            logger.error("Lighting system initialization timeout")
            raise DiscoveryTimeout(self.timeout) from None

        try:
            expected = int(raw_count.strip())
            if expected < 0:
                raise ValueError(expected)
        except ValueError:
            raise DiscoveryError(f"Invalid light count: {raw_count!r}") from None

        logger.info(f"Controller reports {expected} lights")
        if expected == 0:
            self.state = DiscoveryState.READY
            logger.info("No lights found, but system initialized")
            return DiscoveryResult(expected=0)

        self.state = DiscoveryState.FETCHING
        result = await self._fetch_objects(expected, deadline - loop.time())

        if result.complete:
            self.state = DiscoveryState.READY
            logger.info(f"Lighting controller initialized with {len(result.devices)} lights")
            return result

        if self.allow_partial:
            self.state = DiscoveryState.READY
            logger.warning(
                f"Lighting controller initialized with {len(result.devices)} "
                f"of {expected} lights"
            )
            return result

        logger.error(
            f"Lighting system initialization timeout: "
            f"{len(result.devices)} of {expected} lights"
        )
        raise DiscoveryTimeout(self.timeout, expected=expected, received=len(result.devices))

    async def _fetch_objects(self, expected: int, budget: float) -> DiscoveryResult:
        """Request every light object and register them as they arrive."""
        waiters = []
        try:
            for index in range(expected):
                tag = light_object_tag(index)
                waiters.append((tag, self.correlation.expect(tag)))
                await self.transport.send(tag)
        except BaseException:
            for tag, future in waiters:
                self.correlation.discard(tag, future)
            raise

        budget = max(budget, 0.0)
        tasks = [
            asyncio.create_task(self.correlation.wait(tag, future, budget))
            for tag, future in waiters
        ]
        result = DiscoveryResult(expected=expected)
        try:
            for completed in asyncio.as_completed(tasks):
                try:
                    payload = await completed
                except (CorrelationTimeout, NotConnectedError):
                    continue

                try:
                    device = Device.from_payload(payload, self.registry.room_names)
                except DeviceParseError as e:
                    result.parse_failures += 1
                    logger.error(f"Error parsing light object: {e}")
                    continue

                if device.id in self.registry:
                    result.duplicates += 1
                    logger.warning(f"Ignoring duplicate light object for index {device.id}")
                    continue

                self.registry.insert(device)
                result.devices.append(device)
                logger.info(
                    f"Light {device.id}: {device.display_name} (Room: {device.room_name})"
                )
        finally:
            for task in tasks:
                task.cancel()

        return result
