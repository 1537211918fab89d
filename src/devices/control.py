"""Manual light control."""

import logging

from devices.registry import DeviceRegistry
from protocol.codec import parse_percentage, round_half_up
from protocol.commands import brightness_tag, dimmer_command, switch_command
from protocol.correlation import CorrelationEngine
from protocol.transport import Transport

logger = logging.getLogger(__name__)

DEFAULT_BRIGHTNESS_QUERY_TIMEOUT = 5.0


def clamp_level(level: float) -> int:
    """Clamp a brightness to 0-100."""
    return max(0, min(100, round_half_up(level)))


class LightControl:
    """Issues control commands and brightness queries for registered lights.

    Commands are fire-and-forget: a successful send updates the cached level
    optimistically, there is no acknowledgement from the light.
    """

    def __init__(
        self,
        transport: Transport,
        registry: DeviceRegistry,
        correlation: CorrelationEngine,
        brightness_query_timeout: float = DEFAULT_BRIGHTNESS_QUERY_TIMEOUT,
    ):
        self.transport = transport
        self.registry = registry
        self.correlation = correlation
        self.brightness_query_timeout = brightness_query_timeout

    async def set_brightness(self, device_id: int, level: float) -> bool:
        """Set a light to ``level`` percent.

        Dimmers get a brightness command, switches an on/off command
        (on for any level above zero).

        Returns:
            True if the command was sent
        """
        device = self.registry.get(device_id)
        if device is None:
            logger.error(f"Light {device_id} not found")
            return False

        level = clamp_level(level)
        if device.is_dimmer:
            command = dimmer_command(device.instance_tag, level)
        else:
            command = switch_command(device.instance_tag, level > 0)

        try:
            sent = await self.transport.send(command)
        except Exception as e:
            logger.error(f"Failed to set brightness for light {device_id}: {e}")
            return False
        if not sent:
            return False

        device.current_level = level
        logger.info(f"Set {device.display_name} to {level}%")
        return True

    async def toggle(self, device_id: int, on: bool | None = None) -> bool:
        """Turn a light fully on or off; ``None`` flips its cached state."""
        device = self.registry.get(device_id)
        if device is None:
            return False
        if on is None:
            on = device.current_level == 0
        return await self.set_brightness(device_id, 100 if on else 0)

    async def all_on(self) -> int:
        """Turn every light on. Returns how many commands were sent."""
        return await self._set_all(100, "on")

    async def all_off(self) -> int:
        """Turn every light off. Returns how many commands were sent."""
        return await self._set_all(0, "off")

    async def _set_all(self, level: int, label: str) -> int:
        devices = self.registry.all()
        count = 0
        for device in devices:
            if await self.set_brightness(device.id, level):
                count += 1
        logger.info(f"All lights turned {label} ({count}/{len(devices)} successful)")
        return count

    async def query_brightness(self, device_id: int) -> int:
        """Ask the controller for a light's current level.

        Raises:
            KeyError: If the light is not registered
            CorrelationTimeout: If the controller does not answer in time
            DeviceParseError: If the answer is not a percentage
        """
        device = self.registry.get(device_id)
        if device is None:
            raise KeyError(device_id)

        tag = brightness_tag(device_id)
        value = await self.correlation.request(
            tag, tag, self.transport.send, self.brightness_query_timeout
        )
        level = clamp_level(parse_percentage(value))
        device.current_level = level
        return level
