"""Device registry: the lights discovered in this session."""

import logging
from collections import Counter
from typing import Iterable, Iterator

from models.device import Device

logger = logging.getLogger(__name__)


class DeviceRegistry:
    """In-memory store of discovered devices keyed by controller id.

    Discovery is the only writer of membership; control operations only
    update ``current_level``. Entries live as long as the registry.
    Iteration follows insertion order, which is response arrival order.
    """

    def __init__(self, room_names: dict[int, str] | None = None):
        self.room_names = room_names
        self._devices: dict[int, Device] = {}

    def __len__(self) -> int:
        return len(self._devices)

    def __contains__(self, device_id: object) -> bool:
        return device_id in self._devices

    def __iter__(self) -> Iterator[Device]:
        return iter(list(self._devices.values()))

    def clear(self) -> None:
        self._devices.clear()

    def insert(self, device: Device) -> None:
        """Insert or replace a device by id."""
        if device.id in self._devices:
            logger.warning(f"Replacing device {device.id} ({self._devices[device.id].display_name})")
        self._devices[device.id] = device

    def replace_all(self, devices: Iterable[Device]) -> None:
        """Replace the whole registry."""
        self._devices = {}
        for device in devices:
            self.insert(device)

    def get(self, device_id: int) -> Device | None:
        """Get a device by id."""
        return self._devices.get(device_id)

    def all(self) -> list[Device]:
        """All devices in arrival order."""
        return list(self._devices.values())

    def by_room(self, room: int | None) -> list[Device]:
        """Devices in a room; ``None`` means every room."""
        if room is None:
            return self.all()
        return [d for d in self._devices.values() if d.room == room]

    def update_level(self, device_id: int, level: int) -> bool:
        """Update the cached level of a device. False if unknown."""
        device = self._devices.get(device_id)
        if device is None:
            return False
        device.current_level = level
        return True

    def count_by_room(self) -> dict[int, int]:
        return dict(Counter(d.room for d in self._devices.values()))

    def count_on(self, room: int | None = None) -> int:
        """Count how many lights are on, optionally in a specific room."""
        return sum(1 for d in self.by_room(room) if d.is_on)
