"""Device model for discovered lights."""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any

from models.room import room_name
from utils.errors import DeviceParseError


class DeviceKind(Enum):
    """How a light is commanded."""

    DIMMER = "dimmer"
    SWITCH = "switch"

    @classmethod
    def from_type_code(cls, code: Any) -> "DeviceKind":
        """Controller type code 0 is a dimmer, anything else a switch."""
        return cls.DIMMER if int(code) == 0 else cls.SWITCH


@dataclass
class Device:
    """A controllable light reported by the controller."""

    id: int
    instance_tag: int
    kind: DeviceKind
    room: int
    display_name: str
    room_name: str = "Unknown"
    current_level: int = 0  # 0-100, optimistic local cache

    @property
    def is_dimmer(self) -> bool:
        return self.kind is DeviceKind.DIMMER

    @property
    def is_on(self) -> bool:
        return self.current_level > 0

    @classmethod
    def from_payload(
        cls, payload: str | dict[str, Any], room_names: dict[int, str] | None = None
    ) -> "Device":
        """Build a device from the controller's light object.

        The controller sends objects such as
        ``{"name": "Ceiling|Light", "index": 3, "instance": 7, "command": 0, "room_loc": 1}``.

        Raises:
            DeviceParseError: If the payload is not a usable light object
        """
        try:
            data = json.loads(payload) if isinstance(payload, str) else payload
            if not isinstance(data, dict):
                raise TypeError(f"expected object, got {type(data).__name__}")

            device_id = int(data["index"])
            if device_id < 1:
                raise ValueError(f"index must be positive, got {device_id}")
            instance = data.get("instance")
            instance_tag = device_id if instance is None else int(instance)
            room = int(data.get("room_loc", -1))

            return cls(
                id=device_id,
                instance_tag=instance_tag,
                kind=DeviceKind.from_type_code(data.get("command", 0)),
                room=room,
                display_name=str(data.get("name", f"Light {device_id}")).replace("|", " "),
                room_name=room_name(room, room_names),
            )
        except (ValueError, TypeError, KeyError) as e:
            raise DeviceParseError(str(payload), str(e)) from e

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "instance": self.instance_tag,
            "name": self.display_name,
            "kind": self.kind.value,
            "room": self.room,
            "room_name": self.room_name,
            "level": self.current_level,
        }
