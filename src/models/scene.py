"""Scene snapshot model."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

MAX_SCENE_NAME_LENGTH = 50


@dataclass
class SceneMember:
    """One device's captured level. A copy, never a live reference."""

    device_id: int
    display_name: str
    level: int
    room: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.device_id,
            "name": self.display_name,
            "brightness": self.level,
            "room": self.room,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SceneMember":
        return cls(
            device_id=_positive_index(data["index"]),
            display_name=str(data.get("name", "")),
            level=int(data["brightness"]),
            room=int(data.get("room", -1)),
        )


@dataclass
class Scene:
    """A named capture of device levels."""

    name: str
    members: list[SceneMember] = field(default_factory=list)
    room_filter: int | None = None
    created_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        """Convert to the controller backup format."""
        return {
            "name": self.name,
            "created": self.created_at.isoformat(),
            "room": self.room_filter,
            "lights": [member.to_dict() for member in self.members],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Scene":
        created = data.get("created")
        room = data.get("room")
        return cls(
            name=str(data["name"]),
            members=[SceneMember.from_dict(m) for m in data.get("lights", [])],
            room_filter=None if room is None else int(room),
            created_at=parse_created(created),
        )


def parse_created(value: Any) -> datetime:
    """Read a backup's ``created`` timestamp; missing means now.

    Raises:
        TypeError: If the value is not an ISO 8601 string
        ValueError: If the string is not a valid timestamp
    """
    if not value:
        return datetime.now()
    if not isinstance(value, str):
        raise TypeError(f"created must be an ISO 8601 string, got {type(value).__name__}")
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _positive_index(value: Any) -> int:
    index = int(value)
    if index < 1:
        raise ValueError(f"light index must be positive, got {index}")
    return index


def validate_scene_name(name: Any) -> str:
    """Return the name if usable as a scene key.

    Raises:
        ValueError: If the name is empty, not a string, or too long
    """
    if not isinstance(name, str) or not name:
        raise ValueError("Scene name must be a non-empty string")
    if len(name) > MAX_SCENE_NAME_LENGTH:
        raise ValueError(
            f"Scene name must be at most {MAX_SCENE_NAME_LENGTH} characters"
        )
    return name
