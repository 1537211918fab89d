"""Schedule model: named, toggleable sets of time triggers."""

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from models.scene import parse_created

# Indexed by datetime.weekday() (0=Monday)
WEEKDAY_TAGS = ("mon", "tue", "wed", "thu", "fri", "sat", "sun")

_DAY_MAP = {
    "mon": "mon", "monday": "mon",
    "tue": "tue", "tuesday": "tue",
    "wed": "wed", "wednesday": "wed",
    "thu": "thu", "thursday": "thu",
    "fri": "fri", "friday": "fri",
    "sat": "sat", "saturday": "sat",
    "sun": "sun", "sunday": "sun",
}

_TIME_PATTERN = re.compile(r"^([01]?[0-9]|2[0-3]):([0-5][0-9])$")


class ScheduleAction(Enum):
    """What a schedule event does when it fires."""

    LOAD_SCENE = "load_scene"
    LIGHTS_ON = "lights_on"
    LIGHTS_OFF = "lights_off"


def weekday_tag(moment: datetime) -> str:
    """Weekday tag ("mon".."sun") for a datetime."""
    return WEEKDAY_TAGS[moment.weekday()]


def normalize_time(value: str) -> str:
    """Normalize "7:05" to "07:05".

    Raises:
        ValueError: If the value is not an HH:MM time
    """
    match = _TIME_PATTERN.match(str(value).strip())
    if not match:
        raise ValueError(f"Invalid event time: {value!r} (expected HH:MM)")
    return f"{int(match.group(1)):02d}:{match.group(2)}"


def normalize_days(days: Any) -> tuple[str, ...]:
    """Normalize day names to weekday tags, keeping the given order."""
    if days is None:
        return WEEKDAY_TAGS
    if isinstance(days, str):
        days = [days]
    tags: list[str] = []
    for day in days:
        tag = _DAY_MAP.get(str(day).lower())
        if tag is None:
            raise ValueError(f"Invalid day: {day!r}")
        if tag not in tags:
            tags.append(tag)
    return tuple(tags)


@dataclass
class ScheduleEvent:
    """One time/day-gated trigger."""

    time: str  # "HH:MM"
    action: ScheduleAction
    days: tuple[str, ...] = WEEKDAY_TAGS
    scene: str | None = None

    def matches(self, moment: datetime) -> bool:
        """Whether this event is due at the minute containing ``moment``."""
        return self.time == moment.strftime("%H:%M") and weekday_tag(moment) in self.days

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "time": self.time,
            "days": list(self.days),
            "action": self.action.value,
        }
        if self.scene is not None:
            data["scene"] = self.scene
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ScheduleEvent":
        action = data.get("action") or ScheduleAction.LOAD_SCENE
        return cls(
            time=normalize_time(data["time"]),
            action=ScheduleAction(action),
            days=normalize_days(data.get("days")),
            scene=data.get("scene"),
        )


@dataclass
class Schedule:
    """A named set of events, independently enabled and activated."""

    name: str
    events: list[ScheduleEvent] = field(default_factory=list)
    enabled: bool = True
    created_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "enabled": self.enabled,
            "created": self.created_at.isoformat(),
            "events": [event.to_dict() for event in self.events],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Schedule":
        created = data.get("created")
        return cls(
            name=str(data["name"]),
            events=[ScheduleEvent.from_dict(e) for e in data.get("events", [])],
            enabled=bool(data.get("enabled", True)),
            created_at=parse_created(created),
        )
