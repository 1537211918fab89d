"""Data models for rvlights."""

from models.device import Device, DeviceKind
from models.room import DEFAULT_ROOM_NAMES, UNKNOWN_ROOM, room_name
from models.scene import Scene, SceneMember, validate_scene_name
from models.schedule import (
    WEEKDAY_TAGS,
    Schedule,
    ScheduleAction,
    ScheduleEvent,
    weekday_tag,
)

__all__ = [
    "DEFAULT_ROOM_NAMES",
    "Device",
    "DeviceKind",
    "Scene",
    "SceneMember",
    "Schedule",
    "ScheduleAction",
    "ScheduleEvent",
    "UNKNOWN_ROOM",
    "WEEKDAY_TAGS",
    "room_name",
    "validate_scene_name",
    "weekday_tag",
]
