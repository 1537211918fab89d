"""Pytest configuration and fixtures for rvlights tests."""

import asyncio
import json
import sys
from pathlib import Path
from typing import Any

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from config import ControlConfig, DiscoveryConfig, LightingConfig
from models.device import Device, DeviceKind
from models.room import room_name
from protocol.transport import Transport
from session import LightingSession


class FakeTransport(Transport):
    """In-memory controller link.

    Records every sent frame. ``responses`` maps a sent frame to the frames
    the controller answers with; answers are delivered on the next loop
    iteration, like a real socket.
    """

    def __init__(self, responses: dict[str, Any] | None = None, connected: bool = True):
        self.sent: list[str] = []
        self.responses: dict[str, Any] = responses or {}
        self.connected = connected
        self.closed = False
        self.fail_sends = False

    @property
    def is_connected(self) -> bool:
        return self.connected and not self.closed

    async def send(self, text: str) -> bool:
        if not self.is_connected or self.fail_sends:
            return False
        self.sent.append(text)
        replies = self.responses.get(text)
        if replies:
            if isinstance(replies, str):
                replies = [replies]
            loop = asyncio.get_running_loop()
            for reply in replies:
                loop.call_soon(self.receive, reply)
        return True

    def receive(self, raw: str) -> None:
        """Simulate an inbound frame."""
        if self.on_message:
            self.on_message(raw)

    async def close(self) -> None:
        self.closed = True


def light_object(
    position: int,
    name: str = "Light",
    room: int = 0,
    command: int = 0,
    instance: int | None = None,
    index: int | None = None,
) -> str:
    """Controller answer frame for GET_LIGHT_OBJECT[position].

    The light's own index is one-based and defaults to ``position + 1``.
    """
    index = position + 1 if index is None else index
    payload = {
        "name": name,
        "index": index,
        "instance": index + 10 if instance is None else instance,
        "command": command,
        "room_loc": room,
    }
    return f"GET_LIGHT_OBJECT[{position}]={json.dumps(payload)}"


def make_device(
    device_id: int,
    room: int = 0,
    level: int = 0,
    dimmer: bool = True,
    name: str | None = None,
) -> Device:
    """Registered light for tests that skip discovery."""
    return Device(
        id=device_id,
        instance_tag=device_id + 10,
        kind=DeviceKind.DIMMER if dimmer else DeviceKind.SWITCH,
        room=room,
        display_name=name or f"Light {device_id}",
        room_name=room_name(room),
        current_level=level,
    )


@pytest.fixture
def fast_config() -> LightingConfig:
    """Configuration with short timeouts for tests."""
    return LightingConfig(
        discovery=DiscoveryConfig(timeout=0.5),
        control=ControlConfig(brightness_query_timeout=0.05),
    )


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def session(transport: FakeTransport, fast_config: LightingConfig) -> LightingSession:
    """Session on a fake transport, nothing discovered yet."""
    return LightingSession(transport, fast_config)


@pytest.fixture
def populated_session(session: LightingSession) -> LightingSession:
    """Session with four lights registered across three rooms."""
    session.registry.insert(make_device(1, room=0, level=80, name="Ceiling"))
    session.registry.insert(make_device(2, room=0, level=0, name="Sconce"))
    session.registry.insert(make_device(3, room=2, level=40, name="Bed Reading"))
    session.registry.insert(make_device(4, room=5, level=100, dimmer=False, name="Porch"))
    return session
