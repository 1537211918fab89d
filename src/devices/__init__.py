"""Device registry, discovery and manual control for rvlights."""

from devices.control import LightControl, clamp_level
from devices.discovery import Discovery, DiscoveryResult, DiscoveryState
from devices.registry import DeviceRegistry

__all__ = [
    "DeviceRegistry",
    "Discovery",
    "DiscoveryResult",
    "DiscoveryState",
    "LightControl",
    "clamp_level",
]
