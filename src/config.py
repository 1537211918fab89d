"""Configuration loading for rvlights."""

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

from models.room import DEFAULT_ROOM_NAMES


class ConnectionConfig(BaseModel):
    """Coach controller WebSocket endpoint."""

    host: str = "192.168.1.4"
    port: int = Field(default=8080, ge=1, le=65535)
    use_ssl: bool = False
    reconnect_attempts: int = Field(default=5, ge=0, le=10)
    reconnect_delay: float = Field(default=5.0, gt=0)
    ping_interval: float = Field(default=30.0, ge=5.0)
    handshake: str = "?*!"


class AuthenticationConfig(BaseModel):
    """Controller PIN, answered automatically when the controller asks."""

    pin: str | None = Field(default=None, pattern=r"^\d{4,8}$")


class DiscoveryConfig(BaseModel):
    """Discovery handshake settings."""

    timeout: float = Field(default=10.0, gt=0)
    allow_partial: bool = False


class ControlConfig(BaseModel):
    """Manual control settings."""

    brightness_query_timeout: float = Field(default=5.0, gt=0)


class SchedulingConfig(BaseModel):
    """Schedule evaluator settings."""

    enabled: bool = True
    check_interval: float = Field(default=60.0, ge=10.0)
    dedupe_within_minute: bool = False
    activate: list[str] = Field(default_factory=list)


class StorageConfig(BaseModel):
    """Scene and schedule storage."""

    db_path: Path | None = None


class LoggingConfig(BaseModel):
    """Logging settings."""

    level: str = "INFO"
    debug: bool = False


class LightingConfig(BaseModel):
    """Main configuration model."""

    connection: ConnectionConfig = Field(default_factory=ConnectionConfig)
    authentication: AuthenticationConfig = Field(default_factory=AuthenticationConfig)
    discovery: DiscoveryConfig = Field(default_factory=DiscoveryConfig)
    control: ControlConfig = Field(default_factory=ControlConfig)
    scheduling: SchedulingConfig = Field(default_factory=SchedulingConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    rooms: dict[int, str] = Field(default_factory=lambda: dict(DEFAULT_ROOM_NAMES))

    @property
    def websocket_url(self) -> str:
        """URL of the controller's WebSocket."""
        scheme = "wss" if self.connection.use_ssl else "ws"
        return f"{scheme}://{self.connection.host}:{self.connection.port}/"


def find_config_dir() -> Path:
    """Find the config directory.

    Looks for config directory in the following order:
    1. ./config (relative to cwd)
    2. ../config (parent of cwd)
    3. ~/.config/rvlights
    """
    cwd = Path.cwd()

    if (cwd / "config").is_dir():
        return cwd / "config"

    if (cwd.parent / "config").is_dir():
        return cwd.parent / "config"

    home_config = Path.home() / ".config" / "rvlights"
    if home_config.is_dir():
        return home_config

    return cwd / "config"


def load_yaml(path: Path) -> dict[str, Any]:
    """Load a YAML file, returning empty dict if not found."""
    if not path.exists():
        return {}
    with open(path) as f:
        return yaml.safe_load(f) or {}


def load_config(config_dir: Path | None = None) -> LightingConfig:
    """Load the main configuration."""
    if config_dir is None:
        config_dir = find_config_dir()

    config_path = config_dir / "config.yaml"
    data = load_yaml(config_path)
    return LightingConfig.model_validate(data)
