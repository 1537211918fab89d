"""Lighting session: one controller connection and everything built on it."""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable

from config import LightingConfig
from devices.control import LightControl
from devices.discovery import Discovery, DiscoveryResult
from devices.registry import DeviceRegistry
from models.room import room_name
from models.scene import Scene
from models.schedule import Schedule
from persistence import StateStore
from protocol.commands import MessageKind, parse_message, pin_command
from protocol.correlation import CorrelationEngine
from protocol.transport import Transport
from scenes.engine import SceneEngine
from scheduling.scheduler import ScheduleEngine
from utils.errors import AuthenticationError

logger = logging.getLogger(__name__)

EXPORT_VERSION = "1.0.0"

SessionTokenHandler = Callable[[str], None]


class LightingSession:
    """Owns the per-connection state and routes inbound frames.

    The session binds itself to the transport's message and disconnect
    hooks. Discovery, scenes and schedules share its registry and
    correlation engine; nothing here is process-global.
    """

    def __init__(
        self,
        transport: Transport,
        config: LightingConfig | None = None,
        store: StateStore | None = None,
        on_session_token: SessionTokenHandler | None = None,
    ):
        """Initialize session.

        Args:
            transport: Channel to the controller
            config: Lighting configuration (defaults apply when omitted)
            store: Optional persistence for scenes and schedules
            on_session_token: Called with every PIN-flow token
        """
        self.config = config or LightingConfig()
        self.transport = transport
        self.store = store
        self.on_session_token = on_session_token

        self.correlation = CorrelationEngine()
        self.registry = DeviceRegistry(self.config.rooms)
        self.control = LightControl(
            transport,
            self.registry,
            self.correlation,
            brightness_query_timeout=self.config.control.brightness_query_timeout,
        )
        self.discovery = Discovery(
            transport,
            self.registry,
            self.correlation,
            timeout=self.config.discovery.timeout,
            allow_partial=self.config.discovery.allow_partial,
        )
        self.scenes = SceneEngine(self.registry, self.control, store)
        self.schedules = ScheduleEngine(
            self.control,
            self.scenes,
            store,
            check_interval=self.config.scheduling.check_interval,
            dedupe_within_minute=self.config.scheduling.dedupe_within_minute,
        )

        self.initialized = False
        self._restored = False
        self._authenticated = asyncio.Event()
        self._auth_error: AuthenticationError | None = None
        self._background: set[asyncio.Task] = set()

        transport.on_message = self.handle_message
        transport.on_disconnect = self.on_disconnect

    @property
    def pin(self) -> str | None:
        return self.config.authentication.pin

    @property
    def authenticated(self) -> bool:
        return self._authenticated.is_set()

    def handle_message(self, raw: str) -> None:
        """Route one inbound frame.

        PIN-flow tokens drive authentication, JSON documents are informational,
        and ``TAG=VALUE`` frames resolve the waiter registered for ``TAG``.
        """
        message = parse_message(raw)

        if message.kind is MessageKind.SESSION:
            self._handle_session_token(message.tag)
        elif message.kind is MessageKind.JSON:
            logger.debug(f"JSON message: {raw[:200]}")
        elif message.kind is MessageKind.TAGGED:
            self.correlation.deliver(message.tag, message.value)
        else:
            logger.debug(f"Ignoring message: {raw[:200]}")

    def _handle_session_token(self, token: str) -> None:
        if token in ("SHOWPIN", "SHOWPINPAIR"):
            if self.pin:
                logger.info("Controller requested PIN, sending")
                self._spawn(self.transport.send(pin_command(self.pin)))
            else:
                logger.warning("Controller requested a PIN but none is configured")
        elif token == "CORRECTPIN":
            logger.info("PIN accepted")
            self._auth_error = None
            self._authenticated.set()
            if self.initialized and not self.discovery.in_progress:
                # Reconnected: the controller state may have changed
                self._spawn(self._rediscover())
        elif token == "INCORRECTPIN":
            logger.error("Incorrect PIN entered")
            self._auth_error = AuthenticationError(token, "Incorrect PIN")
            self._authenticated.set()
        elif token == "LOCKEDPIN":
            logger.error("Too many incorrect attempts. Please wait 5 minutes.")
            self._auth_error = AuthenticationError(token, "PIN entry locked")
            self._authenticated.set()

        if self.on_session_token:
            self.on_session_token(token)

    async def wait_authenticated(self, timeout: float) -> None:
        """Wait for the controller to accept the PIN.

        Returns immediately when no PIN is configured.

        Raises:
            AuthenticationError: If the PIN was rejected or is locked out
            TimeoutError: If the controller never answered
        """
        if not self.pin:
            return
        async with asyncio.timeout(timeout):
            await self._authenticated.wait()
        if self._auth_error:
            error, self._auth_error = self._auth_error, None
            self._authenticated.clear()
            raise error

    def on_disconnect(self) -> None:
        """Fail outstanding requests; the controller will ask for the PIN again."""
        pending = self.correlation.pending()
        if pending:
            logger.warning(f"Connection lost with {len(pending)} pending requests")
        self.correlation.fail_all("connection lost")
        self._authenticated.clear()

    async def restore(self) -> None:
        """Load persisted scenes and schedules (once per session)."""
        if self.store is None or self._restored:
            return
        self.scenes.restore(await self.store.load_scenes())
        self.schedules.restore(await self.store.load_schedules())
        self._restored = True
        logger.info(
            f"Loaded {len(self.scenes.all())} scenes and "
            f"{len(self.schedules.all())} schedules"
        )

    async def initialize(self) -> DiscoveryResult:
        """Restore persisted scenes and schedules, then discover lights."""
        await self.restore()
        result = await self.discovery.run()
        self.initialized = True
        return result

    async def _rediscover(self) -> None:
        try:
            await self.discovery.run()
        except Exception as e:
            logger.error(f"Re-discovery failed: {e}")

    async def activate_configured_schedules(self) -> int:
        """Activate the schedules named in ``scheduling.activate``."""
        if not self.config.scheduling.enabled:
            logger.info("Scheduling disabled in config")
            return 0
        activated = 0
        for name in self.config.scheduling.activate:
            if await self.schedules.activate(name):
                activated += 1
        return activated

    def status(self) -> dict[str, Any]:
        """Counts of devices, scenes and schedules."""
        return {
            "initialized": self.initialized,
            "connected": self.transport.is_connected,
            "discovery_state": self.discovery.state.value,
            "lights_count": len(self.registry),
            "lights_on": self.registry.count_on(),
            "scenes_count": len(self.scenes.all()),
            "schedules_count": len(self.schedules.all()),
            "active_schedules_count": len(self.schedules.active_names),
            "room_counts": {
                room_name(room, self.registry.room_names): count
                for room, count in self.registry.count_by_room().items()
            },
        }

    def export_config(self) -> dict[str, Any]:
        """Backup document with scenes, schedules and the current light list."""
        return {
            "scenes": [scene.to_dict() for scene in self.scenes.all()],
            "schedules": [schedule.to_dict() for schedule in self.schedules.all()],
            "version": EXPORT_VERSION,
            "exportDate": datetime.now(timezone.utc).isoformat(),
            "lights": [
                {
                    "name": device.display_name,
                    "room": device.room,
                    "roomName": device.room_name,
                    "isDimmer": device.is_dimmer,
                }
                for device in self.registry.all()
            ],
        }

    async def import_config(self, data: Any) -> tuple[int, int]:
        """Merge a backup document into the stored scenes and schedules.

        Entries without a name, or that cannot be read, are skipped. The
        ``lights`` list is informational and ignored.

        Returns:
            (scenes imported, schedules imported)

        Raises:
            ValueError: If ``data`` is not a backup document
        """
        if not isinstance(data, dict):
            raise ValueError("Invalid configuration object")

        imported_scenes = 0
        for entry in _entries(data, "scenes"):
            try:
                await self.scenes.put(Scene.from_dict(entry))
                imported_scenes += 1
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping scene {entry.get('name')!r}: {e}")

        imported_schedules = 0
        for entry in _entries(data, "schedules"):
            try:
                await self.schedules.put(Schedule.from_dict(entry))
                imported_schedules += 1
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping schedule {entry.get('name')!r}: {e}")

        logger.info(
            f"Configuration imported: {imported_scenes} scenes, "
            f"{imported_schedules} schedules"
        )
        return imported_scenes, imported_schedules

    async def close(self) -> None:
        """Stop schedules and background work, then close the transport."""
        await self.schedules.shutdown()
        for task in list(self._background):
            task.cancel()
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
        self.correlation.fail_all("session closed")
        await self.transport.close()

    def _spawn(self, coro: Any) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)


def _entries(data: dict[str, Any], key: str) -> list[dict[str, Any]]:
    entries = data.get(key)
    if not isinstance(entries, list):
        return []
    return [entry for entry in entries if isinstance(entry, dict) and entry.get("name")]
