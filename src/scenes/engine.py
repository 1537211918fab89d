"""Scene snapshot engine: capture and re-apply device levels."""

import logging
from datetime import datetime

from devices.control import LightControl
from devices.registry import DeviceRegistry
from models.scene import Scene, SceneMember, validate_scene_name
from persistence import StateStore
from utils.errors import (
    CorrelationTimeout,
    DeviceParseError,
    EmptySceneError,
    NotConnectedError,
)

logger = logging.getLogger(__name__)


class SceneEngine:
    """Saves, loads and deletes named scenes.

    Scenes are copies: later device changes never alter a saved scene, and
    stale members are only removed by an explicit ``prune``.
    """

    def __init__(
        self,
        registry: DeviceRegistry,
        control: LightControl,
        store: StateStore | None = None,
    ):
        self.registry = registry
        self.control = control
        self.store = store
        self._scenes: dict[str, Scene] = {}

    def get(self, name: str) -> Scene | None:
        return self._scenes.get(name)

    def all(self) -> list[Scene]:
        return list(self._scenes.values())

    def __contains__(self, name: object) -> bool:
        return name in self._scenes

    async def save(self, name: str, room_filter: int | None = None) -> Scene:
        """Capture current levels into a scene, replacing any of that name.

        Each light's level is refreshed with a brightness query first; when a
        query fails the cached level is used.

        Raises:
            ValueError: If the name is invalid
            EmptySceneError: If no light matches ``room_filter``
        """
        validate_scene_name(name)

        members = []
        for device in self.registry.by_room(room_filter):
            try:
                await self.control.query_brightness(device.id)
            except (CorrelationTimeout, DeviceParseError, NotConnectedError) as e:
                logger.info(f"Using stored brightness for {device.display_name}: {e}")

            members.append(
                SceneMember(
                    device_id=device.id,
                    display_name=device.display_name,
                    level=device.current_level,
                    room=device.room,
                )
            )

        if not members:
            raise EmptySceneError(name, room_filter)

        scene = Scene(
            name=name,
            members=members,
            room_filter=room_filter,
            created_at=datetime.now(),
        )
        await self.put(scene)
        logger.info(f"Scene {name!r} saved with {len(members)} lights")
        return scene

    async def put(self, scene: Scene) -> None:
        """Store a scene as-is (import path).

        Raises:
            ValueError: If the name is invalid
            EmptySceneError: If the scene has no members
        """
        validate_scene_name(scene.name)
        if not scene.members:
            raise EmptySceneError(scene.name, scene.room_filter)

        self._scenes[scene.name] = scene
        if self.store:
            await self.store.save_scene(scene)

    async def load(self, name: str) -> int | None:
        """Apply a scene's levels in stored order.

        Members whose light is no longer registered are skipped.

        Returns:
            Number of lights set, or None if the scene does not exist
        """
        scene = self._scenes.get(name)
        if scene is None:
            logger.error(f"Scene {name!r} not found")
            return None

        logger.info(f"Loading scene: {name}")
        applied = 0
        for member in scene.members:
            if member.device_id not in self.registry:
                logger.debug(f"Skipping missing light {member.device_id} in {name!r}")
                continue
            if await self.control.set_brightness(member.device_id, member.level):
                applied += 1

        logger.info(f"Scene loaded: {applied}/{len(scene.members)} lights set successfully")
        return applied

    async def delete(self, name: str) -> bool:
        """Delete a scene. Returns True if it existed."""
        if self._scenes.pop(name, None) is None:
            logger.error(f"Scene {name!r} not found for deletion")
            return False
        if self.store:
            await self.store.delete_scene(name)
        logger.info(f"Scene {name!r} deleted")
        return True

    async def prune(self, name: str) -> int | None:
        """Drop members whose light is no longer registered.

        A scene left with no members is deleted.

        Returns:
            Number of members removed, or None if the scene does not exist
        """
        scene = self._scenes.get(name)
        if scene is None:
            return None

        kept = [m for m in scene.members if m.device_id in self.registry]
        removed = len(scene.members) - len(kept)
        if removed == 0:
            return 0

        if not kept:
            await self.delete(name)
        else:
            scene.members = kept
            await self.put(scene)
        logger.info(f"Pruned {removed} stale lights from scene {name!r}")
        return removed

    def restore(self, scenes: list[Scene]) -> None:
        """Replace in-memory scenes with ones loaded from storage."""
        self._scenes = {scene.name: scene for scene in scenes}
