"""Scene and schedule persistence using SQLite."""

import asyncio
import json
import logging
from datetime import datetime
from pathlib import Path

import aiosqlite

from models.scene import Scene
from models.schedule import Schedule

logger = logging.getLogger(__name__)

# Default database path
DEFAULT_DB_PATH = Path.home() / ".local" / "share" / "rvlights" / "lighting.db"


class StateStore:
    """Persistent scene and schedule storage using SQLite.

    Rows hold each object's ``to_dict`` form as JSON, so members and events
    keep their order. Rows come back in insertion order (``rowid``); an
    overwrite keeps the original position.
    """

    def __init__(self, db_path: Path | str | None = None):
        self.db_path = Path(db_path) if db_path else DEFAULT_DB_PATH
        self._db: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Initialize the database and create tables."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._db = await aiosqlite.connect(str(self.db_path))
        self._db.row_factory = aiosqlite.Row

        await self._db.execute("""
            CREATE TABLE IF NOT EXISTS scenes (
                name TEXT PRIMARY KEY,
                scene_json TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)

        await self._db.execute("""
            CREATE TABLE IF NOT EXISTS schedules (
                name TEXT PRIMARY KEY,
                schedule_json TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)

        await self._db.commit()
        logger.info(f"State store initialized at {self.db_path}")

    async def close(self) -> None:
        """Close the database connection."""
        if self._db:
            await self._db.close()
            self._db = None

    async def save_scene(self, scene: Scene) -> None:
        """Insert or overwrite a scene."""
        await self._upsert("scenes", "scene_json", scene.name, scene.to_dict())

    async def delete_scene(self, name: str) -> bool:
        """Delete a scene. Returns True if it existed."""
        return await self._delete("scenes", name)

    async def load_scenes(self) -> list[Scene]:
        """Load every stored scene; unreadable rows are skipped."""
        scenes = []
        for name, data in await self._load_all("scenes", "scene_json"):
            try:
                scenes.append(Scene.from_dict(data))
            except (KeyError, TypeError, ValueError) as e:
                logger.error(f"Skipping unreadable scene {name!r}: {e}")
        return scenes

    async def save_schedule(self, schedule: Schedule) -> None:
        """Insert or overwrite a schedule."""
        await self._upsert(
            "schedules", "schedule_json", schedule.name, schedule.to_dict()
        )

    async def delete_schedule(self, name: str) -> bool:
        """Delete a schedule. Returns True if it existed."""
        return await self._delete("schedules", name)

    async def load_schedules(self) -> list[Schedule]:
        """Load every stored schedule; unreadable rows are skipped."""
        schedules = []
        for name, data in await self._load_all("schedules", "schedule_json"):
            try:
                schedules.append(Schedule.from_dict(data))
            except (KeyError, TypeError, ValueError) as e:
                logger.error(f"Skipping unreadable schedule {name!r}: {e}")
        return schedules

    async def _upsert(self, table: str, column: str, name: str, data: dict) -> None:
        if not self._db:
            raise RuntimeError("Database not initialized")

        now = datetime.now().isoformat()
        async with self._lock:
            await self._db.execute(
                f"""
                INSERT INTO {table} (name, {column}, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(name) DO UPDATE SET
                    {column} = excluded.{column},
                    updated_at = excluded.updated_at
                """,
                (name, json.dumps(data), now),
            )
            await self._db.commit()

    async def _delete(self, table: str, name: str) -> bool:
        if not self._db:
            return False

        async with self._lock:
            cursor = await self._db.execute(
                f"DELETE FROM {table} WHERE name = ?", (name,)
            )
            await self._db.commit()
            return cursor.rowcount > 0

    async def _load_all(self, table: str, column: str) -> list[tuple[str, dict]]:
        if not self._db:
            return []

        rows = []
        async with self._lock:
            async with self._db.execute(
                f"SELECT name, {column} FROM {table} ORDER BY rowid"
            ) as cursor:
                async for row in cursor:
                    try:
                        rows.append((row["name"], json.loads(row[column])))
                    except json.JSONDecodeError as e:
                        logger.error(f"Corrupt {table} row {row['name']!r}: {e}")
        return rows
