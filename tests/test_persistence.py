"""Tests for persistence layer."""

from datetime import datetime
from pathlib import Path

import pytest

from models.scene import Scene, SceneMember
from models.schedule import Schedule, ScheduleAction, ScheduleEvent
from persistence import StateStore
from scenes.engine import SceneEngine


def make_scene(name: str, levels: list[int]) -> Scene:
    return Scene(
        name=name,
        members=[
            SceneMember(device_id=i, display_name=f"Light {i}", level=level, room=0)
            for i, level in enumerate(levels, start=1)
        ],
        created_at=datetime(2024, 1, 15, 20, 0),
    )


class TestStateStore:
    """Tests for StateStore."""

    @pytest.fixture
    async def store(self, tmp_path: Path) -> StateStore:
        """Create a test state store."""
        db_path = tmp_path / "test_state.db"
        store = StateStore(db_path)
        await store.initialize()
        yield store
        await store.close()

    @pytest.mark.asyncio
    async def test_initialize(self, store):
        """Test store initialization."""
        # Store should be ready to use
        assert store._db is not None

    @pytest.mark.asyncio
    async def test_save_and_load_scene(self, store):
        scene = make_scene("Evening", [80, 0, 40])

        await store.save_scene(scene)
        loaded = await store.load_scenes()

        assert loaded == [scene]

    @pytest.mark.asyncio
    async def test_member_order_preserved(self, store):
        scene = make_scene("Ordered", [10, 20, 30, 40, 50])
        scene.members.reverse()

        await store.save_scene(scene)
        loaded = (await store.load_scenes())[0]

        assert [m.device_id for m in loaded.members] == [5, 4, 3, 2, 1]

    @pytest.mark.asyncio
    async def test_overwrite_keeps_position(self, store):
        await store.save_scene(make_scene("First", [1]))
        await store.save_scene(make_scene("Second", [2]))
        await store.save_scene(make_scene("First", [99]))

        loaded = await store.load_scenes()

        assert [s.name for s in loaded] == ["First", "Second"]
        assert loaded[0].members[0].level == 99

    @pytest.mark.asyncio
    async def test_delete_scene(self, store):
        await store.save_scene(make_scene("Evening", [50]))

        assert await store.delete_scene("Evening") is True
        assert await store.delete_scene("Evening") is False
        assert await store.load_scenes() == []

    @pytest.mark.asyncio
    async def test_save_and_load_schedule(self, store):
        schedule = Schedule(
            name="Weekdays",
            events=[
                ScheduleEvent(time="06:30", action=ScheduleAction.LIGHTS_ON,
                              days=("mon", "tue", "wed", "thu", "fri")),
                ScheduleEvent(time="22:00", action=ScheduleAction.LOAD_SCENE, scene="Night"),
            ],
            enabled=False,
            created_at=datetime(2024, 1, 15, 9, 0),
        )

        await store.save_schedule(schedule)
        loaded = await store.load_schedules()

        assert loaded == [schedule]

    @pytest.mark.asyncio
    async def test_delete_schedule(self, store):
        await store.save_schedule(Schedule(name="Temp"))

        assert await store.delete_schedule("Temp") is True
        assert await store.load_schedules() == []

    @pytest.mark.asyncio
    async def test_unreadable_rows_are_skipped(self, store):
        await store.save_scene(make_scene("Good", [5]))
        await store._db.execute(
            "INSERT INTO scenes (name, scene_json, updated_at) VALUES (?, ?, ?)",
            ("Broken", "{not json", "2024-01-15"),
        )
        await store._db.execute(
            "INSERT INTO scenes (name, scene_json, updated_at) VALUES (?, ?, ?)",
            ("NoLights", '{"name": "NoLights", "lights": [{"name": "x"}]}', "2024-01-15"),
        )
        await store._db.commit()

        loaded = await store.load_scenes()

        assert [s.name for s in loaded] == ["Good"]

    @pytest.mark.asyncio
    async def test_survives_reopen(self, tmp_path: Path):
        db_path = tmp_path / "reopen.db"
        store = StateStore(db_path)
        await store.initialize()
        await store.save_scene(make_scene("Kept", [70]))
        await store.close()

        reopened = StateStore(db_path)
        await reopened.initialize()
        try:
            assert [s.name for s in await reopened.load_scenes()] == ["Kept"]
        finally:
            await reopened.close()

    @pytest.mark.asyncio
    async def test_uninitialized_store(self, tmp_path: Path):
        store = StateStore(tmp_path / "never.db")

        assert await store.load_scenes() == []
        with pytest.raises(RuntimeError):
            await store.save_scene(make_scene("Nope", [1]))


class TestSceneEnginePersistence:
    """Scene engine writes through to the store."""

    @pytest.mark.asyncio
    async def test_saved_scene_is_stored(self, populated_session, tmp_path: Path):
        store = StateStore(tmp_path / "scenes.db")
        await store.initialize()
        try:
            engine = SceneEngine(populated_session.registry, populated_session.control, store)
            await engine.save("Living", room_filter=0)

            restored = SceneEngine(populated_session.registry, populated_session.control, store)
            restored.restore(await store.load_scenes())

            assert restored.get("Living") == engine.get("Living")

            await engine.delete("Living")
            assert await store.load_scenes() == []
        finally:
            await store.close()
