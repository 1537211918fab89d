"""CLI entry point for rvlights."""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any

from models.schedule import WEEKDAY_TAGS, ScheduleAction


def main() -> None:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="rvlights",
        description="rvlights - Coach lighting control over the controller WebSocket",
    )
    parser.add_argument(
        "--config-dir",
        type=str,
        help="Path to config directory",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # serve command
    subparsers.add_parser("serve", help="Run the lighting service with schedules")

    # discover command
    subparsers.add_parser("discover", help="Discover lights on the controller")

    # set command
    set_parser = subparsers.add_parser("set", help="Set a light's brightness")
    set_parser.add_argument("device", type=int, help="Light id")
    set_parser.add_argument("level", type=float, help="Brightness 0-100")

    # get command
    get_parser = subparsers.add_parser("get", help="Query a light's brightness")
    get_parser.add_argument("device", type=int, help="Light id")

    # scene command
    scene_parser = subparsers.add_parser("scene", help="Manage scenes")
    scene_subparsers = scene_parser.add_subparsers(dest="scene_action", help="Scene action")

    scene_subparsers.add_parser("list", help="List saved scenes")

    scene_save = scene_subparsers.add_parser("save", help="Save current levels as a scene")
    scene_save.add_argument("name", type=str, help="Scene name")
    scene_save.add_argument(
        "--room",
        type=int,
        help="Only capture lights in this room code",
    )

    scene_load = scene_subparsers.add_parser("load", help="Apply a saved scene")
    scene_load.add_argument("name", type=str, help="Scene name")

    scene_delete = scene_subparsers.add_parser("delete", help="Delete a scene")
    scene_delete.add_argument("name", type=str, help="Scene name")

    scene_prune = scene_subparsers.add_parser(
        "prune", help="Drop lights that are no longer discovered from a scene"
    )
    scene_prune.add_argument("name", type=str, help="Scene name")

    # schedule command
    schedule_parser = subparsers.add_parser("schedule", help="Manage schedules")
    schedule_subparsers = schedule_parser.add_subparsers(
        dest="schedule_action", help="Schedule action"
    )

    schedule_subparsers.add_parser("list", help="List schedules")

    schedule_create = schedule_subparsers.add_parser("create", help="Create or replace a schedule")
    schedule_create.add_argument("name", type=str, help="Schedule name")
    schedule_create.add_argument(
        "--event",
        action="append",
        required=True,
        metavar="SPEC",
        help=(
            'Event as "HH:MM ACTION [SCENE] [days=mon,tue,...]" with ACTION one of '
            "load_scene, lights_on, lights_off (repeatable)"
        ),
    )

    for action in ("enable", "disable", "delete"):
        action_parser = schedule_subparsers.add_parser(action, help=f"{action.capitalize()} a schedule")
        action_parser.add_argument("name", type=str, help="Schedule name")

    # export/import commands
    export_parser = subparsers.add_parser("export", help="Export scenes and schedules to a file")
    export_parser.add_argument("file", type=str, help="Output JSON file ('-' for stdout)")
    export_parser.add_argument(
        "--with-lights",
        action="store_true",
        help="Connect and discover so the export includes the light list",
    )

    import_parser = subparsers.add_parser("import", help="Import scenes and schedules from a file")
    import_parser.add_argument("file", type=str, help="JSON file produced by export")

    # config command
    config_parser = subparsers.add_parser("config", help="Configuration utilities")
    config_subparsers = config_parser.add_subparsers(dest="config_action", help="Config action")
    config_subparsers.add_parser("validate", help="Validate configuration")

    args = parser.parse_args()
    config_dir = Path(args.config_dir) if args.config_dir else None

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    if args.command == "serve":
        from main import main as serve_main
        try:
            asyncio.run(serve_main(config_dir))
        except KeyboardInterrupt:
            pass
        return

    if args.command == "config":
        if args.config_action is None:
            config_parser.print_help()
            sys.exit(1)
        sys.exit(0 if validate_config(config_dir) else 1)

    if args.command == "scene" and args.scene_action is None:
        scene_parser.print_help()
        sys.exit(1)
    if args.command == "schedule" and args.schedule_action is None:
        schedule_parser.print_help()
        sys.exit(1)

    sys.exit(asyncio.run(run_command(args, config_dir)))


def parse_event_spec(spec: str) -> dict[str, Any]:
    """Parse "HH:MM ACTION [SCENE] [days=mon,tue]" into an event dict.

    Raises:
        ValueError: If the event text is malformed
    """
    parts = spec.split()
    if len(parts) < 2:
        raise ValueError(f"Invalid event {spec!r}: expected 'HH:MM ACTION ...'")

    event: dict[str, Any] = {"time": parts[0], "action": parts[1]}
    actions = {a.value for a in ScheduleAction}
    if event["action"] not in actions:
        raise ValueError(f"Invalid action {event['action']!r}: expected one of {sorted(actions)}")

    scene_words = []
    for part in parts[2:]:
        if part.startswith("days="):
            event["days"] = [d for d in part[len("days="):].split(",") if d]
        else:
            scene_words.append(part)

    if scene_words:
        event["scene"] = " ".join(scene_words)
    if event["action"] == ScheduleAction.LOAD_SCENE.value and "scene" not in event:
        raise ValueError(f"Invalid event {spec!r}: load_scene needs a scene name")
    return event


async def run_command(args: argparse.Namespace, config_dir: Path | None) -> int:
    """Run a one-shot command. Returns the process exit code."""
    from config import load_config
    from main import configure_logging, create_session, open_session
    from persistence import StateStore
    from utils.errors import classify_exception

    try:
        config = load_config(config_dir)
    except Exception as e:
        print(f"Error: Failed to load configuration: {e}", file=sys.stderr)
        return 1
    configure_logging(config)
    store = StateStore(config.storage.db_path)
    await store.initialize()

    needs_controller = (
        args.command in ("discover", "set", "get")
        or (args.command == "scene" and args.scene_action in ("save", "load", "prune"))
        or (args.command == "export" and args.with_lights)
    )

    session = None
    try:
        if needs_controller:
            session = await open_session(config, store)
        else:
            session = create_session(config, store)
            await session.restore()
        return await dispatch(args, session)
    except Exception as e:
        error = classify_exception(e, getattr(args, "device", None))
        print(f"Error: {error.message}", file=sys.stderr)
        if error.recovery:
            print(f"  {error.recovery}", file=sys.stderr)
        return 1
    finally:
        if session is not None:
            await session.close()
        await store.close()


async def dispatch(args: argparse.Namespace, session: Any) -> int:
    """Execute a parsed command against a ready session."""
    if args.command == "discover":
        print_lights(session)
        return 0

    if args.command == "set":
        if not await session.control.set_brightness(args.device, args.level):
            raise KeyError(f"light {args.device}")
        device = session.registry.get(args.device)
        print(f"{device.display_name}: {device.current_level}%")
        return 0

    if args.command == "get":
        level = await session.control.query_brightness(args.device)
        print(f"{session.registry.get(args.device).display_name}: {level}%")
        return 0

    if args.command == "scene":
        return await run_scene_command(args, session)

    if args.command == "schedule":
        return await run_schedule_command(args, session)

    if args.command == "export":
        document = json.dumps(session.export_config(), indent=2)
        if args.file == "-":
            print(document)
        else:
            Path(args.file).write_text(document + "\n")
            print(f"Exported to {args.file}")
        return 0

    if args.command == "import":
        data = json.loads(Path(args.file).read_text())
        scenes, schedules = await session.import_config(data)
        print(f"Imported {scenes} scenes and {schedules} schedules")
        return 0

    return 1


async def run_scene_command(args: argparse.Namespace, session: Any) -> int:
    """Run scene commands."""
    scenes = session.scenes

    if args.scene_action == "list":
        if not scenes.all():
            print("No scenes saved")
        for scene in scenes.all():
            where = "all rooms" if scene.room_filter is None else f"room {scene.room_filter}"
            print(f"{scene.name}: {len(scene.members)} lights ({where})")
        return 0

    if args.scene_action == "save":
        scene = await scenes.save(args.name, args.room)
        print(f"Saved scene {scene.name!r} with {len(scene.members)} lights")
        return 0

    if args.scene_action == "load":
        applied = await scenes.load(args.name)
        if applied is None:
            raise KeyError(f"scene {args.name}")
        total = len(scenes.get(args.name).members)
        print(f"Loaded scene {args.name!r}: {applied}/{total} lights set")
        return 0 if applied == total else 2

    if args.scene_action == "delete":
        if not await scenes.delete(args.name):
            raise KeyError(f"scene {args.name}")
        print(f"Deleted scene {args.name!r}")
        return 0

    if args.scene_action == "prune":
        removed = await scenes.prune(args.name)
        if removed is None:
            raise KeyError(f"scene {args.name}")
        print(f"Removed {removed} stale lights from {args.name!r}")
        return 0

    return 1


async def run_schedule_command(args: argparse.Namespace, session: Any) -> int:
    """Run schedule commands."""
    from scheduling.scheduler import humanize_time_until

    schedules = session.schedules

    if args.schedule_action == "list":
        if not schedules.all():
            print("No schedules saved")
        for schedule in schedules.all():
            state = "enabled" if schedule.enabled else "disabled"
            next_run = schedules.next_run(schedule.name)
            upcoming = f", next {humanize_time_until(next_run)}" if next_run else ""
            print(f"{schedule.name} ({state}{upcoming})")
            for event in schedule.events:
                days = "daily" if set(event.days) == set(WEEKDAY_TAGS) else ",".join(event.days)
                target = f" {event.scene}" if event.scene else ""
                print(f"  {event.time} {event.action.value}{target} [{days}]")
        return 0

    if args.schedule_action == "create":
        events = [parse_event_spec(spec) for spec in args.event]
        schedule = await schedules.create(args.name, events)
        print(f"Saved schedule {schedule.name!r} with {len(schedule.events)} events")
        return 0

    if args.schedule_action in ("enable", "disable"):
        if not await schedules.set_enabled(args.name, args.schedule_action == "enable"):
            raise KeyError(f"schedule {args.name}")
        print(f"Schedule {args.name!r} {args.schedule_action}d")
        return 0

    if args.schedule_action == "delete":
        if not await schedules.delete(args.name):
            raise KeyError(f"schedule {args.name}")
        print(f"Deleted schedule {args.name!r}")
        return 0

    return 1


def print_lights(session: Any) -> None:
    """Print discovered lights grouped by room."""
    devices = session.registry.all()
    print(f"Found {len(devices)} lights")
    by_room: dict[str, list] = {}
    for device in devices:
        by_room.setdefault(device.room_name, []).append(device)
    for room, room_devices in by_room.items():
        print(f"\n{room}:")
        for device in sorted(room_devices, key=lambda d: d.id):
            kind = "dimmer" if device.is_dimmer else "switch"
            print(f"  [{device.id:3d}] {device.display_name} ({kind}, {device.current_level}%)")


def validate_config(config_dir: Path | None = None) -> bool:
    """Validate the configuration file.

    Returns:
        True if valid, False otherwise
    """
    from pydantic import ValidationError

    from config import find_config_dir, load_config

    cfg_path = config_dir or find_config_dir()
    print(f"Validating configuration in: {cfg_path}")
    print()

    config_file = cfg_path / "config.yaml"
    if not config_file.exists():
        print(f"! config.yaml not found at {config_file}, using defaults")
    else:
        print("✓ Found config.yaml")

    try:
        config = load_config(cfg_path)
    except ValidationError as e:
        print(f"✗ Invalid configuration:\n{e}")
        return False
    except Exception as e:
        print(f"✗ Could not read configuration: {e}")
        return False

    print(f"✓ Configuration is valid")
    print(f"  Controller: {config.websocket_url}")
    print(f"  PIN: {'configured' if config.authentication.pin else 'not set'}")
    print(f"  Rooms: {len(config.rooms)}")
    print(f"  Schedules to activate: {', '.join(config.scheduling.activate) or 'none'}")
    return True


if __name__ == "__main__":
    main()
