"""Schedule engine for executing timed lighting actions.

Each active schedule gets its own evaluator task. Every ``check_interval``
seconds the evaluator compares the wall clock, at minute granularity,
against the schedule's events and dispatches the ones that match.

Firing is best-effort: a tick that lands just either side of a minute
boundary, or clock drift, can skip an event for the day, and two ticks in
the same minute fire it twice. ``dedupe_within_minute`` suppresses the
second case; nothing recovers the first.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable

from devices.control import LightControl
from models.schedule import (
    WEEKDAY_TAGS,
    Schedule,
    ScheduleAction,
    ScheduleEvent,
    weekday_tag,
)
from persistence import StateStore
from scenes.engine import SceneEngine

logger = logging.getLogger(__name__)

DEFAULT_CHECK_INTERVAL = 60.0


def due_events(schedule: Schedule, now: datetime) -> list[ScheduleEvent]:
    """Events of ``schedule`` matching the minute and weekday of ``now``."""
    return [event for event in schedule.events if event.matches(now)]


def next_occurrence(event: ScheduleEvent, from_time: datetime | None = None) -> datetime | None:
    """Calculate the next time an event is due after ``from_time``.

    Returns:
        Next occurrence datetime, or None if the event has no days
    """
    if not event.days:
        return None

    now = from_time or datetime.now()
    hour, minute = map(int, event.time.split(":"))

    for days_ahead in range(8):  # Check up to a week ahead
        check_date = now + timedelta(days=days_ahead)
        if weekday_tag(check_date) in event.days:
            next_time = check_date.replace(hour=hour, minute=minute, second=0, microsecond=0)
            if next_time > now:
                return next_time

    return None


@dataclass
class _Evaluator:
    task: asyncio.Task
    stop: asyncio.Event


class ScheduleEngine:
    """Stores schedules and runs their evaluators.

    Active and enabled are independent: an active schedule has a running
    evaluator; an enabled one is allowed to fire. An active but disabled
    schedule ticks without dispatching anything.
    """

    def __init__(
        self,
        control: LightControl,
        scenes: SceneEngine,
        store: StateStore | None = None,
        check_interval: float = DEFAULT_CHECK_INTERVAL,
        dedupe_within_minute: bool = False,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """Initialize schedule engine.

        Args:
            control: Light control for all-on/all-off actions
            scenes: Scene engine for load_scene actions
            store: Optional persistence for schedules
            check_interval: Seconds between evaluator ticks
            dedupe_within_minute: Fire each event at most once per minute
            clock: Source of local wall-clock time
        """
        self.control = control
        self.scenes = scenes
        self.store = store
        self.check_interval = check_interval
        self.dedupe_within_minute = dedupe_within_minute
        self.clock = clock

        self._schedules: dict[str, Schedule] = {}
        self._evaluators: dict[str, _Evaluator] = {}
        self._retired: set[asyncio.Task] = set()
        self._last_fired: dict[tuple[str, int], str] = {}

        self._action_handlers: dict[ScheduleAction, Callable[[ScheduleEvent], Any]] = {
            ScheduleAction.LOAD_SCENE: self._execute_load_scene,
            ScheduleAction.LIGHTS_ON: self._execute_lights_on,
            ScheduleAction.LIGHTS_OFF: self._execute_lights_off,
        }

    def get(self, name: str) -> Schedule | None:
        return self._schedules.get(name)

    def all(self) -> list[Schedule]:
        return list(self._schedules.values())

    def is_active(self, name: str) -> bool:
        return name in self._evaluators

    @property
    def active_names(self) -> list[str]:
        return list(self._evaluators)

    async def create(self, name: str, events: list[ScheduleEvent | dict[str, Any]]) -> Schedule:
        """Create or replace a schedule, enabled.

        Events may be ScheduleEvent objects or their dict form. A running
        evaluator for the same name picks up the new events on its next tick.
        """
        if not name:
            raise ValueError("Schedule name must be a non-empty string")

        schedule = Schedule(
            name=name,
            events=[
                event if isinstance(event, ScheduleEvent) else ScheduleEvent.from_dict(event)
                for event in events
            ],
            enabled=True,
        )
        await self.put(schedule)
        logger.info(f"Schedule {name!r} created with {len(schedule.events)} events")
        return schedule

    async def put(self, schedule: Schedule) -> None:
        """Store a schedule as-is (import path)."""
        self._schedules[schedule.name] = schedule
        self._forget_fired(schedule.name)
        if self.store:
            await self.store.save_schedule(schedule)

    async def set_enabled(self, name: str, enabled: bool) -> bool:
        """Enable or disable a schedule. False if it does not exist."""
        schedule = self._schedules.get(name)
        if schedule is None:
            return False
        schedule.enabled = enabled
        if self.store:
            await self.store.save_schedule(schedule)
        logger.info(f"Schedule {name!r} {'enabled' if enabled else 'disabled'}")
        return True

    async def delete(self, name: str) -> bool:
        """Deactivate and remove a schedule. False if it does not exist."""
        if name not in self._schedules:
            return False
        await self.deactivate(name)
        del self._schedules[name]
        self._forget_fired(name)
        if self.store:
            await self.store.delete_schedule(name)
        logger.info(f"Schedule {name!r} deleted")
        return True

    async def activate(self, name: str) -> bool:
        """Start the schedule's evaluator; the first tick runs immediately.

        Returns:
            False if the schedule does not exist, True otherwise (including
            when it was already active)
        """
        if name not in self._schedules:
            logger.error(f"Schedule {name!r} not found")
            return False

        if name in self._evaluators:
            logger.info(f"Schedule {name!r} already active")
            return True

        stop = asyncio.Event()
        task = asyncio.create_task(self._evaluator_loop(name, stop))
        self._evaluators[name] = _Evaluator(task=task, stop=stop)
        logger.info(f"Schedule {name!r} activated")
        return True

    async def deactivate(self, name: str) -> bool:
        """Stop future ticks of the schedule's evaluator.

        A dispatch already under way is allowed to finish.

        Returns:
            False if the schedule was not active
        """
        evaluator = self._evaluators.pop(name, None)
        if evaluator is None:
            return False

        evaluator.stop.set()
        if not evaluator.task.done():
            self._retired.add(evaluator.task)
            evaluator.task.add_done_callback(self._retired.discard)
        logger.info(f"Schedule {name!r} deactivated")
        return True

    async def shutdown(self) -> None:
        """Stop every evaluator and wait for them to finish."""
        for name in list(self._evaluators):
            await self.deactivate(name)
        if self._retired:
            await asyncio.gather(*self._retired, return_exceptions=True)
        logger.info("Schedule engine stopped")

    async def _evaluator_loop(self, name: str, stop: asyncio.Event) -> None:
        """Tick on a fixed period until stopped."""
        loop = asyncio.get_running_loop()
        next_tick = loop.time()
        while not stop.is_set():
            try:
                await self.tick(name)
            except Exception as e:
                logger.error(f"Schedule {name!r} evaluation error: {e}")

            # Ticks that overran the period skip the missed slots
            next_tick += self.check_interval
            while next_tick <= loop.time():
                next_tick += self.check_interval

            try:
                async with asyncio.timeout_at(next_tick):
                    await stop.wait()
            except TimeoutError:
                pass

    async def tick(self, name: str, now: datetime | None = None) -> int:
        """Evaluate one schedule against the clock.

        Matching events dispatch sequentially in list order. A failing
        action is logged and does not stop the remaining ones.

        Returns:
            Number of actions dispatched
        """
        schedule = self._schedules.get(name)
        if schedule is None or not schedule.enabled:
            return 0

        now = now or self.clock()
        current_time = now.strftime("%H:%M")
        minute_key = now.strftime("%Y-%m-%d %H:%M")
        dispatched = 0

        for position, event in enumerate(schedule.events):
            if not event.matches(now):
                continue

            key = (name, position)
            if self.dedupe_within_minute and self._last_fired.get(key) == minute_key:
                logger.debug(f"Event {position} of {name!r} already fired at {current_time}")
                continue
            self._last_fired[key] = minute_key

            logger.info(f"Triggering scheduled event: {event.action.value} at {current_time}")
            handler = self._action_handlers.get(event.action)
            if handler is None:
                logger.error(f"Unknown schedule action: {event.action}")
                continue

            try:
                await handler(event)
                dispatched += 1
            except Exception as e:
                logger.error(f"Scheduled {event.action.value} in {name!r} failed: {e}")

        return dispatched

    def next_run(self, name: str, from_time: datetime | None = None) -> datetime | None:
        """Earliest upcoming event time for a schedule."""
        schedule = self._schedules.get(name)
        if schedule is None:
            return None
        upcoming = [
            t for t in (next_occurrence(e, from_time or self.clock()) for e in schedule.events)
            if t is not None
        ]
        return min(upcoming) if upcoming else None

    def restore(self, schedules: list[Schedule]) -> None:
        """Replace in-memory schedules with ones loaded from storage."""
        self._schedules = {schedule.name: schedule for schedule in schedules}
        self._last_fired.clear()

    def _forget_fired(self, name: str) -> None:
        for key in [k for k in self._last_fired if k[0] == name]:
            del self._last_fired[key]

    # Action handlers
    async def _execute_load_scene(self, event: ScheduleEvent) -> None:
        """Apply the event's scene."""
        if not event.scene:
            logger.warning("load_scene event without a scene name")
            return
        applied = await self.scenes.load(event.scene)
        if applied is None:
            raise ValueError(f"Scene not found: {event.scene}")

    async def _execute_lights_on(self, event: ScheduleEvent) -> None:
        await self.control.all_on()

    async def _execute_lights_off(self, event: ScheduleEvent) -> None:
        await self.control.all_off()


def humanize_time_until(moment: datetime, now: datetime | None = None) -> str:
    """Convert a future time to a human-readable offset like "in 2 hours"."""
    delta = moment - (now or datetime.now())

    if delta.total_seconds() < 0:
        return "overdue"

    minutes = int(delta.total_seconds() / 60)
    hours = minutes // 60
    days = hours // 24

    if days > 0:
        return f"in {days} day{'s' if days != 1 else ''}"
    elif hours > 0:
        return f"in {hours} hour{'s' if hours != 1 else ''}"
    elif minutes > 0:
        return f"in {minutes} minute{'s' if minutes != 1 else ''}"
    else:
        return "in less than a minute"


__all__ = [
    "DEFAULT_CHECK_INTERVAL",
    "ScheduleEngine",
    "WEEKDAY_TAGS",
    "due_events",
    "humanize_time_until",
    "next_occurrence",
]
