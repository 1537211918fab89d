"""Scheduling module for rvlights."""

from scheduling.scheduler import ScheduleEngine, due_events, next_occurrence

__all__ = ["ScheduleEngine", "due_events", "next_occurrence"]
