"""Scene snapshots for rvlights."""

from scenes.engine import SceneEngine

__all__ = ["SceneEngine"]
