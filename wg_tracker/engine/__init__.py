"""Task pipeline: tasks, engine state, execution, persistence and driver loop."""

from wg_tracker.engine.executor import TaskExecutor
from wg_tracker.engine.state import EngineState, StateSnapshot
from wg_tracker.engine.state_manager import StateManager
from wg_tracker.engine.tracker import Tracker

__all__ = ["EngineState", "StateManager", "StateSnapshot", "TaskExecutor", "Tracker"]
