"""Event plumbing and the preview state machine."""

from .dispatcher import HostEventDispatcher
from .events import EventBus
from .scheduler import SchedulerPhase, UpdateScheduler

__all__ = ["EventBus", "HostEventDispatcher", "SchedulerPhase", "UpdateScheduler"]
