"""Event bus for scene round notifications."""

from lorekeeper.bus.events import RoundCompleted
from lorekeeper.bus.queue import EventBus

__all__ = ["EventBus", "RoundCompleted"]
