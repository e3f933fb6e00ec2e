"""Async event bus for round lifecycle notifications."""

from typing import Awaitable, Callable

from loguru import logger

from lorekeeper.bus.events import RoundCompleted

RoundCallback = Callable[[RoundCompleted], Awaitable[None]]


class EventBus:
    """
    Delivers round-completed events to subscribers.

    Subscribers are awaited one at a time in registration order. A failing
    subscriber is logged and does not stop delivery to the rest.
    """

    def __init__(self):
        self._round_subscribers: list[RoundCallback] = []

    def subscribe(self, callback: RoundCallback) -> None:
        """Register a coroutine function called for every completed round."""
        self._round_subscribers.append(callback)

    def unsubscribe(self, callback: RoundCallback) -> None:
        """Remove a previously registered callback (no-op if unknown)."""
        if callback in self._round_subscribers:
            self._round_subscribers.remove(callback)

    @property
    def subscriber_count(self) -> int:
        return len(self._round_subscribers)

    async def publish_round_completed(self, event: RoundCompleted) -> None:
        """Publish a completed round to every subscriber."""
        logger.debug(f"Round {event.round_number} completed in scene {event.scene_id}")
        for callback in list(self._round_subscribers):
            try:
                await callback(event)
            except Exception as e:
                logger.error(f"Error dispatching round {event.round_number} of scene {event.scene_id}: {e}")
