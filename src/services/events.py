"""In-process change signals used to tell sibling views to refetch."""

import asyncio
from typing import Awaitable, Callable, Optional, Union

from src.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)

OFFERS_CHANGED = "offers-changed"
SAVES_CHANGED = "saves-changed"
USERS_CHANGED = "users-changed"

Listener = Callable[[], Union[None, Awaitable[None]]]


class EventBus:
    """Named signals without payloads. Nothing is persisted or sent over the network."""

    def __init__(self):
        self.listeners: dict[str, list[Listener]] = {}

    def subscribe(self, name: str, listener: Listener) -> Callable[[], None]:
        """Register a listener and return a function that removes it."""
        self.listeners.setdefault(name, []).append(listener)

        def unsubscribe() -> None:
            handlers = self.listeners.get(name, [])
            if listener in handlers:
                handlers.remove(listener)

        return unsubscribe

    async def dispatch(self, name: str) -> int:
        """Invoke every listener for ``name``; return how many ran successfully.

        A failing listener is logged and does not stop the others.
        """
        succeeded = 0
        for listener in list(self.listeners.get(name, [])):
            try:
                result = listener()
                if asyncio.iscoroutine(result):
                    await result
                succeeded += 1
            except Exception as e:
                logger.error(
                    "Event listener failed",
                    event_name=name,
                    error=str(e),
                    exc_info=True
                )
        logger.debug("Event dispatched", event_name=name, listeners=succeeded)
        return succeeded


_event_bus: Optional[EventBus] = None


def get_event_bus() -> EventBus:
    """Get or create the process-wide event bus."""
    global _event_bus
    if _event_bus is None:
        _event_bus = EventBus()
    return _event_bus
