"""In-process publish/subscribe channel for lifecycle state changes.

Publishers emit a named event with a payload record; subscribers register
interest by event name. Delivery is sequential in registration order and a
failing subscriber never affects the publisher or the other subscribers.
Events are not persisted or replayed, so subscribers are expected to perform
idempotent refreshes rather than apply deltas.
"""

from __future__ import annotations

import inspect
import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable, Iterable
from typing import Any

from watchparty_stage.services.events import Event

# Configure logger for this module
logger = logging.getLogger(__name__)

Subscriber = Callable[[Event], Awaitable[None] | None]


class EventBus:
    """Named-event dispatcher with per-subscriber failure isolation."""

    def __init__(self) -> None:
        self._subscribers: dict[str, list[Subscriber]] = defaultdict(list)

    def subscribe(self, name: str, handler: Subscriber) -> None:
        """Register ``handler`` for events called ``name``."""
        self._subscribers[name].append(handler)

    def subscribe_many(self, names: Iterable[str], handler: Subscriber) -> None:
        """Register one handler for several event names."""
        for name in names:
            self.subscribe(name, handler)

    def unsubscribe(self, name: str, handler: Subscriber) -> None:
        """Remove a handler; unknown handlers are ignored."""
        handlers = self._subscribers.get(name)
        if handlers and handler in handlers:
            handlers.remove(handler)

    def subscribers(self, name: str) -> list[Subscriber]:
        """Return a copy of the handlers registered for ``name``."""
        return list(self._subscribers.get(name, ()))

    async def publish(self, name: str, payload: Any) -> Event:
        """Deliver an event to every subscriber of ``name``.

        Args:
            name: Event name, e.g. ``session.decided``
            payload: Immutable payload record

        Returns:
            The delivered event envelope
        """
        event = Event(name=name, payload=payload)
        handlers = self.subscribers(name)
        logger.debug("Publishing %s to %d subscriber(s)", name, len(handlers))

        for handler in handlers:
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(
                    "Subscriber %s failed while handling %s",
                    getattr(handler, "__qualname__", repr(handler)),
                    name,
                )

        return event
