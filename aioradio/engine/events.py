"""Single-slot, latest-value broadcast of player events."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from contextlib import suppress

from aioradio.models.events import PlayerEvent

logger = logging.getLogger(__name__)

# Callback invoked synchronously for every published event.
EventCallback = Callable[[PlayerEvent], None]


class EventBus:
    """
    Hold the most recent PlayerEvent and wake up subscribers when it changes.

    Only the latest event is retained. A slow subscriber may miss intermediate
    events but always observes the newest one. publish() must be called from
    the event loop that subscribers wait on.
    """

    def __init__(self) -> None:
        """Create an empty bus."""
        self._latest: PlayerEvent | None = None
        self._version = 0
        self._changed = asyncio.Event()
        self._listeners: list[EventCallback] = []

    @property
    def latest(self) -> PlayerEvent | None:
        """Return the most recently published event."""
        return self._latest

    @property
    def version(self) -> int:
        """Number of events published so far."""
        return self._version

    def publish(self, event: PlayerEvent) -> None:
        """Replace the current event and notify subscribers and listeners."""
        self._latest = event
        self._version += 1
        changed, self._changed = self._changed, asyncio.Event()
        changed.set()
        logger.debug("Event: %s", event)
        for callback in list(self._listeners):
            try:
                callback(event)
            except Exception:
                logger.exception("Error in event listener")

    def subscribe(self) -> EventSubscription:
        """Return a subscription that starts at the current event."""
        return EventSubscription(self)

    def add_listener(self, callback: EventCallback) -> Callable[[], None]:
        """Register a callback invoked for every published event.

        Returns:
            A function that removes this listener when called.
        """
        self._listeners.append(callback)

        def _remove() -> None:
            with suppress(ValueError):
                self._listeners.remove(callback)

        return _remove

    async def _wait_changed(self, seen_version: int) -> None:
        while self._version == seen_version:
            await self._changed.wait()


class EventSubscription:
    """Async iterator over the latest events of an EventBus."""

    def __init__(self, bus: EventBus) -> None:
        """Subscribe to bus; the current event (if any) is delivered first."""
        self._bus = bus
        self._seen_version = 0

    @property
    def pending(self) -> bool:
        """True if an event newer than the last received one is available."""
        return self._bus.version != self._seen_version

    async def next(self) -> PlayerEvent:
        """Wait for and return the newest unseen event."""
        await self._bus._wait_changed(self._seen_version)  # noqa: SLF001
        self._seen_version = self._bus.version
        event = self._bus.latest
        assert event is not None
        return event

    def __aiter__(self) -> AsyncIterator[PlayerEvent]:
        """Iterate over events until the consumer stops."""
        return self

    async def __anext__(self) -> PlayerEvent:
        """Return the next event."""
        return await self.next()
