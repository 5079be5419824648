from __future__ import annotations

import asyncio

import pytest

from aioradio.engine.events import EventBus
from aioradio.models import ConnectedEvent, ConnectingEvent, PausedEvent, PlayerEvent, StoppedEvent


@pytest.mark.asyncio
async def test_subscriber_receives_current_event_first() -> None:
    bus = EventBus()
    bus.publish(ConnectingEvent(url="http://radio"))

    subscription = bus.subscribe()
    assert subscription.pending
    assert await asyncio.wait_for(subscription.next(), timeout=1.0) == ConnectingEvent(
        url="http://radio"
    )
    assert not subscription.pending


@pytest.mark.asyncio
async def test_slow_subscriber_sees_only_latest() -> None:
    bus = EventBus()
    subscription = bus.subscribe()

    bus.publish(ConnectingEvent(url="http://radio"))
    bus.publish(ConnectedEvent(url="http://radio/stream"))
    bus.publish(PausedEvent())

    assert await asyncio.wait_for(subscription.next(), timeout=1.0) == PausedEvent()
    assert bus.latest == PausedEvent()
    assert bus.version == 3


@pytest.mark.asyncio
async def test_subscriber_waits_for_next_publish() -> None:
    bus = EventBus()
    subscription = bus.subscribe()
    waiter = asyncio.create_task(subscription.next())
    await asyncio.sleep(0)
    assert not waiter.done()

    bus.publish(StoppedEvent())
    assert await asyncio.wait_for(waiter, timeout=1.0) == StoppedEvent()


@pytest.mark.asyncio
async def test_async_iteration() -> None:
    bus = EventBus()
    received: list[PlayerEvent] = []

    async def _consume() -> None:
        async for event in bus.subscribe():
            received.append(event)
            if isinstance(event, StoppedEvent):
                return

    consumer = asyncio.create_task(_consume())
    await asyncio.sleep(0)
    bus.publish(PausedEvent())
    await asyncio.sleep(0)
    bus.publish(StoppedEvent())
    await asyncio.wait_for(consumer, timeout=1.0)
    assert received[-1] == StoppedEvent()


def test_listeners_see_every_event_and_can_be_removed() -> None:
    bus = EventBus()
    seen: list[PlayerEvent] = []
    remove = bus.add_listener(seen.append)

    bus.publish(PausedEvent())
    bus.publish(StoppedEvent())
    remove()
    remove()
    bus.publish(PausedEvent())

    assert seen == [PausedEvent(), StoppedEvent()]


def test_failing_listener_does_not_break_publish() -> None:
    bus = EventBus()
    seen: list[PlayerEvent] = []

    def _broken(event: PlayerEvent) -> None:
        raise RuntimeError("listener bug")

    bus.add_listener(_broken)
    bus.add_listener(seen.append)
    bus.publish(StoppedEvent())

    assert seen == [StoppedEvent()]
    assert bus.latest == StoppedEvent()
