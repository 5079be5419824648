from __future__ import annotations

import asyncio
import threading
import time

import pytest

from aioradio.engine.cancel import CancellationToken


def test_child_follows_parent_but_not_the_other_way() -> None:
    parent = CancellationToken()
    child = parent.child()
    sibling = parent.child()

    child.cancel()
    assert child.cancelled
    assert not parent.cancelled
    assert not sibling.cancelled

    parent.cancel()
    assert sibling.cancelled


def test_cancelled_children_are_released_by_parent() -> None:
    parent = CancellationToken()
    for _ in range(50):
        parent.child().cancel()
    survivor = parent.child()

    assert len(parent._callbacks) == 1  # noqa: SLF001

    parent.cancel()
    assert survivor.cancelled
    assert parent._callbacks == []  # noqa: SLF001


def test_child_of_cancelled_token_starts_cancelled() -> None:
    parent = CancellationToken()
    parent.cancel()
    assert parent.child().cancelled


def test_raise_if_cancelled() -> None:
    token = CancellationToken()
    token.raise_if_cancelled()
    token.cancel()
    with pytest.raises(asyncio.CancelledError):
        token.raise_if_cancelled()


def test_wait_blocking_wakes_on_cancel_from_other_thread() -> None:
    token = CancellationToken()
    threading.Timer(0.02, token.cancel).start()
    start = time.monotonic()
    assert token.wait_blocking(5.0)
    assert time.monotonic() - start < 2.0


def test_wait_blocking_times_out() -> None:
    assert not CancellationToken().wait_blocking(0.01)


@pytest.mark.asyncio
async def test_sleep_returns_false_when_cancelled() -> None:
    token = CancellationToken()
    loop = asyncio.get_running_loop()
    loop.call_later(0.02, token.cancel)
    assert not await asyncio.wait_for(token.sleep(10.0), timeout=2.0)


@pytest.mark.asyncio
async def test_sleep_returns_true_after_delay() -> None:
    assert await CancellationToken().sleep(0.01)


@pytest.mark.asyncio
async def test_wait_wakes_on_cancel_from_thread() -> None:
    token = CancellationToken()
    threading.Timer(0.02, token.cancel).start()
    await asyncio.wait_for(token.wait(), timeout=2.0)
    assert token.cancelled


@pytest.mark.asyncio
async def test_guard_returns_result() -> None:
    token = CancellationToken()

    async def _value() -> int:
        await asyncio.sleep(0)
        return 42

    assert await token.guard(_value()) == 42


@pytest.mark.asyncio
async def test_guard_abandons_awaitable_on_cancel() -> None:
    token = CancellationToken()
    started = asyncio.Event()
    abandoned = asyncio.Event()

    async def _forever() -> None:
        started.set()
        try:
            await asyncio.sleep(3600)
        except asyncio.CancelledError:
            abandoned.set()
            raise

    guarded = asyncio.create_task(token.guard(_forever()))
    await started.wait()
    token.cancel()
    assert await asyncio.wait_for(guarded, timeout=2.0) is None
    assert abandoned.is_set()


@pytest.mark.asyncio
async def test_guard_propagates_errors() -> None:
    token = CancellationToken()

    async def _fail() -> None:
        raise ValueError("boom")

    with pytest.raises(ValueError, match="boom"):
        await token.guard(_fail())


@pytest.mark.asyncio
async def test_guard_does_not_leak_callbacks() -> None:
    token = CancellationToken()
    for _ in range(10):
        await token.guard(asyncio.sleep(0))
    await asyncio.sleep(0.01)
    assert token._callbacks == []  # noqa: SLF001
