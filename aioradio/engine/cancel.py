"""Cooperative cancellation shared between asyncio tasks and worker threads."""

from __future__ import annotations

import asyncio
import threading
from collections.abc import Awaitable, Callable
from contextlib import suppress
from typing import TypeVar

T = TypeVar("T")


class CancellationToken:
    """
    A one-shot cancellation signal.

    The token can be checked, awaited from any event loop and waited on from
    plain threads. Child tokens created with child() are cancelled together
    with their parent, but cancelling a child leaves the parent untouched.
    Cancellation may be requested from any thread.
    """

    def __init__(self) -> None:
        """Create a token that is not cancelled."""
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: list[Callable[[], None]] = []
        self._detach: Callable[[], None] | None = None

    @property
    def cancelled(self) -> bool:
        """Return True once cancel() has been called."""
        return self._event.is_set()

    def cancel(self) -> None:
        """Cancel this token and all of its children. Idempotent."""
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks, self._callbacks = self._callbacks, []
            detach, self._detach = self._detach, None
        if detach is not None:
            detach()
        for callback in callbacks:
            callback()

    def child(self) -> CancellationToken:
        """Create a token that is cancelled whenever this one is."""
        child = CancellationToken()
        # Cancelling the child removes it from the parent.
        child._detach = self._add_callback(child.cancel)
        return child

    def raise_if_cancelled(self) -> None:
        """Raise asyncio.CancelledError if the token has been cancelled."""
        if self.cancelled:
            raise asyncio.CancelledError

    def wait_blocking(self, timeout: float | None = None) -> bool:
        """Block the calling thread until cancelled or the timeout passed.

        Returns:
            True if the token is cancelled.
        """
        return self._event.wait(timeout)

    async def wait(self) -> None:
        """Wait until the token is cancelled."""
        if self.cancelled:
            return
        loop = asyncio.get_running_loop()
        waiter: asyncio.Future[None] = loop.create_future()

        def _wake() -> None:
            if not waiter.done():
                waiter.set_result(None)

        remove = self._add_callback(lambda: loop.call_soon_threadsafe(_wake))
        try:
            await waiter
        finally:
            remove()

    async def sleep(self, delay: float) -> bool:
        """Sleep for delay seconds unless cancelled first.

        Returns:
            True if the full delay elapsed, False if the token was cancelled.
        """
        if self.cancelled:
            return False
        with suppress(TimeoutError):
            await asyncio.wait_for(self.wait(), timeout=delay)
        return not self.cancelled

    async def guard(self, awaitable: Awaitable[T]) -> T | None:
        """Await awaitable, abandoning it when the token is cancelled.

        Returns:
            The awaitable's result, or None if the token fired first.
        """
        task = asyncio.ensure_future(awaitable)
        if not self.cancelled:
            waiter = asyncio.ensure_future(self.wait())
            try:
                await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
            except asyncio.CancelledError:
                task.cancel()
                raise
            finally:
                waiter.cancel()
        if task.done() and not task.cancelled():
            return task.result()
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task
        return None

    def _add_callback(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register callback to run on cancellation and return its remover."""
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)

                def _remove() -> None:
                    with self._lock, suppress(ValueError):
                        self._callbacks.remove(callback)

                return _remove
        callback()
        return lambda: None
