"""Playback sessions: command surface, state machine and reconnect handling."""

from __future__ import annotations

import asyncio
import itertools
import logging
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from functools import partial
from typing import Any

from aiohttp import ClientSession

from aioradio.exceptions import PlaylistError, StreamError
from aioradio.models.config import PlayerConfig
from aioradio.models.events import (
    BufferProgressEvent,
    ConnectedEvent,
    ConnectingEvent,
    ErrorEvent,
    PausedEvent,
    PlayerEvent,
    ResumedEvent,
    StoppedEvent,
)
from aioradio.models.types import (
    CONNECTING,
    PAUSED,
    PLAYING,
    STOPPED,
    PlaybackState,
    PlaybackStateType,
)
from aioradio.playlist import resolve_stream_url
from aioradio.util import format_byte_size

from .backoff import ReconnectPolicy
from .buffer import ByteBuffer
from .cancel import CancellationToken
from .decode import DecodedFrame, DecodePipeline
from .events import EventBus, EventCallback, EventSubscription
from .fetcher import NetworkFetcher
from .sink import AudioSink, PlaybackSink, SinkFactory
from .source import MediaSourceAdapter

logger = logging.getLogger(__name__)

# Timeout for best-effort acquisition of the session lock by pause/resume.
_LOCK_TIMEOUT_S = 0.05
# Poll interval while waiting for the output device to drain its queue.
_SINK_POLL_INTERVAL_S = 0.05


@dataclass(eq=False)
class _Session:
    """Everything owned by one play() call. Replaced wholesale on the next one."""

    generation: int
    """Monotonic id; callbacks of superseded sessions compare against it."""
    url: str
    """URL requested by the caller."""
    token: CancellationToken
    """Cancelled when the session is stopped or superseded."""
    reconnect: ReconnectPolicy
    """Retry counter of this session."""
    state: PlaybackState = CONNECTING
    """Current playback state."""
    stream_url: str | None = None
    """Resolved stream URL, once known."""
    paused: bool = False
    """Pause requested by the caller; survives reconnects until resume()."""
    sink: AudioSink | None = None
    """Output handle, open while an attempt is producing audio."""
    task: asyncio.Task[None] | None = field(default=None, repr=False)
    """Task running the session."""


class RadioPlayer:
    """
    Continuous internet radio player.

    The player owns at most one playback session. Each session resolves the
    station URL, then runs attempts consisting of three concurrent stages:
    an HTTP fetch into a bounded byte buffer, a decoder on a worker thread and
    a bridge that feeds decoded frames to the audio output. Failed attempts are
    retried with a fixed delay until the reconnect ceiling is reached.

    All commands return immediately. They may be called from the event loop or
    from any other thread; off-loop calls are handed to the loop.

    The player must be created within an async context.
    """

    def __init__(
        self,
        *,
        config: PlayerConfig | None = None,
        session: ClientSession | None = None,
        sink_factory: SinkFactory | None = None,
    ) -> None:
        """
        Create a new player.

        Args:
            config: Player configuration, defaults to PlayerConfig().
            session: Optional aiohttp ClientSession. If None, a session is
                created on first use and closed by shutdown().
            sink_factory: Opens the audio output for (sample_rate, channels).
                Defaults to a sounddevice backed PlaybackSink.
        """
        self._loop = asyncio.get_running_loop()
        self._config = config or PlayerConfig()
        self._http = session
        self._owns_session = session is None
        self._sink_factory = sink_factory or PlaybackSink.factory(self._config)
        self._auto_reconnect = self._config.auto_reconnect
        self._lock = threading.Lock()
        self._current: _Session | None = None
        self._generations = itertools.count(1)
        self._tasks: set[asyncio.Task[None]] = set()
        self._events = EventBus()
        self._closed = False

    # Commands

    def play(self, url: str) -> None:
        """Start playing url, replacing the current session if there is one."""
        self._dispatch(self._start_session, url)

    def pause(self) -> None:
        """Pause the output. Does nothing unless playing."""
        self._dispatch(self._pause)

    def resume(self) -> None:
        """Resume the output. Does nothing unless paused."""
        self._dispatch(self._resume)

    def stop(self) -> None:
        """Stop playback and release the output device."""
        self._dispatch(self._stop)

    def set_auto_reconnect(self, enabled: bool) -> None:
        """Enable or disable reconnecting after failed attempts."""
        self._auto_reconnect = enabled
        logger.info("Auto reconnect %s", "enabled" if enabled else "disabled")

    async def shutdown(self) -> None:
        """Stop playback, wait for session tasks and release resources."""
        if self._closed:
            return
        self._stop()
        self._closed = True
        if self._tasks:
            _, pending = await asyncio.wait(
                set(self._tasks), timeout=self._config.session_shutdown_timeout_s
            )
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
        if self._owns_session and self._http is not None:
            await self._http.close()
            self._http = None
        logger.debug("Player shut down")

    # Observation

    @property
    def auto_reconnect(self) -> bool:
        """Return whether failed attempts are retried."""
        return self._auto_reconnect

    @property
    def events(self) -> EventBus:
        """Event bus carrying the latest PlayerEvent."""
        return self._events

    def playback_state(self) -> PlaybackState:
        """Return the current playback state, STOPPED if the session slot is busy."""
        with self._try_lock() as locked:
            if not locked or self._current is None:
                return STOPPED
            return self._current.state

    def current_url(self) -> str | None:
        """Return the URL of the current session, as requested by the caller."""
        with self._try_lock() as locked:
            if not locked or self._current is None:
                return None
            return self._current.url

    def is_playing(self) -> bool:
        """Return True while decoded audio is being played."""
        return self.playback_state().state == PlaybackStateType.PLAYING

    def is_paused(self) -> bool:
        """Return True while paused."""
        return self.playback_state().state == PlaybackStateType.PAUSED

    def latest_event(self) -> PlayerEvent | None:
        """Return the most recent event."""
        return self._events.latest

    def subscribe(self) -> EventSubscription:
        """Subscribe to the latest events, starting with the current one."""
        return self._events.subscribe()

    def add_event_listener(self, callback: EventCallback) -> Callable[[], None]:
        """Register a callback for every event.

        Returns:
            A function that removes this listener when called.
        """
        return self._events.add_listener(callback)

    # Command handlers (event loop)

    def _dispatch(self, func: Callable[..., None], *args: Any) -> None:
        if self._closed:
            logger.warning("Ignoring %s after shutdown", func.__name__.lstrip("_"))
            return
        try:
            running_loop = asyncio.get_running_loop()
        except RuntimeError:
            running_loop = None
        if running_loop is self._loop:
            func(*args)
        else:
            self._loop.call_soon_threadsafe(func, *args)

    def _start_session(self, url: str) -> None:
        session = _Session(
            generation=next(self._generations),
            url=url,
            token=CancellationToken(),
            reconnect=ReconnectPolicy(
                max_attempts=self._config.max_reconnect_attempts,
                delay=self._config.reconnect_delay_s,
            ),
        )
        with self._lock:
            previous, self._current = self._current, session
        previous_task = self._retire(previous) if previous is not None else None

        logger.info("Playing %s (session %d)", url, session.generation)
        self._events.publish(ConnectingEvent(url=url))
        task = self._loop.create_task(self._run_session(session, previous_task))
        session.task = task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _pause(self) -> None:
        with self._try_lock() as locked:
            if not locked:
                logger.debug("Session state busy, pause skipped")
                return
            session = self._current
            if session is None or session.sink is None or session.state != PLAYING:
                return
            session.state = PAUSED
            session.paused = True
            sink = session.sink
        sink.pause()
        logger.debug("Audio paused")
        self._events.publish(PausedEvent())

    def _resume(self) -> None:
        with self._try_lock() as locked:
            if not locked:
                logger.debug("Session state busy, resume skipped")
                return
            session = self._current
            if session is None or not session.paused or session.state not in (PAUSED, CONNECTING):
                return
            session.paused = False
            sink = session.sink
            # Without a sink the session is reconnecting; the next attempt starts playing.
            if sink is not None:
                session.state = PLAYING
                sink.resume()
        logger.debug("Audio resumed")
        self._events.publish(ResumedEvent())

    def _stop(self) -> None:
        with self._lock:
            session, self._current = self._current, None
        if session is None:
            return
        self._retire(session)
        logger.info("Playback stopped")
        self._events.publish(StoppedEvent())

    def _retire(self, session: _Session) -> asyncio.Task[None] | None:
        """Cancel a session that is no longer current and release its output."""
        session.token.cancel()
        self._release_sink(session)
        return session.task

    @contextmanager
    def _try_lock(self) -> Iterator[bool]:
        locked = self._lock.acquire(timeout=_LOCK_TIMEOUT_S)
        try:
            yield locked
        finally:
            if locked:
                self._lock.release()

    # Session internals

    async def _run_session(self, session: _Session, previous_task: asyncio.Task[None] | None) -> None:
        if previous_task is not None:
            await self._await_retired(previous_task)
        if session.token.cancelled:
            return

        http = self._get_http_session()
        stream_url = await self._resolve(http, session)
        if stream_url is None:
            return
        session.stream_url = stream_url
        policy = session.reconnect

        while not session.token.cancelled:
            try:
                await self._run_attempt(session, http, stream_url)
            except StreamError as err:
                message = str(err)
            except Exception as err:  # noqa: BLE001
                logger.exception("Unexpected error while playing %s", session.url)
                message = f"Unexpected error: {err!r}"
            else:
                if not session.token.cancelled:
                    self._finish_session(session)
                return

            if session.token.cancelled:
                return
            retrying = policy.record_failure() and self._auto_reconnect
            self._publish_if_current(
                session, ErrorEvent(message=message, attempt=policy.failures, retrying=retrying)
            )
            if not retrying:
                self._fail_session(session, message)
                return

            logger.warning(
                "Playback of %s failed: %s. Reconnecting in %.1fs (attempt %d of %d)",
                stream_url,
                message,
                policy.delay,
                policy.failures,
                policy.max_attempts,
            )
            self._set_state(session, CONNECTING)
            if not await session.token.sleep(policy.delay):
                return
            self._publish_if_current(
                session, ConnectingEvent(url=session.url, attempt=policy.failures)
            )

    async def _await_retired(self, task: asyncio.Task[None]) -> None:
        """Give a superseded session time to wind down, then detach it."""
        _, pending = await asyncio.wait({task}, timeout=self._config.session_shutdown_timeout_s)
        if pending:
            logger.warning("Previous session did not stop in time, detaching it")
            task.cancel()

    async def _resolve(self, http: ClientSession, session: _Session) -> str | None:
        try:
            resolved = await session.token.guard(
                resolve_stream_url(
                    http,
                    session.url,
                    timeout=self._config.playlist_timeout_s,
                    user_agent=self._config.user_agent,
                )
            )
        except PlaylistError as err:
            logger.warning("Failed to resolve stream URL: %s. Using original URL.", err)
            return session.url
        if resolved is not None and resolved != session.url:
            logger.info("Resolved %s to %s", session.url, resolved)
        return resolved

    async def _run_attempt(self, session: _Session, http: ClientSession, stream_url: str) -> None:
        """
        Run one fetch + decode + output attempt.

        Returns when the stream ended normally or the session was cancelled.

        Raises:
            StreamError: If fetching or decoding failed.
        """
        token = session.token.child()
        buffer = ByteBuffer(
            max_bytes=self._config.max_buffer_bytes,
            cleanup_threshold=self._config.cleanup_threshold_bytes,
        )
        logger.debug(
            "Audio buffer allocation: up to %s", format_byte_size(self._config.max_buffer_bytes)
        )
        fetcher = NetworkFetcher(
            http,
            stream_url,
            buffer,
            token,
            config=self._config,
            on_connected=partial(self._on_connected, session, stream_url),
            on_progress=partial(self._on_progress, session),
        )
        pipeline = DecodePipeline(MediaSourceAdapter(buffer), token, config=self._config)
        channel: asyncio.Queue[DecodedFrame | None] = asyncio.Queue(
            maxsize=self._config.frame_queue_size
        )

        fetch_task = self._loop.create_task(fetcher.run())
        decode_task = self._loop.create_task(pipeline.run_in_worker(channel))
        bridge_task = self._loop.create_task(self._bridge(session, pipeline, channel, token))
        # Nothing is fetched once the output side has finished.
        bridge_task.add_done_callback(lambda _: token.cancel())
        tasks = (fetch_task, decode_task, bridge_task)
        try:
            await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        finally:
            if not all(task.done() for task in tasks) or token.cancelled:
                token.cancel()
                # The decode worker is a thread and stops through the token.
                fetch_task.cancel()
                bridge_task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            self._release_sink(session)
            logger.debug(
                "Attempt finished: %s received, %d frames decoded, %d corrupt, %d evictions",
                format_byte_size(fetcher.bytes_received),
                pipeline.frames_decoded,
                pipeline.corrupt_frames,
                buffer.evictions,
            )

        for task in tasks:
            if not task.cancelled() and (err := task.exception()) is not None:
                raise err

    async def _bridge(
        self,
        session: _Session,
        pipeline: DecodePipeline,
        channel: asyncio.Queue[DecodedFrame | None],
        token: CancellationToken,
    ) -> None:
        """Move decoded frames, in order, from the decode channel to the output.

        Raises:
            StreamError: If decoding ended because the stream stalled.
        """
        sink: AudioSink | None = None
        while True:
            frame = await token.guard(channel.get())
            if frame is None:
                break
            if sink is None:
                sink = self._open_sink(session, frame)
                if sink is None:
                    return
            while sink.queued_seconds > self._config.sink_max_queued_s:
                if not await token.sleep(_SINK_POLL_INTERVAL_S):
                    return
            sink.append(frame)

        if token.cancelled:
            return
        if pipeline.stalled:
            raise StreamError(
                f"Stream stalled: no data for {self._config.starvation_timeout_s:.0f}s"
            )
        if sink is None:
            return
        # End of stream: let the device play out what is queued.
        while sink.queued_seconds > 0:
            if not await token.sleep(_SINK_POLL_INTERVAL_S):
                return

    def _open_sink(self, session: _Session, frame: DecodedFrame) -> AudioSink | None:
        """Open the output for the first frame and enter the playing or paused state."""
        with self._lock:
            if self._current is not session or session.token.cancelled:
                return None
        try:
            sink = self._sink_factory(frame.sample_rate, frame.channels)
        except Exception as err:
            raise StreamError(f"Unable to open audio output: {err}") from err

        with self._lock:
            current = self._current is session and not session.token.cancelled
            if current:
                session.sink = sink
                session.reconnect.reset()
                if session.paused:
                    sink.pause()
                    session.state = PAUSED
                else:
                    session.state = PLAYING
        if not current:
            sink.stop()
            return None
        logger.info(
            "Playback started for %s (%d Hz, %d channels)",
            session.url,
            frame.sample_rate,
            frame.channels,
        )
        return sink

    def _release_sink(self, session: _Session) -> None:
        with self._lock:
            sink, session.sink = session.sink, None
        if sink is not None:
            sink.stop()

    def _finish_session(self, session: _Session) -> None:
        """End a session whose stream ended normally."""
        with self._lock:
            if self._current is not session:
                return
            self._current = None
        session.token.cancel()
        logger.info("Stream %s ended", session.url)
        self._events.publish(StoppedEvent())

    def _fail_session(self, session: _Session, message: str) -> None:
        """Enter the terminal error state; the session stays current for the UI."""
        if self._set_state(session, PlaybackState.error(message)):
            logger.error("Playback of %s failed: %s", session.url, message)

    def _set_state(self, session: _Session, state: PlaybackState) -> bool:
        with self._lock:
            if self._current is not session:
                return False
            session.state = state
            return True

    def _publish_if_current(self, session: _Session, event: PlayerEvent) -> None:
        with self._lock:
            current = self._current is session
        if current:
            self._events.publish(event)

    def _on_connected(self, session: _Session, stream_url: str) -> None:
        self._publish_if_current(session, ConnectedEvent(url=stream_url))

    def _on_progress(self, session: _Session, bytes_received: int, bytes_buffered: int) -> None:
        self._publish_if_current(
            session,
            BufferProgressEvent(bytes_received=bytes_received, bytes_buffered=bytes_buffered),
        )

    def _get_http_session(self) -> ClientSession:
        if self._http is None:
            self._http = ClientSession()
        return self._http
