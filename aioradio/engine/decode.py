"""Demux and decode a live byte source into interleaved float PCM frames."""

from __future__ import annotations

import asyncio
import logging
import time
import types
from collections.abc import Callable, Iterator
from contextlib import closing
from dataclasses import dataclass
from functools import partial
from typing import TYPE_CHECKING, Any

import numpy as np

from aioradio.exceptions import (
    CorruptFrameError,
    DecodeError,
    ResetRequiredError,
    UnsupportedFormatError,
)
from aioradio.models.config import PlayerConfig

from .backoff import ExponentialBackoff
from .cancel import CancellationToken
from .source import MediaSourceAdapter

if TYPE_CHECKING:
    import av
    import av.container

logger = logging.getLogger(__name__)


def _get_av() -> types.ModuleType:
    """Lazy import of av module to avoid slow startup."""
    import av as _av  # noqa: PLC0415

    return _av


# Full scale of signed integer sample formats. 24-bit audio is decoded by
# FFmpeg into the upper bits of s32.
_INTEGER_FULL_SCALE: dict[str, float] = {
    "s16": 2.0**15,
    "s24": 2.0**23,
    "s32": 2.0**31,
    "s64": 2.0**63,
}


@dataclass(frozen=True, slots=True)
class DecodedFrame:
    """A batch of decoded audio ready for output."""

    samples: np.ndarray
    """Interleaved float32 samples in [-1.0, 1.0], channel order preserved."""
    sample_rate: int
    """Sample rate in Hz."""
    channels: int
    """Number of interleaved channels."""

    @property
    def frame_count(self) -> int:
        """Number of sample frames (samples per channel)."""
        return len(self.samples) // self.channels

    @property
    def duration_s(self) -> float:
        """Playback duration in seconds."""
        return self.frame_count / self.sample_rate


def to_interleaved_float(samples: np.ndarray, sample_format: str, channels: int) -> np.ndarray:
    """
    Convert decoded samples to interleaved float32.

    Args:
        samples: Array as returned by av.AudioFrame.to_ndarray(); shape
            (channels, n) for planar formats, (1, n * channels) for packed ones.
        sample_format: FFmpeg sample format name (u8, s16, s32, flt, dbl, ...,
            with a trailing "p" for planar layouts).
        channels: Number of channels in the frame.

    Returns:
        A 1-D float32 array with samples interleaved per frame.

    Raises:
        UnsupportedFormatError: For sample formats without a float mapping.
    """
    planar = sample_format.endswith("p")
    base = sample_format[:-1] if planar else sample_format
    data = np.asarray(samples)
    if base == "u8":
        converted = (data.astype(np.float32) - 128.0) / 128.0
    elif base in _INTEGER_FULL_SCALE:
        converted = data.astype(np.float64) / _INTEGER_FULL_SCALE[base]
    elif base in ("flt", "dbl"):
        converted = data
    else:
        raise UnsupportedFormatError(f"Unsupported sample format: {sample_format}")
    if planar:
        converted = converted.reshape(channels, -1).T
    return np.ascontiguousarray(converted, dtype=np.float32).reshape(-1)


class StreamReader:
    """
    Blocking file object over a MediaSourceAdapter, handed to PyAV.

    FFmpeg treats an empty read as end of file, so starvation must not surface
    as an empty read. While the source is starved this reader sleeps with
    exponential backoff and jitter and tries again. It only reports end of file
    when the source is exhausted, the token is cancelled, or the starvation
    lasted longer than starvation_timeout.
    """

    def __init__(
        self,
        source: MediaSourceAdapter,
        token: CancellationToken,
        *,
        backoff: ExponentialBackoff,
        starvation_timeout: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Wrap a source for use from a decode worker thread."""
        self._source = source
        self._token = token
        self._backoff = backoff
        self._starvation_timeout = starvation_timeout
        self._clock = clock
        self.starvation_events = 0
        """Number of times the reader had to wait for data."""
        self.timed_out = False
        """True if end of file was reported because of sustained starvation."""

    def read(self, size: int = -1) -> bytes:
        """Return at least one byte, or b"" at end of stream."""
        starved_since: float | None = None
        while True:
            data = self._source.read(size)
            if data:
                self._backoff.reset()
                return data
            if self._source.exhausted or self._token.cancelled:
                return b""
            now = self._clock()
            if starved_since is None:
                starved_since = now
                self.starvation_events += 1
            elif now - starved_since >= self._starvation_timeout:
                logger.warning(
                    "No stream data for %.1fs, treating as end of stream", now - starved_since
                )
                self.timed_out = True
                return b""
            if self._token.wait_blocking(self._backoff.next_delay()):
                return b""

    def readable(self) -> bool:
        """Return True; the reader can always be read."""
        return True

    def seekable(self) -> bool:
        """Return False so PyAV never tries to seek."""
        return False


def _open_container(
    reader: StreamReader, options: dict[str, str] | None = None
) -> av.container.InputContainer:
    av = _get_av()
    return av.open(reader, mode="r", options=options)


def probe_options(config: PlayerConfig) -> dict[str, str]:
    """FFmpeg demuxer options limiting how much data probing consumes."""
    return {
        "probesize": str(config.probe_size_bytes),
        "analyzeduration": str(int(config.analyze_duration_s * 1_000_000)),
    }


class DecodePipeline:
    """
    Decode a live byte source into DecodedFrame batches.

    frames() is a plain generator of (byte source) -> (PCM frames) with no
    knowledge of the output device. run_in_worker() drives it on a worker
    thread and hands the frames, in order, to a bounded asyncio queue.

    Error policy:
    - starvation: handled by StreamReader, never an error
    - corrupt packet or frame: skipped, the attempt continues
    - audio format change mid-stream: ResetRequiredError (fatal)
    - unprobeable stream or any other FFmpeg error: DecodeError (fatal)
    """

    def __init__(
        self,
        source: MediaSourceAdapter,
        token: CancellationToken,
        *,
        config: PlayerConfig | None = None,
        open_container: Callable[[StreamReader], Any] | None = None,
    ) -> None:
        """
        Initialize the pipeline.

        Args:
            source: Byte source to decode.
            token: Cancellation token of the owning attempt.
            config: Player configuration, defaults to PlayerConfig().
            open_container: Opens a demuxer over the reader. Defaults to av.open
                with the probe limits of config.
        """
        self._source = source
        self._token = token
        self._config = config or PlayerConfig()
        self._open_container = open_container or partial(
            _open_container, options=probe_options(self._config)
        )
        self.reader = StreamReader(
            source,
            token,
            backoff=ExponentialBackoff(
                initial_delay=self._config.decode_backoff_initial_s,
                max_delay=self._config.decode_backoff_max_s,
                jitter=self._config.decode_backoff_jitter,
            ),
            starvation_timeout=self._config.starvation_timeout_s,
        )
        self.frames_decoded = 0
        """Number of frames produced."""
        self.corrupt_frames = 0
        """Number of corrupt packets or frames skipped."""
        self.push_stalls = 0
        """Number of times the frame channel was full."""

    @property
    def stalled(self) -> bool:
        """True if decoding ended because the source starved for too long."""
        return self.reader.timed_out

    def frames(self) -> Iterator[DecodedFrame]:
        """
        Yield decoded frames until end of stream or cancellation.

        Raises:
            DecodeError: On fatal demux or decode errors.
        """
        container = self._open()
        if container is None:
            return
        try:
            stream = self._select_stream(container)
            yield from self._decode(container, stream)
        finally:
            container.close()

    async def run_in_worker(self, channel: asyncio.Queue[DecodedFrame | None]) -> int:
        """
        Decode on a worker thread and push frames into channel.

        A None marker is pushed after the last frame of a stream that ended
        normally. Nothing is pushed after a failure or cancellation.

        Returns:
            Number of frames delivered.
        """
        loop = asyncio.get_running_loop()
        return await asyncio.to_thread(self._run_blocking, channel, loop)

    def _run_blocking(
        self,
        channel: asyncio.Queue[DecodedFrame | None],
        loop: asyncio.AbstractEventLoop,
    ) -> int:
        delivered = 0
        try:
            with closing(self.frames()) as frames:
                for frame in frames:
                    if not self._push(channel, loop, frame):
                        return delivered
                    delivered += 1
        except DecodeError:
            if self._token.cancelled:
                return delivered
            raise
        self._push(channel, loop, None)
        return delivered

    def _push(
        self,
        channel: asyncio.Queue[DecodedFrame | None],
        loop: asyncio.AbstractEventLoop,
        item: DecodedFrame | None,
    ) -> bool:
        """Put item on the channel, waiting while it is full. Decoded audio is never dropped.

        Returns:
            False if the token was cancelled before the item was delivered.
        """
        timeout = self._config.frame_push_timeout_s
        while not self._token.cancelled:
            future = asyncio.run_coroutine_threadsafe(self._put(channel, item, timeout), loop)
            try:
                if future.result(timeout + 1.0):
                    return True
            except TimeoutError:
                future.cancel()
            self.push_stalls += 1
        return False

    @staticmethod
    async def _put(
        channel: asyncio.Queue[DecodedFrame | None],
        item: DecodedFrame | None,
        timeout: float,
    ) -> bool:
        try:
            await asyncio.wait_for(channel.put(item), timeout=timeout)
        except TimeoutError:
            return False
        return True

    def _open(self) -> Any:
        av = _get_av()
        try:
            with av.logging.Capture() as logs:
                container = self._open_container(self.reader)
        except av.error.FFmpegError as err:
            if self._token.cancelled:
                return None
            raise UnsupportedFormatError(f"Unable to probe stream: {err}") from err
        for log in logs:
            logger.debug("Probing log from av: %s", log)
        return container

    @staticmethod
    def _select_stream(container: Any) -> Any:
        # The first audio stream is FFmpeg's default track.
        audio_streams = container.streams.audio
        if not audio_streams:
            raise UnsupportedFormatError("Stream contains no audio track")
        stream = audio_streams[0]
        logger.info(
            "Decoding %s audio (%s container): %s Hz, %s channels",
            stream.codec_context.name,
            container.format.name,
            stream.codec_context.sample_rate,
            stream.codec_context.channels,
        )
        return stream

    def _decode(self, container: Any, stream: Any) -> Iterator[DecodedFrame]:
        av = _get_av()
        demuxer: Iterator[Any] | None = None
        consecutive_errors = 0
        stream_format: tuple[int, int] | None = None

        while not self._token.cancelled:
            if demuxer is None:
                demuxer = container.demux(stream)
            try:
                packet = next(demuxer)
            except StopIteration:
                logger.debug("Demuxer reached end of stream")
                return
            except av.error.InvalidDataError as err:
                # A failed generator is finished; demux again from the current position.
                demuxer = None
                consecutive_errors = self._skip_corrupt(consecutive_errors, err)
                continue
            except av.error.FFmpegError as err:
                raise DecodeError(f"Demuxing failed: {err}") from err

            try:
                decoded = self._decode_packet(packet)
            except CorruptFrameError as err:
                consecutive_errors = self._skip_corrupt(consecutive_errors, err)
                continue
            except av.error.EOFError:
                return

            for av_frame in decoded:
                frame = self._convert(av_frame)
                if stream_format is None:
                    stream_format = (frame.sample_rate, frame.channels)
                elif stream_format != (frame.sample_rate, frame.channels):
                    raise ResetRequiredError(
                        f"Audio format changed mid-stream from {stream_format[0]} Hz/"
                        f"{stream_format[1]} ch to {frame.sample_rate} Hz/{frame.channels} ch"
                    )
                consecutive_errors = 0
                self.frames_decoded += 1
                yield frame

    @staticmethod
    def _decode_packet(packet: Any) -> list[Any]:
        av = _get_av()
        try:
            return packet.decode()
        except av.error.InvalidDataError as err:
            raise CorruptFrameError(f"Corrupt packet at pts {packet.pts}: {err}") from err
        except av.error.EOFError:
            raise
        except av.error.FFmpegError as err:
            raise DecodeError(f"Decoding failed: {err}") from err

    def _skip_corrupt(self, consecutive_errors: int, err: Exception) -> int:
        consecutive_errors += 1
        self.corrupt_frames += 1
        if consecutive_errors >= self._config.max_consecutive_decode_errors:
            raise DecodeError(f"{consecutive_errors} consecutive corrupt frames, last: {err}")
        if consecutive_errors == 1:
            logger.warning("Skipping corrupt frame: %s", err)
        else:
            logger.debug("Skipping corrupt frame (%d in a row): %s", consecutive_errors, err)
        return consecutive_errors

    @staticmethod
    def _convert(av_frame: Any) -> DecodedFrame:
        channels = len(av_frame.layout.channels)
        samples = to_interleaved_float(av_frame.to_ndarray(), av_frame.format.name, channels)
        return DecodedFrame(samples=samples, sample_rate=av_frame.sample_rate, channels=channels)
