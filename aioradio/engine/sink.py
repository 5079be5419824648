"""Audio output for decoded PCM frames."""

from __future__ import annotations

import logging
import threading
import time
import types
from collections import deque
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Protocol

import numpy as np

from .decode import DecodedFrame

if TYPE_CHECKING:
    from aioradio.models.config import PlayerConfig

logger = logging.getLogger(__name__)

# Minimum interval between two underrun warnings.
_UNDERRUN_LOG_INTERVAL_S = 10.0


def _get_sounddevice() -> types.ModuleType:
    """Lazy import of sounddevice, which loads PortAudio on import."""
    import sounddevice as _sd  # noqa: PLC0415

    return _sd


class AudioSink(Protocol):
    """Output handle owned by the active session."""

    @property
    def paused(self) -> bool:
        """Return True while output is paused."""

    @property
    def queued_seconds(self) -> float:
        """Duration of appended audio that has not been played yet."""

    def append(self, frame: DecodedFrame) -> None:
        """Queue a frame behind all previously appended frames."""

    def pause(self) -> None:
        """Pause output, keeping queued audio."""

    def resume(self) -> None:
        """Resume output."""

    def stop(self) -> None:
        """Stop output, drop queued audio and release the device. Idempotent."""


# Factory invoked with (sample_rate, channels) when the first frame of an attempt arrives.
SinkFactory = Callable[[int, int], AudioSink]


class PlaybackSink:
    """
    Play decoded frames on a sounddevice output stream.

    Frames are queued in arrival order and consumed by the PortAudio callback
    thread. While paused, or when the queue runs dry, the callback writes
    silence.
    """

    def __init__(
        self,
        sample_rate: int,
        channels: int,
        *,
        device: int | str | None = None,
        latency: str | float = "high",
        blocksize: int = 2048,
    ) -> None:
        """
        Open and start an output stream.

        Args:
            sample_rate: Sample rate of the frames that will be appended.
            channels: Channel count of the frames that will be appended.
            device: sounddevice output device, None for the default device.
            latency: sounddevice latency hint.
            blocksize: Frames requested per callback.
        """
        sd = _get_sounddevice()
        self.sample_rate = sample_rate
        self.channels = channels
        self._lock = threading.Lock()
        self._pending: deque[np.ndarray] = deque()
        self._offset = 0
        self._queued_frames = 0
        self._paused = False
        self._stopped = False
        self._started = False
        self._last_underrun_log: float | None = None
        self.underruns = 0
        """Callbacks that ran out of audio after playback started."""
        self._stream: Any = sd.OutputStream(
            samplerate=sample_rate,
            channels=channels,
            dtype="float32",
            blocksize=blocksize,
            latency=latency,
            device=device,
            callback=self._audio_callback,
        )
        self._stream.start()
        logger.info(
            "Audio output opened: %d Hz, %d channels, blocksize=%d, latency=%s, device=%s",
            sample_rate,
            channels,
            blocksize,
            latency,
            device,
        )

    @classmethod
    def factory(cls, config: PlayerConfig) -> SinkFactory:
        """Return a sink factory bound to the output settings of config."""

        def _create(sample_rate: int, channels: int) -> PlaybackSink:
            return cls(
                sample_rate,
                channels,
                device=config.output_device,
                latency=config.output_latency,
                blocksize=config.output_blocksize,
            )

        return _create

    @property
    def paused(self) -> bool:
        """Return True while output is paused."""
        return self._paused

    @property
    def queued_seconds(self) -> float:
        """Duration of appended audio that has not been played yet."""
        with self._lock:
            return self._queued_frames / self.sample_rate

    def append(self, frame: DecodedFrame) -> None:
        """Queue a frame behind all previously appended frames."""
        if frame.sample_rate != self.sample_rate or frame.channels != self.channels:
            raise ValueError(
                f"Frame format {frame.sample_rate} Hz/{frame.channels} ch does not match "
                f"output {self.sample_rate} Hz/{self.channels} ch"
            )
        block = frame.samples.reshape(-1, self.channels)
        with self._lock:
            if self._stopped:
                return
            self._pending.append(block)
            self._queued_frames += len(block)

    def pause(self) -> None:
        """Pause output, keeping queued audio."""
        with self._lock:
            self._paused = True

    def resume(self) -> None:
        """Resume output."""
        with self._lock:
            self._paused = False

    def stop(self) -> None:
        """Stop output, drop queued audio and release the device. Idempotent."""
        with self._lock:
            if self._stopped:
                return
            self._stopped = True
            self._pending.clear()
            self._queued_frames = 0
            self._offset = 0
        try:
            self._stream.abort()
            self._stream.close()
        except Exception:
            logger.exception("Failed to close audio output stream")
        logger.debug("Audio output closed")

    def _audio_callback(
        self,
        outdata: np.ndarray,
        frames: int,
        time_info: Any,  # noqa: ARG002
        status: Any,
    ) -> None:
        """Fill the device buffer from the pending queue (PortAudio thread)."""
        if status:
            logger.debug("Audio callback status: %s", status)
        written = 0
        underrun = False
        with self._lock:
            if not self._paused and not self._stopped:
                while written < frames and self._pending:
                    block = self._pending[0]
                    count = min(frames - written, len(block) - self._offset)
                    outdata[written : written + count] = block[self._offset : self._offset + count]
                    written += count
                    self._offset += count
                    if self._offset >= len(block):
                        self._pending.popleft()
                        self._offset = 0
                self._queued_frames -= written
                if written:
                    self._started = True
                if written < frames and self._started:
                    underrun = True
                    self.underruns += 1
        if written < frames:
            outdata[written:] = 0
        if underrun:
            self._log_underrun()

    def _log_underrun(self) -> None:
        now = time.monotonic()
        if (
            self._last_underrun_log is not None
            and now - self._last_underrun_log < _UNDERRUN_LOG_INTERVAL_S
        ):
            return
        self._last_underrun_log = now
        logger.warning("Audio output underrun, %d so far", self.underruns)
