from __future__ import annotations

import io
import socket
import wave
from collections.abc import AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager

import numpy as np
import pytest
from aiohttp import web

from aioradio.engine.decode import DecodedFrame


def _get_free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def _make_wav(
    duration_s: float = 0.5,
    *,
    sample_rate: int = 8000,
    channels: int = 1,
    frequency: float = 440.0,
) -> bytes:
    """Render a 16-bit sine tone as a WAV file."""
    t = np.arange(int(duration_s * sample_rate)) / sample_rate
    tone = (0.5 * np.sin(2 * np.pi * frequency * t) * 32767).astype("<i2")
    samples = np.repeat(tone, channels)
    output = io.BytesIO()
    with wave.open(output, "wb") as wav:
        wav.setnchannels(channels)
        wav.setsampwidth(2)
        wav.setframerate(sample_rate)
        wav.writeframes(samples.tobytes())
    return output.getvalue()


class FakeSink:
    """Records appended frames instead of playing them."""

    def __init__(self, sample_rate: int, channels: int) -> None:
        self.sample_rate = sample_rate
        self.channels = channels
        self.frames: list[DecodedFrame] = []
        self.paused = False
        self.stopped = False
        self.queued_seconds = 0.0

    def append(self, frame: DecodedFrame) -> None:
        if not self.stopped:
            self.frames.append(frame)

    def pause(self) -> None:
        self.paused = True

    def resume(self) -> None:
        self.paused = False

    def stop(self) -> None:
        self.stopped = True


class FakeSinkFactory:
    def __init__(self) -> None:
        self.sinks: list[FakeSink] = []

    def __call__(self, sample_rate: int, channels: int) -> FakeSink:
        sink = FakeSink(sample_rate, channels)
        self.sinks.append(sink)
        return sink


@asynccontextmanager
async def _serve(app: web.Application) -> AsyncIterator[str]:
    runner = web.AppRunner(app)
    await runner.setup()
    port = _get_free_port()
    site = web.TCPSite(runner, "127.0.0.1", port)
    await site.start()
    try:
        yield f"http://127.0.0.1:{port}"
    finally:
        await runner.cleanup()


@pytest.fixture
def make_wav() -> Callable[..., bytes]:
    return _make_wav


@pytest.fixture
def free_port() -> int:
    return _get_free_port()


@pytest.fixture
def sink_factory() -> FakeSinkFactory:
    return FakeSinkFactory()


@pytest.fixture
def serve() -> Callable[[web.Application], AbstractAsyncContextManager[str]]:
    """Run an aiohttp application on a free local port, yielding its base URL."""
    return _serve
