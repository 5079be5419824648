"""
Player events for aioradio.

Events are immutable notifications published by the player on its event bus.
They serialize to JSON with a ``type`` discriminator so that observers living in
another process (a UI, a remote control) can consume them unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from mashumaro.config import BaseConfig
from mashumaro.mixins.orjson import DataClassORJSONMixin
from mashumaro.types import Discriminator


@dataclass(frozen=True)
class PlayerEvent(DataClassORJSONMixin):
    """Base class for player events."""

    class Config(BaseConfig):
        """Config for parsing json events."""

        discriminator = Discriminator(field="type", include_subtypes=True)


@dataclass(frozen=True)
class ConnectingEvent(PlayerEvent):
    """A session started (or restarted after a failure) for the given URL."""

    url: str
    """The URL requested by the caller."""
    attempt: int = 0
    """Reconnect attempt number, 0 for the first connection."""
    type: Literal["connecting"] = "connecting"


@dataclass(frozen=True)
class ConnectedEvent(PlayerEvent):
    """The stream endpoint answered and bytes are flowing."""

    url: str
    """The resolved stream URL."""
    type: Literal["connected"] = "connected"


@dataclass(frozen=True)
class PausedEvent(PlayerEvent):
    """Playback was paused."""

    type: Literal["paused"] = "paused"


@dataclass(frozen=True)
class ResumedEvent(PlayerEvent):
    """Playback was resumed."""

    type: Literal["resumed"] = "resumed"


@dataclass(frozen=True)
class StoppedEvent(PlayerEvent):
    """Playback stopped, either on request or because the stream ended."""

    type: Literal["stopped"] = "stopped"


@dataclass(frozen=True)
class BufferProgressEvent(PlayerEvent):
    """Periodic report of the bytes received for the current attempt."""

    bytes_received: int
    """Total bytes received from the network for the current attempt."""
    bytes_buffered: int
    """Bytes currently waiting in the byte buffer."""
    type: Literal["buffer_progress"] = "buffer_progress"


@dataclass(frozen=True)
class ErrorEvent(PlayerEvent):
    """An attempt failed."""

    message: str
    """Human readable failure reason."""
    attempt: int = 1
    """Number of consecutive failed attempts so far."""
    retrying: bool = False
    """True if the player will reconnect, False if the failure is terminal."""
    type: Literal["error"] = "error"
