"""Models for the aioradio player."""

from __future__ import annotations

__all__ = [
    "CONNECTING",
    "PAUSED",
    "PLAYING",
    "STOPPED",
    "BufferProgressEvent",
    "ConnectedEvent",
    "ConnectingEvent",
    "ErrorEvent",
    "PausedEvent",
    "PlaybackState",
    "PlaybackStateType",
    "PlayerConfig",
    "PlayerEvent",
    "ResumedEvent",
    "StoppedEvent",
    "config",
    "events",
    "types",
]

from . import config, events, types
from .config import PlayerConfig
from .events import (
    BufferProgressEvent,
    ConnectedEvent,
    ConnectingEvent,
    ErrorEvent,
    PausedEvent,
    PlayerEvent,
    ResumedEvent,
    StoppedEvent,
)
from .types import CONNECTING, PAUSED, PLAYING, STOPPED, PlaybackState, PlaybackStateType
