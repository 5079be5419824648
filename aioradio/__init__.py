"""Public interface for aioradio, an asyncio internet radio player."""

from .const import __version__
from .engine import EventSubscription, RadioPlayer
from .exceptions import (
    CorruptFrameError,
    DecodeError,
    FetchError,
    PlaylistError,
    RadioError,
    ResetRequiredError,
    StreamError,
    UnsupportedFormatError,
)
from .models import (
    BufferProgressEvent,
    ConnectedEvent,
    ConnectingEvent,
    ErrorEvent,
    PausedEvent,
    PlaybackState,
    PlaybackStateType,
    PlayerConfig,
    PlayerEvent,
    ResumedEvent,
    StoppedEvent,
)
from .playlist import resolve_stream_url

__all__ = [
    "BufferProgressEvent",
    "ConnectedEvent",
    "ConnectingEvent",
    "CorruptFrameError",
    "DecodeError",
    "ErrorEvent",
    "EventSubscription",
    "FetchError",
    "PausedEvent",
    "PlaybackState",
    "PlaybackStateType",
    "PlayerConfig",
    "PlayerEvent",
    "PlaylistError",
    "RadioError",
    "RadioPlayer",
    "ResetRequiredError",
    "ResumedEvent",
    "StoppedEvent",
    "StreamError",
    "UnsupportedFormatError",
    "__version__",
    "resolve_stream_url",
]
