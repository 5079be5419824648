"""Models for enum and state types used by aioradio."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from mashumaro.config import BaseConfig
from mashumaro.mixins.orjson import DataClassORJSONMixin


class PlaybackStateType(Enum):
    """Enum for Playback States."""

    STOPPED = "stopped"
    """No session is active."""
    CONNECTING = "connecting"
    """A session is resolving, connecting or waiting for the first decoded frame."""
    PLAYING = "playing"
    """Decoded audio is being handed to the output device."""
    PAUSED = "paused"
    """Output is paused; the session is still alive."""
    ERROR = "error"
    """The session failed and all reconnect attempts are exhausted."""


@dataclass(frozen=True)
class PlaybackState(DataClassORJSONMixin):
    """Current state of the player, with the failure reason for the error state."""

    state: PlaybackStateType
    """The state value."""
    message: str | None = None
    """Terminal failure reason, only set for PlaybackStateType.ERROR."""

    def __post_init__(self) -> None:
        """Validate field values."""
        if self.state == PlaybackStateType.ERROR:
            if self.message is None:
                raise ValueError("message is required for the error state")
        elif self.message is not None:
            raise ValueError(f"message should not be provided for state '{self.state.value}'")

    @classmethod
    def error(cls, message: str) -> PlaybackState:
        """Build an error state with the given reason."""
        return cls(PlaybackStateType.ERROR, message)

    class Config(BaseConfig):
        """Config for serializing states."""

        omit_none = True


STOPPED = PlaybackState(PlaybackStateType.STOPPED)
CONNECTING = PlaybackState(PlaybackStateType.CONNECTING)
PLAYING = PlaybackState(PlaybackStateType.PLAYING)
PAUSED = PlaybackState(PlaybackStateType.PAUSED)
