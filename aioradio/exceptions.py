"""Exceptions raised by aioradio."""

from __future__ import annotations


class RadioError(Exception):
    """Base class for all aioradio errors."""


class PlaylistError(RadioError):
    """A playlist URL could not be resolved to a stream URL."""


class StreamError(RadioError):
    """
    A playback attempt failed.

    Stream errors are local to one attempt of a session. The player decides
    whether to retry the session or to give up and enter the error state.
    """


class FetchError(StreamError):
    """The HTTP transport failed (connection, timeout or non-success status)."""

    def __init__(self, message: str, *, status: int | None = None) -> None:
        """Create a fetch error, optionally carrying the HTTP status code."""
        super().__init__(message)
        self.status = status


class DecodeError(StreamError):
    """The stream could not be demuxed or decoded."""


class UnsupportedFormatError(DecodeError):
    """No playable audio track could be probed from the stream."""


class ResetRequiredError(DecodeError):
    """The stream changed its audio format mid-stream."""


class CorruptFrameError(RadioError):
    """A single packet or frame was corrupt and has been skipped."""
