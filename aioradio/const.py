"""Constants for aioradio."""

from __future__ import annotations

__version__ = "0.1.0"

DEFAULT_USER_AGENT = f"aioradio/{__version__}"

# File extensions of URLs that point straight at an audio stream.
DIRECT_STREAM_EXTENSIONS = (".mp3", ".aac", ".aacp", ".ogg", ".opus", ".flac")

# File extensions of playlist files that reference the real stream URL.
PLS_EXTENSIONS = (".pls",)
M3U_EXTENSIONS = (".m3u", ".m3u8")
