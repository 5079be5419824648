"""Resolution of station URLs to playable stream URLs."""

from __future__ import annotations

import logging

from aiohttp import ClientError, ClientSession, ClientTimeout, hdrs
from yarl import URL

from .const import DEFAULT_USER_AGENT, DIRECT_STREAM_EXTENSIONS, M3U_EXTENSIONS, PLS_EXTENSIONS
from .exceptions import PlaylistError

logger = logging.getLogger(__name__)


def _url_path(url: str) -> str:
    try:
        return URL(url).path.lower()
    except ValueError:
        return url.lower()


def is_direct_stream_url(url: str) -> bool:
    """Return True if url points straight at audio (known extension or live endpoint)."""
    path = _url_path(url)
    return path.endswith(DIRECT_STREAM_EXTENSIONS) or "/live" in path


def is_playlist_url(url: str) -> bool:
    """Return True if url names a .pls, .m3u or .m3u8 playlist."""
    return _url_path(url).endswith(PLS_EXTENSIONS + M3U_EXTENSIONS)


def parse_pls(content: str) -> str:
    """
    Return the first stream URL of a .pls playlist.

    Raises:
        PlaylistError: If the playlist has no File1 entry.
    """
    for line in content.splitlines():
        line = line.strip()
        if line.startswith("File1="):
            url = line.removeprefix("File1=").strip()
            if url:
                return url
    raise PlaylistError("No stream URL found in .pls playlist")


def parse_m3u(content: str) -> str:
    """
    Return the first entry of an .m3u/.m3u8 playlist.

    Raises:
        PlaylistError: If the playlist has no entries.
    """
    for line in content.splitlines():
        line = line.strip()
        if line and not line.startswith("#"):
            return line
    raise PlaylistError("No stream URL found in m3u playlist")


async def resolve_stream_url(
    session: ClientSession,
    url: str,
    *,
    timeout: float = 10.0,
    user_agent: str = DEFAULT_USER_AGENT,
) -> str:
    """
    Resolve a station URL to the URL of its audio stream.

    Direct stream URLs and unknown URLs are returned unchanged. Playlist URLs
    are fetched and their first entry is returned.

    Raises:
        PlaylistError: If the playlist cannot be fetched or contains no entry.
    """
    if is_direct_stream_url(url) or not is_playlist_url(url):
        return url

    logger.debug("Parsing playlist from URL: %s", url)
    try:
        async with session.get(
            url,
            timeout=ClientTimeout(total=timeout),
            headers={hdrs.USER_AGENT: user_agent},
        ) as response:
            if not 200 <= response.status < 300:
                raise PlaylistError(f"Fetching playlist {url} failed: HTTP {response.status}")
            content = await response.text(errors="replace")
    except (ClientError, TimeoutError) as err:
        raise PlaylistError(f"Fetching playlist {url} failed: {err!r}") from err

    logger.debug("Playlist content: %s", content)
    if _url_path(url).endswith(PLS_EXTENSIONS):
        stream_url = parse_pls(content)
    else:
        stream_url = parse_m3u(content)
    logger.debug("Found stream URL in playlist: %s", stream_url)
    return stream_url
