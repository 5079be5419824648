from __future__ import annotations

import pytest
from aiohttp import ClientSession, web

from aioradio.exceptions import PlaylistError
from aioradio.playlist import (
    is_direct_stream_url,
    is_playlist_url,
    parse_m3u,
    parse_pls,
    resolve_stream_url,
)

PLS_BODY = """[playlist]
numberofentries=2
File1=http://ice1.somafm.com/groovesalad-128-mp3
Title1=SomaFM: Groove Salad
File2=http://ice2.somafm.com/groovesalad-128-mp3
Version=2
"""

M3U_BODY = """#EXTM3U

#EXTINF:-1,Groove Salad
http://ice1.somafm.com/groovesalad-128-aac
http://ice2.somafm.com/groovesalad-128-aac
"""


def _reply(*, text: str | None = None, status: int = 200):
    async def _handler(request: web.Request) -> web.Response:
        return web.Response(text=text, status=status)

    return _handler


@pytest.mark.parametrize(
    ("url", "direct"),
    [
        ("http://ice1.somafm.com/groovesalad-128.mp3", True),
        ("http://example.com/stream.AAC", True),
        ("http://example.com/radio/live", True),
        ("http://example.com/live/stream", True),
        ("http://somafm.com/groovesalad.pls", False),
        ("http://example.com/station", False),
    ],
)
def test_is_direct_stream_url(url: str, direct: bool) -> None:
    assert is_direct_stream_url(url) is direct


def test_is_playlist_url() -> None:
    assert is_playlist_url("http://somafm.com/groovesalad.pls")
    assert is_playlist_url("http://example.com/list.M3U8?token=1")
    assert not is_playlist_url("http://example.com/stream.mp3")


def test_parse_pls() -> None:
    assert parse_pls(PLS_BODY) == "http://ice1.somafm.com/groovesalad-128-mp3"


def test_parse_pls_without_entry() -> None:
    with pytest.raises(PlaylistError):
        parse_pls("[playlist]\nnumberofentries=0\n")


def test_parse_m3u_skips_comments_and_blank_lines() -> None:
    assert parse_m3u(M3U_BODY) == "http://ice1.somafm.com/groovesalad-128-aac"


def test_parse_m3u_without_entry() -> None:
    with pytest.raises(PlaylistError):
        parse_m3u("#EXTM3U\n\n")


@pytest.mark.asyncio
async def test_resolve_direct_url_without_request(free_port: int) -> None:
    url = f"http://127.0.0.1:{free_port}/stream.mp3"
    async with ClientSession() as session:
        assert await resolve_stream_url(session, url) == url


@pytest.mark.asyncio
async def test_resolve_playlists(serve) -> None:
    app = web.Application()
    app.router.add_get("/station.pls", _reply(text=PLS_BODY))
    app.router.add_get("/station.m3u", _reply(text=M3U_BODY))

    async with serve(app) as base_url, ClientSession() as session:
        assert (
            await resolve_stream_url(session, f"{base_url}/station.pls")
            == "http://ice1.somafm.com/groovesalad-128-mp3"
        )
        assert (
            await resolve_stream_url(session, f"{base_url}/station.m3u")
            == "http://ice1.somafm.com/groovesalad-128-aac"
        )


@pytest.mark.asyncio
async def test_resolve_sends_user_agent(serve) -> None:
    seen: list[str] = []

    async def _handler(request: web.Request) -> web.Response:
        seen.append(request.headers.get("User-Agent", ""))
        return web.Response(text=PLS_BODY)

    app = web.Application()
    app.router.add_get("/station.pls", _handler)
    async with serve(app) as base_url, ClientSession() as session:
        await resolve_stream_url(session, f"{base_url}/station.pls", user_agent="radio-test/1")
    assert seen == ["radio-test/1"]


@pytest.mark.asyncio
async def test_resolve_http_error(serve) -> None:
    app = web.Application()
    app.router.add_get("/station.pls", _reply(status=404))

    async with serve(app) as base_url, ClientSession() as session:
        with pytest.raises(PlaylistError, match="404"):
            await resolve_stream_url(session, f"{base_url}/station.pls")


@pytest.mark.asyncio
async def test_resolve_malformed_playlist(serve) -> None:
    app = web.Application()
    app.router.add_get("/station.pls", _reply(text="garbage"))

    async with serve(app) as base_url, ClientSession() as session:
        with pytest.raises(PlaylistError):
            await resolve_stream_url(session, f"{base_url}/station.pls")


@pytest.mark.asyncio
async def test_resolve_unreachable_playlist(free_port: int) -> None:
    async with ClientSession() as session:
        with pytest.raises(PlaylistError):
            await resolve_stream_url(session, f"http://127.0.0.1:{free_port}/station.pls")
