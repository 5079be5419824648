"""HTTP ingestion of a live audio stream into a ByteBuffer."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from aiohttp import ClientError, ClientResponse, ClientSession, ClientTimeout, hdrs

from aioradio.exceptions import FetchError
from aioradio.models.config import PlayerConfig
from aioradio.util import format_byte_size

from .buffer import ByteBuffer
from .cancel import CancellationToken

logger = logging.getLogger(__name__)

# Callback invoked once the server answered with a success status.
ConnectedCallback = Callable[[], None]

# Callback invoked with (bytes_received, bytes_buffered) every progress interval.
ProgressCallback = Callable[[int, int], None]


def build_stream_timeout(config: PlayerConfig) -> ClientTimeout:
    """Create the timeout used while reading a long-lived stream body.

    There is no total limit since the body never ends on a live stream;
    ``request_timeout_s`` only bounds waiting for the response headers.
    """
    return ClientTimeout(
        total=None,
        connect=config.connect_timeout_s,
        sock_read=config.read_timeout_s,
    )


class NetworkFetcher:
    """
    Stream the body of one HTTP response into a ByteBuffer.

    The fetcher applies backpressure while the buffer is above its threshold,
    giving the decoder time to catch up, and evicts the oldest data if the
    buffer still ends up above its hard ceiling. It stops silently when the
    cancellation token fires and raises FetchError for transport failures.
    """

    def __init__(
        self,
        session: ClientSession,
        url: str,
        buffer: ByteBuffer,
        token: CancellationToken,
        *,
        config: PlayerConfig | None = None,
        on_connected: ConnectedCallback | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        """
        Initialize a fetcher for a resolved stream URL.

        Args:
            session: aiohttp session used for the request.
            url: Resolved stream URL.
            buffer: Buffer receiving the response body.
            token: Cancellation token of the owning attempt.
            config: Player configuration, defaults to PlayerConfig().
            on_connected: Invoked once the response status was accepted.
            on_progress: Invoked every config.progress_interval_bytes.
        """
        self._session = session
        self._url = url
        self._buffer = buffer
        self._token = token
        self._config = config or PlayerConfig()
        self._on_connected = on_connected
        self._on_progress = on_progress
        self.bytes_received = 0
        """Total bytes received by this fetcher."""
        self.backpressure_waits = 0
        """Number of backpressure pauses taken."""

    async def run(self) -> int:
        """
        Fetch until end of stream, failure or cancellation.

        The buffer is closed when this returns or raises, so the decoder can
        tell a finished stream from a starved one.

        Returns:
            Number of bytes received.

        Raises:
            FetchError: On connection errors, timeouts or non-success statuses.
        """
        try:
            await self._fetch()
        except (ClientError, TimeoutError) as err:
            if self._token.cancelled:
                return self.bytes_received
            raise FetchError(f"Stream request failed: {err!r}") from err
        finally:
            self._buffer.close()
        return self.bytes_received

    async def _fetch(self) -> None:
        logger.debug("Fetching stream from URL: %s", self._url)
        response = await self._token.guard(self._request())
        if response is None:
            return
        async with response:
            if not 200 <= response.status < 300:
                raise FetchError(
                    f"HTTP error: {response.status} {response.reason or ''}".rstrip(),
                    status=response.status,
                )
            logger.info(
                "Connected to %s (%s)",
                self._url,
                response.headers.get(hdrs.CONTENT_TYPE, "unknown content type"),
            )
            if self._on_connected is not None:
                self._on_connected()

            next_progress = self._config.progress_interval_bytes
            while not self._token.cancelled:
                chunk = await self._token.guard(response.content.read(self._config.chunk_size))
                if chunk is None:
                    logger.debug("Fetch of %s cancelled", self._url)
                    return
                if not chunk:
                    logger.info(
                        "Stream %s ended after %s",
                        self._url,
                        format_byte_size(self.bytes_received),
                    )
                    return
                if not await self._wait_for_capacity():
                    return
                self._buffer.write(chunk)
                self._buffer.enforce_limit(self._config.eviction_fraction)
                self.bytes_received += len(chunk)
                if self.bytes_received >= next_progress:
                    next_progress = self.bytes_received + self._config.progress_interval_bytes
                    self._report_progress()

    async def _request(self) -> ClientResponse:
        async with asyncio.timeout(self._config.request_timeout_s):
            return await self._session.get(
                self._url,
                timeout=build_stream_timeout(self._config),
                headers={hdrs.USER_AGENT: self._config.user_agent},
            )

    async def _wait_for_capacity(self) -> bool:
        """Pause while the buffer is above the backpressure threshold.

        Returns:
            False if the token was cancelled while waiting.
        """
        waited = 0.0
        while (
            len(self._buffer) > self._config.backpressure_threshold_bytes
            and waited < self._config.backpressure_max_wait_s
        ):
            self.backpressure_waits += 1
            if not await self._token.sleep(self._config.backpressure_pause_s):
                return False
            waited += self._config.backpressure_pause_s
        return not self._token.cancelled

    def _report_progress(self) -> None:
        buffered = self._buffer.available
        logger.debug(
            "Received %s, buffer holds %s",
            format_byte_size(self.bytes_received),
            format_byte_size(buffered),
        )
        if self._on_progress is not None:
            self._on_progress(self.bytes_received, buffered)
