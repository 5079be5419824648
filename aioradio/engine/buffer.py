"""Bounded byte buffer between network ingestion and decoding."""

from __future__ import annotations

import logging
import threading

from aioradio.util import format_byte_size

logger = logging.getLogger(__name__)

# Defaults mirror PlayerConfig.
MAX_BUFFER_BYTES = 1024 * 1024
CLEANUP_THRESHOLD = 256 * 1024


class ByteBuffer:
    """
    Ordered bytes with a write end and a read cursor.

    The network fetcher appends with write(), the decoder consumes with read().
    Both run on different threads, so every operation takes the buffer lock for
    a short, non-blocking critical section. Invariant: 0 <= read_cursor <= len.

    Consumed bytes are compacted away once the cursor moves past the cleanup
    threshold. When the buffer grows beyond max_bytes, evict_oldest() drops the
    oldest data; this is a bounded data-loss event and the decoder has to
    resynchronize on the next frame boundary.
    """

    def __init__(
        self,
        *,
        max_bytes: int = MAX_BUFFER_BYTES,
        cleanup_threshold: int = CLEANUP_THRESHOLD,
    ) -> None:
        """
        Initialize an empty buffer.

        Args:
            max_bytes: Hard ceiling enforced by enforce_limit().
            cleanup_threshold: Consumed bytes kept before compaction.
        """
        if max_bytes <= 0:
            raise ValueError(f"max_bytes must be positive, got {max_bytes}")
        self._lock = threading.Lock()
        self._data = bytearray()
        self._cursor = 0
        self._closed = False
        self.max_bytes = max_bytes
        self.cleanup_threshold = cleanup_threshold
        self.bytes_written = 0
        """Total bytes ever written."""
        self.bytes_evicted = 0
        """Total bytes dropped by evictions."""
        self.evictions = 0
        """Number of evictions performed."""

    def __len__(self) -> int:
        """Return the number of bytes held, consumed or not."""
        with self._lock:
            return len(self._data)

    @property
    def read_cursor(self) -> int:
        """Position of the next unread byte."""
        with self._lock:
            return self._cursor

    @property
    def available(self) -> int:
        """Number of unread bytes."""
        with self._lock:
            return len(self._data) - self._cursor

    @property
    def closed(self) -> bool:
        """True once the writer signalled that no more data will arrive."""
        with self._lock:
            return self._closed

    @property
    def exhausted(self) -> bool:
        """True if the buffer is closed and every byte has been read."""
        with self._lock:
            return self._closed and self._cursor >= len(self._data)

    def write(self, data: bytes) -> None:
        """Append data at the write end."""
        if not data:
            return
        with self._lock:
            if self._closed:
                raise RuntimeError("Cannot write to a closed buffer")
            self._data.extend(data)
            self.bytes_written += len(data)

    def read(self, max_len: int) -> bytes:
        """Return up to max_len unread bytes and advance the cursor.

        Never blocks; an empty result means no data is available yet.
        """
        if max_len <= 0:
            return b""
        with self._lock:
            end = min(len(self._data), self._cursor + max_len)
            chunk = bytes(self._data[self._cursor : end])
            self._cursor = end
            if self._cursor > self.cleanup_threshold:
                self._compact_locked()
            return chunk

    def compact(self) -> None:
        """Drop consumed bytes and reset the cursor to zero."""
        with self._lock:
            self._compact_locked()

    def evict_oldest(self, fraction: float) -> int:
        """Drop the oldest fraction of the whole buffer.

        The cursor moves back by the same amount, saturating at zero, so unread
        bytes inside the evicted range are lost.

        Returns:
            Number of bytes evicted.
        """
        if not 0 < fraction <= 1:
            raise ValueError(f"fraction must be in (0, 1], got {fraction}")
        with self._lock:
            return self._evict_locked(fraction)

    def enforce_limit(self, fraction: float = 0.25) -> int:
        """Evict until the buffer is strictly shorter than max_bytes.

        Returns:
            Number of bytes evicted, 0 if the buffer was within its limit.
        """
        evicted = 0
        with self._lock:
            while len(self._data) >= self.max_bytes:
                evicted += self._evict_locked(fraction)
            remaining = len(self._data)
        if evicted:
            logger.warning(
                "Byte buffer overflow: evicted %s, %s remain",
                format_byte_size(evicted),
                format_byte_size(remaining),
            )
        return evicted

    def close(self) -> None:
        """Mark the end of the stream; remaining bytes can still be read."""
        with self._lock:
            self._closed = True

    def _compact_locked(self) -> None:
        if self._cursor:
            del self._data[: self._cursor]
            self._cursor = 0

    def _evict_locked(self, fraction: float) -> int:
        size = len(self._data)
        if not size:
            return 0
        count = max(1, int(size * fraction))
        del self._data[:count]
        self._cursor = max(0, self._cursor - count)
        self.bytes_evicted += count
        self.evictions += 1
        return count
