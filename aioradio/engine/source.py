"""Pull-style, non-seekable view of a ByteBuffer."""

from __future__ import annotations

import io

from .buffer import ByteBuffer

DEFAULT_READ_SIZE = 32 * 1024


class MediaSourceAdapter:
    """
    Expose a ByteBuffer as a non-seekable byte source.

    read() returns whatever is available right now. An empty result is not an
    end of stream while the buffer is still open: the stream is live and more
    bytes are on their way. Check exhausted to tell the two apart.
    """

    def __init__(self, buffer: ByteBuffer) -> None:
        """Wrap a byte buffer."""
        self._buffer = buffer
        self._position = 0

    @property
    def exhausted(self) -> bool:
        """True once the writer closed the buffer and every byte was read."""
        return self._buffer.exhausted

    def read(self, size: int = -1) -> bytes:
        """Return up to size bytes, or b"" if no data is available yet."""
        if size is None or size < 0:
            size = DEFAULT_READ_SIZE
        data = self._buffer.read(size)
        self._position += len(data)
        return data

    def readable(self) -> bool:
        """Return True; the source can always be read."""
        return True

    def seekable(self) -> bool:
        """Return False; live streams cannot seek."""
        return False

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        """Seeking is not supported."""
        raise io.UnsupportedOperation("Live stream sources are not seekable")

    def tell(self) -> int:
        """Return the number of bytes delivered so far."""
        return self._position
