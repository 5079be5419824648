"""Utility functions for aioradio."""

from __future__ import annotations


def format_byte_size(size: int) -> str:
    """Return a human readable representation of a byte count.

    Sizes of at least one megabyte are reported as ``"1.5 MB (1536 KB)"``,
    smaller ones as ``"512 KB"``.
    """
    kb = size / 1024
    mb = kb / 1024
    if mb >= 1.0:
        return f"{mb:.1f} MB ({kb:.0f} KB)"
    return f"{kb:.0f} KB"
