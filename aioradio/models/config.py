"""Configuration for the aioradio player."""

from __future__ import annotations

from dataclasses import dataclass

from mashumaro.config import BaseConfig
from mashumaro.mixins.orjson import DataClassORJSONMixin

from aioradio.const import DEFAULT_USER_AGENT

KIB = 1024
MIB = 1024 * KIB


@dataclass(frozen=True)
class PlayerConfig(DataClassORJSONMixin):
    """Tunables for buffering, decoding, reconnecting and audio output."""

    # Byte buffer
    max_buffer_bytes: int = MIB
    """Hard ceiling of the byte buffer; exceeding it evicts the oldest data."""
    backpressure_threshold_bytes: int = 768 * KIB
    """Above this buffer length the network fetcher pauses before appending."""
    cleanup_threshold_bytes: int = 256 * KIB
    """Consumed bytes beyond this are compacted away."""
    eviction_fraction: float = 0.25
    """Share of the buffer dropped by one emergency eviction."""
    backpressure_pause_s: float = 0.01
    """Duration of a single backpressure pause."""
    backpressure_max_wait_s: float = 1.0
    """Maximum time spent pausing for one chunk before evicting instead."""

    # Network
    request_timeout_s: float | None = 300.0
    """Timeout for the response headers of a stream request; None disables it."""
    connect_timeout_s: float = 15.0
    """Timeout for establishing the connection."""
    read_timeout_s: float = 30.0
    """Timeout for a single socket read, detects stalled streams."""
    playlist_timeout_s: float = 10.0
    """Total timeout for fetching a playlist file."""
    chunk_size: int = 8 * KIB
    """Maximum size of one network read."""
    progress_interval_bytes: int = 64 * KIB
    """Publish a buffer progress event every time this many bytes arrived."""
    user_agent: str = DEFAULT_USER_AGENT
    """User-Agent header sent with every request."""

    # Decoding
    probe_size_bytes: int = 32 * KIB
    """Upper bound of the bytes FFmpeg reads to identify the stream."""
    analyze_duration_s: float = 0.5
    """Upper bound of the media duration FFmpeg analyzes before decoding."""
    decode_backoff_initial_s: float = 0.005
    """First backoff delay when the decoder is starved of bytes."""
    decode_backoff_max_s: float = 0.1
    """Upper bound of the starvation backoff delay."""
    decode_backoff_jitter: float = 0.2
    """Relative jitter applied to starvation backoff delays."""
    starvation_timeout_s: float = 15.0
    """Sustained starvation for this long is treated as end of stream."""
    max_consecutive_decode_errors: int = 64
    """Consecutive corrupt frames tolerated before the attempt fails."""
    frame_queue_size: int = 32
    """Capacity of the decoded frame channel between decoder and sink."""
    frame_push_timeout_s: float = 0.05
    """Wait slice used while the decoded frame channel is full."""

    # Output
    sink_max_queued_s: float = 2.0
    """Decoded audio queued on the device before the bridge stalls."""
    output_device: int | str | None = None
    """sounddevice output device index or name, None for the default device."""
    output_latency: str = "high"
    """sounddevice latency hint."""
    output_blocksize: int = 2048
    """Frames per device callback."""

    # Sessions
    auto_reconnect: bool = True
    """Whether failed sessions are retried."""
    max_reconnect_attempts: int = 3
    """Consecutive failed attempts that are retried before giving up."""
    reconnect_delay_s: float = 2.0
    """Fixed delay before a reconnect attempt."""
    session_shutdown_timeout_s: float = 2.0
    """Time granted to a superseded session before it is detached."""

    def __post_init__(self) -> None:
        """Validate field values."""
        if self.max_buffer_bytes <= 0:
            raise ValueError(f"max_buffer_bytes must be positive, got {self.max_buffer_bytes}")
        if not 0 < self.backpressure_threshold_bytes < self.max_buffer_bytes:
            raise ValueError(
                "backpressure_threshold_bytes must be positive and below max_buffer_bytes, "
                f"got {self.backpressure_threshold_bytes}"
            )
        if self.cleanup_threshold_bytes < 0:
            raise ValueError(
                f"cleanup_threshold_bytes must not be negative, got {self.cleanup_threshold_bytes}"
            )
        if not 0 < self.eviction_fraction <= 1:
            raise ValueError(f"eviction_fraction must be in (0, 1], got {self.eviction_fraction}")
        if self.chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {self.chunk_size}")
        if self.probe_size_bytes < 32:
            raise ValueError(f"probe_size_bytes must be at least 32, got {self.probe_size_bytes}")
        if self.analyze_duration_s < 0:
            raise ValueError(
                f"analyze_duration_s must not be negative, got {self.analyze_duration_s}"
            )
        if self.frame_queue_size <= 0:
            raise ValueError(f"frame_queue_size must be positive, got {self.frame_queue_size}")
        if self.decode_backoff_initial_s <= 0 or self.decode_backoff_max_s < self.decode_backoff_initial_s:
            raise ValueError("decode backoff delays must be positive and max >= initial")
        if not 0 <= self.decode_backoff_jitter < 1:
            raise ValueError(
                f"decode_backoff_jitter must be in [0, 1), got {self.decode_backoff_jitter}"
            )
        if self.max_reconnect_attempts < 0:
            raise ValueError(
                f"max_reconnect_attempts must not be negative, got {self.max_reconnect_attempts}"
            )
        if self.reconnect_delay_s < 0:
            raise ValueError(f"reconnect_delay_s must not be negative, got {self.reconnect_delay_s}")

    class Config(BaseConfig):
        """Config for parsing json configuration."""

        omit_none = True
