from __future__ import annotations

import orjson
import pytest

from aioradio.models import (
    CONNECTING,
    STOPPED,
    BufferProgressEvent,
    ConnectingEvent,
    ErrorEvent,
    PlaybackState,
    PlaybackStateType,
    PlayerConfig,
    PlayerEvent,
    StoppedEvent,
)


def test_error_event_roundtrip() -> None:
    event = ErrorEvent(message="HTTP error: 500", attempt=2, retrying=True)
    data = orjson.loads(event.to_json())
    assert data == {"message": "HTTP error: 500", "attempt": 2, "retrying": True, "type": "error"}

    parsed = PlayerEvent.from_json(event.to_json())
    assert isinstance(parsed, ErrorEvent)
    assert parsed == event


def test_event_discriminator_selects_subtype() -> None:
    parsed = PlayerEvent.from_dict(
        {"type": "buffer_progress", "bytes_received": 65536, "bytes_buffered": 1024}
    )
    assert parsed == BufferProgressEvent(bytes_received=65536, bytes_buffered=1024)
    assert isinstance(PlayerEvent.from_dict({"type": "stopped"}), StoppedEvent)
    assert PlayerEvent.from_dict({"type": "connecting", "url": "http://x"}) == ConnectingEvent(
        url="http://x"
    )


def test_playback_state_error_requires_message() -> None:
    with pytest.raises(ValueError):
        PlaybackState(PlaybackStateType.ERROR)
    with pytest.raises(ValueError):
        PlaybackState(PlaybackStateType.PLAYING, "unexpected")

    state = PlaybackState.error("gone")
    assert state.state == PlaybackStateType.ERROR
    assert state.message == "gone"


def test_playback_state_serialization() -> None:
    assert STOPPED.to_dict() == {"state": "stopped"}
    assert PlaybackState.error("gone").to_dict() == {"state": "error", "message": "gone"}
    assert PlaybackState.from_dict({"state": "connecting"}) == CONNECTING


def test_config_defaults() -> None:
    config = PlayerConfig()
    assert config.max_buffer_bytes == 1024 * 1024
    assert config.cleanup_threshold_bytes == 256 * 1024
    assert config.eviction_fraction == 0.25
    assert config.max_reconnect_attempts == 3
    assert config.reconnect_delay_s == 2.0
    assert config.auto_reconnect


def test_config_from_dict() -> None:
    config = PlayerConfig.from_dict({"max_reconnect_attempts": 5, "output_device": "pulse"})
    assert config.max_reconnect_attempts == 5
    assert config.output_device == "pulse"


@pytest.mark.parametrize(
    "kwargs",
    [
        {"max_buffer_bytes": 0},
        {"backpressure_threshold_bytes": 2 * 1024 * 1024},
        {"eviction_fraction": 1.5},
        {"chunk_size": 0},
        {"frame_queue_size": 0},
        {"decode_backoff_initial_s": 0.5, "decode_backoff_max_s": 0.1},
        {"max_reconnect_attempts": -1},
        {"reconnect_delay_s": -1.0},
    ],
)
def test_config_validation(kwargs: dict[str, object]) -> None:
    with pytest.raises(ValueError):
        PlayerConfig(**kwargs)
