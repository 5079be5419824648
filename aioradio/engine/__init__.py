"""Public interface for the aioradio playback engine."""

from .backoff import ExponentialBackoff, ReconnectPolicy
from .buffer import ByteBuffer
from .cancel import CancellationToken
from .decode import DecodedFrame, DecodePipeline, StreamReader, to_interleaved_float
from .events import EventBus, EventCallback, EventSubscription
from .fetcher import ConnectedCallback, NetworkFetcher, ProgressCallback
from .player import RadioPlayer
from .sink import AudioSink, PlaybackSink, SinkFactory
from .source import MediaSourceAdapter

__all__ = [
    "AudioSink",
    "ByteBuffer",
    "CancellationToken",
    "ConnectedCallback",
    "DecodePipeline",
    "DecodedFrame",
    "EventBus",
    "EventCallback",
    "EventSubscription",
    "ExponentialBackoff",
    "MediaSourceAdapter",
    "NetworkFetcher",
    "PlaybackSink",
    "ProgressCallback",
    "RadioPlayer",
    "ReconnectPolicy",
    "SinkFactory",
    "StreamReader",
    "to_interleaved_float",
]
