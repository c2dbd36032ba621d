"""
Streaming Module
"""
from .kafka_source import KafkaEventSource, SourceConfig
from .runner import MicroBatchRunner
from .window_aggregator import WindowAggregator, events_to_frame

__all__ = [
    "KafkaEventSource",
    "SourceConfig",
    "MicroBatchRunner",
    "WindowAggregator",
    "events_to_frame",
]
