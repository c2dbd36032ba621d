"""
Kafka Event Source

Reads order-detail events from Kafka and groups them into micro-batches:
- One batch per trigger interval (bounded by max records)
- JSON deserialization and validation into OrderDetailEvent
- Manual offset commits, issued only after a batch has been fully processed
"""

import json
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, List, Optional

import polars as pl
import structlog
from aiokafka import AIOKafkaConsumer
from pydantic import ValidationError
from prometheus_client import Counter

from sku_enrichment.config.settings import KafkaSettings
from sku_enrichment.models import OrderDetailEvent
from sku_enrichment.streaming.window_aggregator import events_to_frame

logger = structlog.get_logger(__name__)


EVENTS_CONSUMED = Counter(
    "sku_enrichment_events_consumed_total",
    "Messages consumed from Kafka",
    ["topic", "status"],
)


@dataclass
class SourceConfig:
    """Kafka consumer configuration"""
    topic: str
    group_id: str = "sku-order-enrichment"
    bootstrap_servers: str = "localhost:9092"
    auto_offset_reset: str = "earliest"
    trigger_interval_ms: int = 5000
    max_records: int = 5000
    session_timeout_ms: int = 30000

    @classmethod
    def from_settings(cls, config: KafkaSettings) -> "SourceConfig":
        return cls(
            topic=config.topic_order_detail,
            group_id=config.consumer_group,
            bootstrap_servers=config.bootstrap_servers,
            auto_offset_reset=config.auto_offset_reset,
            trigger_interval_ms=config.trigger_interval_ms,
            max_records=config.max_poll_records,
            session_timeout_ms=config.session_timeout_ms,
        )


def parse_event(data: Any) -> Optional[Dict[str, Any]]:
    """Validate one decoded message; ``None`` if it is not an event object"""
    if not isinstance(data, dict):
        return None
    try:
        return OrderDetailEvent.model_validate(data).model_dump()
    except ValidationError as e:
        logger.warning("Event validation failed", error=str(e))
        return None


class KafkaEventSource:
    """
    Micro-batching Kafka consumer.

    Example:
        source = KafkaEventSource(SourceConfig(topic="dwd_trade_order_detail"))
        await source.start()
        async for frame in source.batches():
            ...
            await source.commit()
    """

    def __init__(self, config: SourceConfig):
        self.config = config
        self._consumer: Optional[AIOKafkaConsumer] = None
        self._running = False

    def _create_consumer(self) -> AIOKafkaConsumer:
        return AIOKafkaConsumer(
            self.config.topic,
            bootstrap_servers=self.config.bootstrap_servers,
            group_id=self.config.group_id,
            auto_offset_reset=self.config.auto_offset_reset,
            enable_auto_commit=False,
            session_timeout_ms=self.config.session_timeout_ms,
            value_deserializer=self._deserialize,
        )

    @staticmethod
    def _deserialize(raw: Optional[bytes]) -> Any:
        if raw is None:
            return None
        try:
            return json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            return None

    async def start(self) -> None:
        logger.info(
            "Starting Kafka event source",
            topic=self.config.topic,
            group_id=self.config.group_id,
        )
        self._consumer = self._create_consumer()
        await self._consumer.start()
        self._running = True

    async def batches(self) -> AsyncIterator[pl.DataFrame]:
        """Yield one event frame per trigger interval; empty intervals are skipped"""
        if self._consumer is None:
            raise RuntimeError("Source not started. Call start() first.")

        while self._running:
            polled = await self._consumer.getmany(
                timeout_ms=self.config.trigger_interval_ms,
                max_records=self.config.max_records,
            )
            events: List[Dict[str, Any]] = []
            for messages in polled.values():
                for message in messages:
                    event = parse_event(message.value)
                    if event is None:
                        EVENTS_CONSUMED.labels(topic=message.topic, status="invalid").inc()
                        continue
                    EVENTS_CONSUMED.labels(topic=message.topic, status="success").inc()
                    events.append(event)

            if not polled:
                continue
            yield events_to_frame(events)

    async def commit(self) -> None:
        if self._consumer is not None:
            await self._consumer.commit()

    async def stop(self) -> None:
        logger.info("Stopping Kafka event source")
        self._running = False
        if self._consumer is not None:
            await self._consumer.stop()
            self._consumer = None
        logger.info("Kafka event source stopped")
