"""
Micro-batch Runner

Drives one trigger at a time: events -> WindowAggregator -> BatchEnricher.
Enrichment is idempotent, so a failed batch is retried as a whole; after
the last attempt the error is fatal to the pipeline.
"""

import asyncio
import time
from typing import Callable, Iterable, List, Sequence

import structlog
from prometheus_client import Counter

from sku_enrichment.enrichment.batch_enricher import BatchEnricher, BatchResult
from sku_enrichment.exceptions import BatchProcessingError
from sku_enrichment.models import WindowAggregate
from sku_enrichment.streaming.kafka_source import KafkaEventSource
from sku_enrichment.streaming.window_aggregator import EventBatch, WindowAggregator

logger = structlog.get_logger(__name__)


BATCHES = Counter(
    "sku_enrichment_batches_total",
    "Micro-batches by outcome",
    ["status"],
)


class MicroBatchRunner:
    """
    Sequential trigger loop.

    Example:
        runner = MicroBatchRunner(aggregator, enricher, max_attempts=3)
        for frame in frames:
            runner.run_batch(frame)
        runner.finish()
    """

    def __init__(
        self,
        aggregator: WindowAggregator,
        enricher: BatchEnricher,
        max_attempts: int = 3,
        backoff_seconds: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.aggregator = aggregator
        self.enricher = enricher
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self._sleep = sleep
        self.next_batch_id = 0

    def _enrich(self, aggregates: Sequence[WindowAggregate]) -> BatchResult:
        batch_id = self.next_batch_id
        attempt = 1
        while True:
            try:
                result = self.enricher.process_batch(aggregates, batch_id)
                break
            except BatchProcessingError as e:
                if attempt >= self.max_attempts:
                    BATCHES.labels(status="failed").inc()
                    logger.error("Batch failed permanently", batch_id=batch_id, attempts=attempt, error=str(e))
                    raise
                BATCHES.labels(status="retried").inc()
                logger.warning("Retrying batch", batch_id=batch_id, attempt=attempt, error=str(e))
                self._sleep(self.backoff_seconds * attempt)
                attempt += 1

        BATCHES.labels(status="succeeded").inc()
        self.next_batch_id += 1
        return result

    def run_batch(self, events: EventBatch) -> BatchResult:
        """Aggregate one event batch and enrich the windows it finalizes"""
        aggregates = self.aggregator.process_batch(events)
        return self._enrich(aggregates)

    def finish(self) -> BatchResult:
        """Emit and enrich every window still open"""
        return self._enrich(self.aggregator.flush())

    def run(self, batches: Iterable[EventBatch], flush: bool = True) -> List[BatchResult]:
        results = [self.run_batch(batch) for batch in batches]
        if flush:
            results.append(self.finish())
        return results

    async def run_source(self, source: KafkaEventSource) -> None:
        """Consume ``source`` until it stops, committing after every batch"""
        await source.start()
        try:
            async for frame in source.batches():
                await asyncio.to_thread(self.run_batch, frame)
                await source.commit()
        finally:
            await source.stop()
