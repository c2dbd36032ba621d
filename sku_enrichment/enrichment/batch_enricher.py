"""
Batch Enricher

Turns one micro-batch of window aggregates into enriched records:
1. Split rows into partitions by product id
2. Resolve each partition's rows on its own worker thread, with its own
   cache handle and store connection
3. Append every resolved record to the sink in one write
"""

import time
import zlib
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import List, Sequence, Tuple

import structlog
from prometheus_client import Counter, Histogram

from sku_enrichment.config.settings import EnrichmentSettings
from sku_enrichment.enrichment.resolver import DimensionResolver
from sku_enrichment.enrichment.resources import CacheFactory, PartitionResources
from sku_enrichment.enrichment.retry import RetryPolicy
from sku_enrichment.exceptions import BatchProcessingError, UnresolvedDimension
from sku_enrichment.models import DimensionCatalog, EnrichedRecord, WindowAggregate
from sku_enrichment.sink.parquet_sink import Sink
from sku_enrichment.storage.dimension_store import DimensionStore

logger = structlog.get_logger(__name__)


# =============================================================================
# METRICS
# =============================================================================

RECORDS_DROPPED = Counter(
    "sku_enrichment_records_dropped_total",
    "Aggregate rows dropped because their dimension chain did not resolve",
    ["table"],
)

RECORDS_EMITTED = Counter(
    "sku_enrichment_records_emitted_total",
    "Enriched records handed to the sink",
)

BATCH_DURATION = Histogram(
    "sku_enrichment_batch_seconds",
    "Time spent enriching a micro-batch",
)


@dataclass
class PartitionOutcome:
    partition: int
    records: List[EnrichedRecord] = field(default_factory=list)
    dropped: int = 0


@dataclass
class BatchResult:
    """Summary of one enriched micro-batch"""
    batch_id: int
    input_rows: int
    output_rows: int
    dropped_rows: int
    partitions: int
    duration_seconds: float


def partition_rows(
    rows: Sequence[WindowAggregate],
    partition_count: int,
) -> List[Tuple[int, List[WindowAggregate]]]:
    """
    Split rows by a stable hash of ``sku_id``, keeping delivery order inside
    each partition.

    Returns:
        ``(bucket, rows)`` pairs for the non-empty buckets, where ``bucket``
        is ``crc32(sku_id) % partition_count``
    """
    buckets: List[List[WindowAggregate]] = [[] for _ in range(partition_count)]
    for row in rows:
        buckets[zlib.crc32(row.sku_id.encode("utf-8")) % partition_count].append(row)
    return [(index, bucket) for index, bucket in enumerate(buckets) if bucket]


class BatchEnricher:
    """
    Micro-batch enrichment orchestrator.

    Example:
        enricher = BatchEnricher(store, cache_factory, sink, catalog, settings.enrichment)
        result = enricher.process_batch(aggregates, batch_id=3)
    """

    def __init__(
        self,
        store: DimensionStore,
        cache_factory: CacheFactory,
        sink: Sink,
        catalog: DimensionCatalog,
        config: EnrichmentSettings,
    ):
        self.store = store
        self.cache_factory = cache_factory
        self.sink = sink
        self.catalog = catalog
        self.config = config
        self.retry_policy = RetryPolicy(
            max_attempts=config.max_attempts,
            backoff_seconds=config.retry_backoff_seconds,
        )

    def _process_partition(self, partition: int, rows: Sequence[WindowAggregate]) -> PartitionOutcome:
        outcome = PartitionOutcome(partition=partition)

        with PartitionResources(self.cache_factory, self.store, partition, self.retry_policy) as resources:
            resolver = DimensionResolver(
                resources.reader(self.config.cache_ttl_seconds),
                self.catalog,
                self.config.unresolved_policy,
            )
            for row in rows:
                try:
                    fields = resolver.resolve_chain(row.sku_id)
                except UnresolvedDimension as exc:
                    RECORDS_DROPPED.labels(table=exc.table).inc()
                    logger.info(
                        "Dropping row with unresolved dimension chain",
                        sku_id=row.sku_id,
                        table=exc.table,
                        entity_id=exc.entity_id,
                        window_start=row.window_start.isoformat(),
                    )
                    outcome.dropped += 1
                    continue
                outcome.records.append(EnrichedRecord.build(row, fields))

            logger.debug(
                "Partition processed",
                partition=partition,
                rows=len(rows),
                emitted=len(outcome.records),
                store_connection=resources.store_connection_opened,
            )

        return outcome

    def process_batch(self, rows: Sequence[WindowAggregate], batch_id: int) -> BatchResult:
        """
        Enrich one micro-batch and append the result to the sink.

        Raises:
            BatchProcessingError: if any partition or the sink write failed;
                the whole batch should be reprocessed
        """
        start = time.perf_counter()

        if not rows:
            logger.debug("Empty batch, nothing to write", batch_id=batch_id)
            return BatchResult(batch_id, 0, 0, 0, 0, time.perf_counter() - start)

        partitions = partition_rows(rows, self.config.partition_count)

        try:
            with ThreadPoolExecutor(
                max_workers=len(partitions),
                thread_name_prefix=f"enrich-{batch_id}",
            ) as pool:
                futures = [
                    pool.submit(self._process_partition, bucket, part)
                    for bucket, part in partitions
                ]
                outcomes = [future.result() for future in futures]
        except Exception as e:
            logger.error("Batch enrichment failed", batch_id=batch_id, error=str(e), error_type=type(e).__name__)
            raise BatchProcessingError(batch_id, str(e)) from e

        records = [record for outcome in outcomes for record in outcome.records]
        dropped = sum(outcome.dropped for outcome in outcomes)

        if records:
            try:
                self.sink.append(records, batch_id)
            except Exception as e:
                logger.error("Sink append failed", batch_id=batch_id, error=str(e))
                raise BatchProcessingError(batch_id, f"sink append failed: {e}") from e
            RECORDS_EMITTED.inc(len(records))

        duration = time.perf_counter() - start
        BATCH_DURATION.observe(duration)

        logger.info(
            "Batch enriched",
            batch_id=batch_id,
            input_rows=len(rows),
            output_rows=len(records),
            dropped_rows=dropped,
            partitions=len(partitions),
            duration_seconds=round(duration, 3),
        )

        return BatchResult(
            batch_id=batch_id,
            input_rows=len(rows),
            output_rows=len(records),
            dropped_rows=dropped,
            partitions=len(partitions),
            duration_seconds=duration,
        )
