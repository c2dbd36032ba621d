"""
Pipeline Entry Point

Builds the enrichment pipeline from settings and runs it against Kafka.
Usage:
    sku-enrichment
    sku-enrichment --create-schema --seed-dir ./data/dimensions
"""

import argparse
import asyncio
from dataclasses import dataclass
from typing import List, Optional

import structlog
from prometheus_client import start_http_server

from sku_enrichment.cache.lookup_cache import RedisCacheFactory
from sku_enrichment.config import Settings, get_settings
from sku_enrichment.config.logging import configure_logging
from sku_enrichment.enrichment.batch_enricher import BatchEnricher
from sku_enrichment.models import DimensionCatalog
from sku_enrichment.sink.parquet_sink import ParquetSink
from sku_enrichment.storage.connection import check_store_health
from sku_enrichment.storage.dimension_store import DimensionStore
from sku_enrichment.storage.seed import seed_from_directory
from sku_enrichment.streaming.kafka_source import KafkaEventSource, SourceConfig
from sku_enrichment.streaming.runner import MicroBatchRunner
from sku_enrichment.streaming.window_aggregator import WindowAggregator

logger = structlog.get_logger(__name__)


@dataclass
class Pipeline:
    store: DimensionStore
    cache_factory: RedisCacheFactory
    runner: MicroBatchRunner
    catalog: DimensionCatalog

    def close(self) -> None:
        self.cache_factory.close()
        self.store.dispose()


def build_pipeline(settings: Settings) -> Pipeline:
    """Wire store, cache, sink, aggregator and enricher from settings"""
    catalog = DimensionCatalog.from_settings(settings.tables)
    store = DimensionStore.from_settings(settings.store)
    cache_factory = RedisCacheFactory(settings.redis)
    sink = ParquetSink(settings.sink.root_path, settings.sink.table)

    enricher = BatchEnricher(store, cache_factory, sink, catalog, settings.enrichment)
    runner = MicroBatchRunner(
        WindowAggregator.from_settings(settings.window),
        enricher,
        max_attempts=settings.enrichment.batch_max_attempts,
    )
    return Pipeline(store=store, cache_factory=cache_factory, runner=runner, catalog=catalog)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="SKU order window enrichment pipeline")
    parser.add_argument(
        "--create-schema",
        action="store_true",
        help="Create the dimension store table before starting",
    )
    parser.add_argument(
        "--seed-dir",
        default=None,
        help="Load <table>.csv dimension exports from this directory before starting",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Override LOG_LEVEL (DEBUG, INFO, WARNING, ERROR)",
    )
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> None:
    args = parse_args(argv)
    settings = get_settings()
    configure_logging(settings.monitoring, args.log_level)

    if settings.monitoring.metrics_port:
        start_http_server(settings.monitoring.metrics_port)

    pipeline = build_pipeline(settings)
    try:
        if args.create_schema:
            pipeline.store.create_schema()
        if args.seed_dir:
            seed_from_directory(pipeline.store, pipeline.catalog, args.seed_dir)

        health = check_store_health(pipeline.store.engine)
        if health["status"] != "healthy":
            raise RuntimeError(f"Dimension store unavailable: {health.get('error')}")
        if not pipeline.cache_factory.ping():
            raise RuntimeError("Lookup cache unavailable")

        logger.info("Starting SKU order enrichment", app=settings.app_name, environment=settings.app_env)
        source = KafkaEventSource(SourceConfig.from_settings(settings.kafka))
        asyncio.run(pipeline.runner.run_source(source))
    finally:
        pipeline.close()
        logger.info("Pipeline shut down")


if __name__ == "__main__":
    main()
