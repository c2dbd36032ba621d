"""
Partition-scoped resources.

A partition worker owns exactly one cache handle and at most one store
connection for the lifetime of its rows.
"""

from typing import Optional, Protocol

import structlog

from sku_enrichment.cache.lookup_cache import LookupCache
from sku_enrichment.enrichment.readers import CachedDimensionReader, StoreDimensionReader
from sku_enrichment.enrichment.retry import RetryPolicy
from sku_enrichment.storage.dimension_store import DimensionStore, StoreConnection

logger = structlog.get_logger(__name__)


class CacheFactory(Protocol):
    def acquire(self) -> LookupCache:
        ...


class PartitionResources:
    """
    Scoped cache handle and lazily opened store connection.

    The cache handle is opened on enter; the store connection on the first
    store read. Both are released on exit, whether the partition finished or
    failed. Open failures propagate; close failures are logged only.

    Example:
        with PartitionResources(cache_factory, store, partition=0) as res:
            reader = res.reader(ttl_seconds=86400)
            reader.lookup(table, "S1", ["sku_name"])
    """

    def __init__(
        self,
        cache_factory: CacheFactory,
        store: DimensionStore,
        partition: int,
        retry_policy: RetryPolicy = RetryPolicy(),
    ):
        self._cache_factory = cache_factory
        self._store = store
        self._retry = retry_policy
        self.partition = partition
        self.cache: Optional[LookupCache] = None
        self._connection: Optional[StoreConnection] = None

    def __enter__(self) -> "PartitionResources":
        self.cache = self._cache_factory.acquire()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()

    @property
    def store_connection_opened(self) -> bool:
        return self._connection is not None

    def store_connection(self) -> StoreConnection:
        if self._connection is None:
            self._connection = self._store.connect()
            logger.debug("Opened store connection for partition", partition=self.partition)
        return self._connection

    def reader(self, ttl_seconds: int) -> CachedDimensionReader:
        if self.cache is None:
            raise RuntimeError("Partition resources are not open")
        backing = StoreDimensionReader(
            self.store_connection,
            column_family=self._store.column_family,
            retry_policy=self._retry,
        )
        return CachedDimensionReader(self.cache, backing, ttl_seconds=ttl_seconds, retry_policy=self._retry)

    def release(self) -> None:
        if self._connection is not None:
            try:
                self._connection.close()
            except Exception as e:
                logger.warning("Failed to close store connection", partition=self.partition, error=str(e))
            self._connection = None

        if self.cache is not None:
            try:
                self.cache.close()
            except Exception as e:
                logger.warning("Failed to close cache handle", partition=self.partition, error=str(e))
            self.cache = None
