"""
Dimension Readers

Two implementations of the same lookup interface:
- StoreDimensionReader reads straight from the dimension store
- CachedDimensionReader wraps another reader with the cache-aside policy:
  populate a whole row on miss, repair missing fields on partial hit
"""

from abc import ABC, abstractmethod
from typing import Callable, Dict, Sequence

import structlog
from prometheus_client import Counter

from sku_enrichment.cache.lookup_cache import LookupCache, cache_key
from sku_enrichment.enrichment.retry import RetryPolicy, retry_call
from sku_enrichment.models import DimensionTable
from sku_enrichment.storage.dimension_store import StoreConnection

logger = structlog.get_logger(__name__)


# =============================================================================
# METRICS
# =============================================================================

CACHE_LOOKUPS = Counter(
    "sku_enrichment_cache_lookups_total",
    "Dimension lookups by cache outcome",
    ["table", "result"],
)

STORE_READS = Counter(
    "sku_enrichment_store_reads_total",
    "Reads issued against the dimension store",
    ["table", "kind"],
)


class DimensionReader(ABC):
    """Resolves requested fields of one dimension row"""

    @abstractmethod
    def lookup(
        self,
        table: DimensionTable,
        entity_id: str,
        fields: Sequence[str],
    ) -> Dict[str, str]:
        """
        Read fields of a dimension row.

        Returns:
            Mapping of the fields that have a non-null value; fields absent
            from the row are absent from the mapping
        """
        pass


class StoreDimensionReader(DimensionReader):
    """
    Reads from the dimension store over a lazily opened connection.

    ``connection_provider`` is only called on the first read, so partitions
    that are served entirely from cache never open a store connection.
    """

    def __init__(
        self,
        connection_provider: Callable[[], StoreConnection],
        column_family: str = "info",
        retry_policy: RetryPolicy = RetryPolicy(),
    ):
        self._connection_provider = connection_provider
        self._column_family = column_family
        self._retry = retry_policy

    def lookup(
        self,
        table: DimensionTable,
        entity_id: str,
        fields: Sequence[str],
    ) -> Dict[str, str]:
        conn = self._connection_provider()

        if len(fields) == 1:
            (field,) = fields
            STORE_READS.labels(table=table.name, kind="field").inc()
            value = retry_call(
                self._retry, "store.get_field",
                conn.get_field, table.name, entity_id, self._column_family, field,
                on_retry=conn.recover,
            )
            return {} if value is None else {field: value}

        STORE_READS.labels(table=table.name, kind="row").inc()
        row = retry_call(
            self._retry, "store.get_fields",
            conn.get_fields, table.name, entity_id, self._column_family, list(fields),
            on_retry=conn.recover,
        )
        return {k: v for k, v in row.items() if v is not None}


class CachedDimensionReader(DimensionReader):
    """
    Cache-aside decorator over a backing reader.

    - Miss: read every declared field of the row from the backing reader,
      cache the full row with a TTL, return it
    - Hit: return the cached row; each requested field missing from it is
      read on its own and written back into the entry without touching
      its TTL; an entry gone by the time it is read counts as a miss
    """

    def __init__(
        self,
        cache: LookupCache,
        backing: DimensionReader,
        ttl_seconds: int = 24 * 60 * 60,
        retry_policy: RetryPolicy = RetryPolicy(),
    ):
        self._cache = cache
        self._backing = backing
        self._ttl = ttl_seconds
        self._retry = retry_policy

    def _populate(self, table: DimensionTable, entity_id: str, key: str) -> Dict[str, str]:
        CACHE_LOOKUPS.labels(table=table.name, result="miss").inc()
        row = self._backing.lookup(table, entity_id, table.fields)
        if row:
            retry_call(self._retry, "cache.set_fields", self._cache.set_fields, key, row, self._ttl)
        else:
            logger.debug("Dimension row not found in store", table=table.name, entity_id=entity_id)
        return row

    def lookup(
        self,
        table: DimensionTable,
        entity_id: str,
        fields: Sequence[str],
    ) -> Dict[str, str]:
        key = cache_key(table.name, entity_id)

        if not retry_call(self._retry, "cache.exists", self._cache.exists, key):
            return self._populate(table, entity_id, key)

        row = retry_call(self._retry, "cache.get_all", self._cache.get_all, key)
        if not row:
            # Expired between EXISTS and HGETALL
            return self._populate(table, entity_id, key)

        missing = [field for field in fields if field not in row]
        if not missing:
            CACHE_LOOKUPS.labels(table=table.name, result="hit").inc()
            return row

        CACHE_LOOKUPS.labels(table=table.name, result="partial").inc()
        for field in missing:
            repaired = self._backing.lookup(table, entity_id, (field,))
            if field in repaired:
                row[field] = repaired[field]
                retry_call(
                    self._retry, "cache.set_field",
                    self._cache.set_field, key, field, repaired[field], self._ttl,
                )

        logger.debug(
            "Repaired partial cache entry",
            table=table.name,
            entity_id=entity_id,
            fields=missing,
        )
        return row
