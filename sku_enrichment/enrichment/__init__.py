"""
Dimension Enrichment Module
"""
from .batch_enricher import BatchEnricher, BatchResult, partition_rows
from .readers import CachedDimensionReader, DimensionReader, StoreDimensionReader
from .resolver import DimensionResolver
from .resources import PartitionResources
from .retry import RetryPolicy, retry_call

__all__ = [
    "BatchEnricher",
    "BatchResult",
    "partition_rows",
    "CachedDimensionReader",
    "DimensionReader",
    "StoreDimensionReader",
    "DimensionResolver",
    "PartitionResources",
    "RetryPolicy",
    "retry_call",
]
