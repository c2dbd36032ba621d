"""
Pipeline exception hierarchy.
"""

from typing import Dict, Optional


class EnrichmentError(Exception):
    """Base class for enrichment pipeline errors"""


class DimensionNotFound(EnrichmentError):
    """A single dimension lookup produced no usable row."""

    def __init__(
        self,
        table: str,
        entity_id: Optional[str],
        missing: tuple = (),
        partial: Optional[Dict[str, str]] = None,
    ):
        self.table = table
        self.entity_id = entity_id
        self.missing = tuple(missing)
        self.partial = dict(partial or {})
        if entity_id is None:
            detail = "null key"
        else:
            detail = f"missing fields {list(self.missing)}"
        super().__init__(f"{table}[{entity_id}]: {detail}")


class UnresolvedDimension(EnrichmentError):
    """The dimension chain of a product could not be fully resolved."""

    def __init__(self, sku_id: str, cause: DimensionNotFound):
        self.sku_id = sku_id
        self.table = cause.table
        self.entity_id = cause.entity_id
        super().__init__(f"Unresolved dimension chain for sku {sku_id}: {cause}")


class StoreUnavailableError(EnrichmentError):
    """Cache or store call kept failing after all retry attempts."""


class BatchProcessingError(EnrichmentError):
    """A micro-batch failed and must be reprocessed."""

    def __init__(self, batch_id: int, message: str):
        self.batch_id = batch_id
        super().__init__(f"Batch {batch_id} failed: {message}")
