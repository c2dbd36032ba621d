"""
Dimension Resolver

Walks the fixed dimension chain of a product:

    product -> product family
            -> category3 -> category2 -> category1
            -> trademark

Each hop depends on an id produced by an earlier hop, so hops run strictly in
sequence. Every hop is a ``resolve_one`` call against a ``DimensionReader``.
"""

from typing import Dict, Optional, Sequence

import structlog

from sku_enrichment.config.settings import UnresolvedPolicy
from sku_enrichment.enrichment.readers import DimensionReader
from sku_enrichment.exceptions import DimensionNotFound, UnresolvedDimension
from sku_enrichment.models import (
    CATEGORY1_FIELDS,
    CATEGORY2_FIELDS,
    CATEGORY3_FIELDS,
    PRODUCT_FAMILY_FIELDS,
    PRODUCT_FIELDS,
    TRADEMARK_FIELDS,
    DimensionCatalog,
    DimensionTable,
    EnrichedFields,
)

logger = structlog.get_logger(__name__)


class DimensionResolver:
    """
    Resolves the enrichment chain of one product at a time.

    With ``UnresolvedPolicy.DROP`` the first hop that cannot be resolved
    aborts the chain with ``UnresolvedDimension``. With
    ``UnresolvedPolicy.EMIT_NULLS`` the chain continues and unresolved
    attributes (and everything hanging off a null id) stay ``None``.
    """

    def __init__(
        self,
        reader: DimensionReader,
        catalog: DimensionCatalog,
        policy: UnresolvedPolicy = UnresolvedPolicy.DROP,
    ):
        self.reader = reader
        self.catalog = catalog
        self.policy = policy

    def resolve_one(
        self,
        table: DimensionTable,
        entity_id: Optional[str],
        fields: Sequence[str],
    ) -> Dict[str, str]:
        """
        Look up ``fields`` of a single row.

        Raises:
            DimensionNotFound: if the id is null or any requested field has
                no value
        """
        if not entity_id:
            raise DimensionNotFound(table.name, None, missing=fields)

        row = self.reader.lookup(table, entity_id, fields)
        values = {field: row[field] for field in fields if row.get(field) is not None}
        missing = [field for field in fields if field not in values]
        if missing:
            raise DimensionNotFound(table.name, entity_id, missing=missing, partial=values)
        return values

    def _hop(
        self,
        sku_id: str,
        table: DimensionTable,
        entity_id: Optional[str],
        fields: Sequence[str],
    ) -> Dict[str, str]:
        try:
            return self.resolve_one(table, entity_id, fields)
        except DimensionNotFound as exc:
            if self.policy is UnresolvedPolicy.DROP:
                raise UnresolvedDimension(sku_id, exc) from exc
            logger.debug("Emitting with unresolved dimension", sku_id=sku_id, error=str(exc))
            return exc.partial

    def resolve_chain(self, sku_id: str) -> EnrichedFields:
        """
        Resolve every attribute of the product's dimension chain.

        Raises:
            UnresolvedDimension: under the drop policy, on the first hop that
                cannot be resolved
        """
        sku = self._hop(sku_id, self.catalog.product, sku_id, PRODUCT_FIELDS)
        spu = self._hop(sku_id, self.catalog.product_family, sku.get("spu_id"), PRODUCT_FAMILY_FIELDS)
        c3 = self._hop(sku_id, self.catalog.category3, sku.get("category3_id"), CATEGORY3_FIELDS)
        c2 = self._hop(sku_id, self.catalog.category2, c3.get("category2_id"), CATEGORY2_FIELDS)
        c1 = self._hop(sku_id, self.catalog.category1, c2.get("category1_id"), CATEGORY1_FIELDS)
        tm = self._hop(sku_id, self.catalog.trademark, sku.get("tm_id"), TRADEMARK_FIELDS)

        return EnrichedFields(
            sku_name=sku.get("sku_name"),
            spu_id=sku.get("spu_id"),
            spu_name=spu.get("spu_name"),
            trademark_id=sku.get("tm_id"),
            trademark_name=tm.get("tm_name"),
            category3_id=sku.get("category3_id"),
            category3_name=c3.get("name"),
            category2_id=c3.get("category2_id"),
            category2_name=c2.get("name"),
            category1_id=c2.get("category1_id"),
            category1_name=c1.get("name"),
        )
