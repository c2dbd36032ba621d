"""
Pipeline Data Models

Events flowing in, window aggregates flowing between stages, the dimension
catalog walked by the resolver, and the enriched records written to the sink.
"""

from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict

from sku_enrichment.config.settings import DimensionTableSettings


# =============================================================================
# EVENTS
# =============================================================================

class OrderDetailEvent(BaseModel):
    """
    Raw order-line fact.

    Key fields are optional on purpose: rows without ``sku_id`` or
    ``create_time`` are counted and filtered by the aggregator rather than
    rejected at parse time.
    """
    model_config = ConfigDict(extra="ignore")

    sku_id: Optional[str] = None
    sku_name: Optional[str] = None
    sku_num: Optional[int] = None
    order_price: Optional[float] = None
    create_time: Optional[datetime] = None


@dataclass(frozen=True)
class WindowAggregate:
    """Finalized per-product window"""
    sku_id: str
    window_start: datetime
    window_end: datetime
    total_sku_num: int
    total_order_price: float


# =============================================================================
# DIMENSIONS
# =============================================================================

PRODUCT_FIELDS = ("category3_id", "tm_id", "spu_id", "sku_name")
PRODUCT_FAMILY_FIELDS = ("spu_name",)
CATEGORY3_FIELDS = ("name", "category2_id")
CATEGORY2_FIELDS = ("name", "category1_id")
CATEGORY1_FIELDS = ("name",)
TRADEMARK_FIELDS = ("tm_name",)


@dataclass(frozen=True)
class DimensionTable:
    """A dimension table and the columns declared for it"""
    name: str
    fields: Tuple[str, ...]


@dataclass(frozen=True)
class DimensionCatalog:
    """The six tables of the dimension chain"""
    product: DimensionTable
    product_family: DimensionTable
    category3: DimensionTable
    category2: DimensionTable
    category1: DimensionTable
    trademark: DimensionTable

    @classmethod
    def from_settings(cls, tables: DimensionTableSettings) -> "DimensionCatalog":
        return cls(
            product=DimensionTable(tables.product, PRODUCT_FIELDS),
            product_family=DimensionTable(tables.product_family, PRODUCT_FAMILY_FIELDS),
            category3=DimensionTable(tables.category3, CATEGORY3_FIELDS),
            category2=DimensionTable(tables.category2, CATEGORY2_FIELDS),
            category1=DimensionTable(tables.category1, CATEGORY1_FIELDS),
            trademark=DimensionTable(tables.trademark, TRADEMARK_FIELDS),
        )

    def all(self) -> Tuple[DimensionTable, ...]:
        return (
            self.product,
            self.product_family,
            self.category3,
            self.category2,
            self.category1,
            self.trademark,
        )

    def by_name(self, name: str) -> DimensionTable:
        for table in self.all():
            if table.name == name:
                return table
        raise KeyError(f"Unknown dimension table: {name}")


# =============================================================================
# OUTPUT
# =============================================================================

@dataclass(frozen=True)
class EnrichedFields:
    """Denormalized attributes of one product's dimension chain"""
    sku_name: Optional[str] = None
    spu_id: Optional[str] = None
    spu_name: Optional[str] = None
    trademark_id: Optional[str] = None
    trademark_name: Optional[str] = None
    category3_id: Optional[str] = None
    category3_name: Optional[str] = None
    category2_id: Optional[str] = None
    category2_name: Optional[str] = None
    category1_id: Optional[str] = None
    category1_name: Optional[str] = None

    @property
    def is_complete(self) -> bool:
        return all(value is not None for value in asdict(self).values())


@dataclass(frozen=True)
class EnrichedRecord:
    """Window aggregate joined with its dimension chain, keyed by output date"""
    sku_id: str
    window_start: datetime
    window_end: datetime
    date: str
    total_sku_num: int
    total_order_price: float
    sku_name: Optional[str]
    spu_id: Optional[str]
    spu_name: Optional[str]
    trademark_id: Optional[str]
    trademark_name: Optional[str]
    category1_id: Optional[str]
    category1_name: Optional[str]
    category2_id: Optional[str]
    category2_name: Optional[str]
    category3_id: Optional[str]
    category3_name: Optional[str]

    @classmethod
    def build(cls, aggregate: WindowAggregate, fields: EnrichedFields) -> "EnrichedRecord":
        return cls(
            sku_id=aggregate.sku_id,
            window_start=aggregate.window_start,
            window_end=aggregate.window_end,
            date=aggregate.window_end.strftime("%Y-%m-%d"),
            total_sku_num=aggregate.total_sku_num,
            total_order_price=aggregate.total_order_price,
            **asdict(fields),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
