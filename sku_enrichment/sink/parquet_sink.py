"""
Output Sink

Append-only parquet table partitioned by calendar date. Each batch lands in
new files named after the batch id, so retried batches add files and never
rewrite existing ones.
"""

import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Sequence, Union

import pyarrow as pa
import pyarrow.parquet as pq
import structlog

from sku_enrichment.models import EnrichedRecord

logger = structlog.get_logger(__name__)

PARTITION_COLUMN = "date"

ENRICHED_SCHEMA = pa.schema([
    pa.field("sku_id", pa.string(), nullable=False),
    pa.field("window_start", pa.timestamp("us"), nullable=False),
    pa.field("window_end", pa.timestamp("us"), nullable=False),
    pa.field("date", pa.string(), nullable=False),
    pa.field("total_sku_num", pa.int64()),
    pa.field("total_order_price", pa.float64()),
    pa.field("sku_name", pa.string()),
    pa.field("spu_id", pa.string()),
    pa.field("spu_name", pa.string()),
    pa.field("trademark_id", pa.string()),
    pa.field("trademark_name", pa.string()),
    pa.field("category1_id", pa.string()),
    pa.field("category1_name", pa.string()),
    pa.field("category2_id", pa.string()),
    pa.field("category2_name", pa.string()),
    pa.field("category3_id", pa.string()),
    pa.field("category3_name", pa.string()),
])


class Sink(ABC):
    """Append-only destination of enriched records"""

    @abstractmethod
    def append(self, records: Sequence[EnrichedRecord], batch_id: int) -> None:
        pass


class ParquetSink(Sink):
    """
    Parquet table under ``<root>/<table>/date=YYYY-MM-DD/``.

    Example:
        sink = ParquetSink("./data/dws", "dws_trade_sku_order_window")
        sink.append(records, batch_id=7)
    """

    def __init__(self, root_path: Union[str, Path], table: str):
        self.table_path = Path(root_path) / table
        self.table_path.mkdir(parents=True, exist_ok=True)

    def append(self, records: Sequence[EnrichedRecord], batch_id: int) -> None:
        if not records:
            return

        arrow_table = pa.Table.from_pylist(
            [record.to_dict() for record in records],
            schema=ENRICHED_SCHEMA,
        )
        pq.write_to_dataset(
            arrow_table,
            root_path=str(self.table_path),
            partition_cols=[PARTITION_COLUMN],
            basename_template=f"part-{batch_id:08d}-{uuid.uuid4().hex}-{{i}}.parquet",
            existing_data_behavior="overwrite_or_ignore",
        )
        logger.info(
            f"Appended {len(records)} rows to {self.table_path}",
            batch_id=batch_id,
            partitions=sorted({record.date for record in records}),
        )
