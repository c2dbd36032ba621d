"""
Dimension seeding

Loads dimension rows from CSV exports into the dimension store, one file per
table named ``<table>.csv`` with an ``id`` column plus the declared columns.
"""

from pathlib import Path
from typing import Dict, Union

import polars as pl
import structlog

from sku_enrichment.models import DimensionCatalog, DimensionTable
from sku_enrichment.storage.dimension_store import DimensionStore

logger = structlog.get_logger(__name__)

ID_COLUMN = "id"


def seed_table(store: DimensionStore, table: DimensionTable, df: pl.DataFrame) -> int:
    """Write every row of ``df`` into ``table``; returns rows written"""
    if ID_COLUMN not in df.columns:
        raise ValueError(f"{table.name}: missing '{ID_COLUMN}' column")

    columns = [col for col in table.fields if col in df.columns]
    df = df.with_columns([pl.col(col).cast(pl.Utf8) for col in [ID_COLUMN] + columns])

    count = 0
    for row in df.select([ID_COLUMN] + columns).iter_rows(named=True):
        row_key = row.pop(ID_COLUMN)
        if row_key is None:
            continue
        store.put_row(table.name, row_key, row)
        count += 1

    logger.info(f"Seeded {count} rows into {table.name}")
    return count


def seed_from_directory(
    store: DimensionStore,
    catalog: DimensionCatalog,
    directory: Union[str, Path],
) -> Dict[str, int]:
    """
    Seed every dimension table that has a CSV export in ``directory``.

    Returns:
        Rows written per table name
    """
    directory = Path(directory)
    results: Dict[str, int] = {}

    for table in catalog.all():
        path = directory / f"{table.name}.csv"
        if not path.exists():
            logger.warning("No seed file for dimension table", table=table.name, path=str(path))
            continue
        df = pl.read_csv(path, infer_schema_length=0)
        results[table.name] = seed_table(store, table, df)

    return results
