"""
Test Suite Configuration
"""
from datetime import datetime
from typing import Dict, List, Optional

import polars as pl
import pytest

from sku_enrichment.cache.lookup_cache import LookupCache
from sku_enrichment.config.settings import (
    DimensionStoreSettings,
    DimensionTableSettings,
    EnrichmentSettings,
)
from sku_enrichment.models import DimensionCatalog, EnrichedRecord
from sku_enrichment.sink.parquet_sink import Sink
from sku_enrichment.storage.connection import create_store_engine
from sku_enrichment.storage.dimension_store import DimensionStore


class FakeRedis:
    """In-memory stand-in for the redis hash commands used by LookupCache"""

    def __init__(self):
        self.hashes: Dict[str, Dict[str, str]] = {}
        self.ttls: Dict[str, int] = {}
        self.calls: List[str] = []
        self.closed = 0
        self.fail_on: Dict[str, Exception] = {}

    def _record(self, command: str) -> None:
        self.calls.append(command)
        error = self.fail_on.pop(command, None)
        if error is not None:
            raise error

    def exists(self, key: str) -> int:
        self._record("exists")
        return 1 if key in self.hashes else 0

    def hgetall(self, key: str) -> Dict[str, str]:
        self._record("hgetall")
        return dict(self.hashes.get(key, {}))

    def hset(self, key: str, field: Optional[str] = None, value: Optional[str] = None, mapping=None) -> int:
        self._record("hset")
        entry = self.hashes.setdefault(key, {})
        if field is not None:
            entry[field] = value
        if mapping:
            entry.update(mapping)
        return 1

    def expire(self, key: str, seconds: int, nx: bool = False) -> bool:
        self._record("expire")
        if key not in self.hashes:
            return False
        if nx and key in self.ttls:
            return False
        self.ttls[key] = seconds
        return True

    def pipeline(self, transaction: bool = True) -> "FakePipeline":
        return FakePipeline(self)

    def close(self) -> None:
        self.closed += 1


class FakePipeline:
    """Queues commands and applies them together on execute"""

    def __init__(self, client: FakeRedis):
        self._client = client
        self._commands: List[tuple] = []

    def hset(self, *args, **kwargs) -> "FakePipeline":
        self._commands.append(("hset", args, kwargs))
        return self

    def expire(self, *args, **kwargs) -> "FakePipeline":
        self._commands.append(("expire", args, kwargs))
        return self

    def execute(self) -> list:
        commands, self._commands = self._commands, []
        return [getattr(self._client, name)(*args, **kwargs) for name, args, kwargs in commands]


class FakeCacheFactory:
    """Hands out LookupCache handles over one shared FakeRedis"""

    def __init__(self, client: FakeRedis):
        self.client = client
        self.acquired = 0

    def acquire(self) -> LookupCache:
        self.acquired += 1
        return LookupCache(self.client)


class RecordingSink(Sink):
    """Keeps every append in memory"""

    def __init__(self):
        self.appends: List[tuple] = []

    def append(self, records, batch_id: int) -> None:
        self.appends.append((batch_id, list(records)))

    @property
    def records(self) -> List[EnrichedRecord]:
        return [record for _, batch in self.appends for record in batch]


SEED_ROWS = {
    "dim_sku_info": {
        "S1": {"category3_id": "C3", "tm_id": "T1", "spu_id": "F1", "sku_name": "Phone X"},
        "S2": {"category3_id": "C3", "tm_id": "T1", "spu_id": "F404", "sku_name": "Phone Y"},
        "S3": {"category3_id": "C3", "tm_id": "T1", "spu_id": "F1", "sku_name": "Phone Z"},
    },
    "dim_spu_info": {
        "F1": {"spu_name": "Phone"},
    },
    "dim_base_category3": {
        "C3": {"name": "Smartphones", "category2_id": "C2"},
    },
    "dim_base_category2": {
        "C2": {"name": "Mobile", "category1_id": "C1"},
    },
    "dim_base_category1": {
        "C1": {"name": "Electronics"},
    },
    "dim_base_trademark": {
        "T1": {"tm_name": "Acme"},
    },
}


@pytest.fixture
def seed_rows() -> Dict[str, Dict[str, Dict[str, str]]]:
    """Mutable copy of the seed dimension rows, keyed by table then id"""
    return {
        table: {row_key: dict(values) for row_key, values in rows.items()}
        for table, rows in SEED_ROWS.items()
    }


@pytest.fixture
def catalog() -> DimensionCatalog:
    """Dimension catalog with default table names"""
    return DimensionCatalog.from_settings(DimensionTableSettings())


@pytest.fixture
def dimension_store(tmp_path) -> DimensionStore:
    """SQLite-backed dimension store seeded with the S1/S2/S3 chains"""
    config = DimensionStoreSettings(url=f"sqlite:///{tmp_path / 'dimensions.db'}")
    store = DimensionStore(create_store_engine(config), namespace="test", column_family="info")
    store.create_schema()

    for table, rows in SEED_ROWS.items():
        for row_key, values in rows.items():
            store.put_row(table, row_key, values)

    yield store

    store.dispose()


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def cache_factory(fake_redis) -> FakeCacheFactory:
    return FakeCacheFactory(fake_redis)


@pytest.fixture
def recording_sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def enrichment_settings() -> EnrichmentSettings:
    """Enrichment settings without retry backoff"""
    return EnrichmentSettings(partition_count=2, retry_backoff_seconds=0.0)


@pytest.fixture
def sample_events_df() -> pl.DataFrame:
    """Order-detail events for S1 inside the first 5-second window of the day"""
    return pl.DataFrame({
        "sku_id": ["S1", "S1"],
        "sku_name": ["Phone X", "Phone X"],
        "sku_num": [2, 3],
        "order_price": [10.0, 15.0],
        "create_time": [
            datetime(2024, 3, 1, 0, 0, 1),
            datetime(2024, 3, 1, 0, 0, 3),
        ],
    })
