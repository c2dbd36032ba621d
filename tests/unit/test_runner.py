"""
Unit Tests - Micro-batch Runner
"""
import asyncio
from datetime import datetime, timedelta

import pytest

from sku_enrichment.enrichment.batch_enricher import BatchEnricher, BatchResult
from sku_enrichment.exceptions import BatchProcessingError
from sku_enrichment.sink.parquet_sink import ParquetSink
from sku_enrichment.streaming.runner import MicroBatchRunner
from sku_enrichment.streaming.window_aggregator import WindowAggregator


def ts(second: int) -> datetime:
    return datetime(2024, 3, 1) + timedelta(seconds=second)


def event(sku_id: str, second: int, qty: int = 1, price: float = 1.0) -> dict:
    return {"sku_id": sku_id, "sku_num": qty, "order_price": price, "create_time": ts(second)}


class FlakyEnricher:
    """Fails the first ``failures`` calls, then succeeds"""

    def __init__(self, failures: int):
        self.failures = failures
        self.calls = []

    def process_batch(self, rows, batch_id):
        self.calls.append(batch_id)
        if len(self.calls) <= self.failures:
            raise BatchProcessingError(batch_id, "store unavailable")
        return BatchResult(batch_id, len(rows), len(rows), 0, 1, 0.0)


class FakeSource:
    """Async source yielding prepared batches"""

    def __init__(self, frames):
        self.frames = frames
        self.events = []

    async def start(self):
        self.events.append("start")

    async def batches(self):
        for frame in self.frames:
            self.events.append("batch")
            yield frame

    async def commit(self):
        self.events.append("commit")

    async def stop(self):
        self.events.append("stop")


@pytest.fixture
def enricher(dimension_store, cache_factory, recording_sink, catalog, enrichment_settings):
    return BatchEnricher(dimension_store, cache_factory, recording_sink, catalog, enrichment_settings)


class TestMicroBatchRunner:
    """Tests for MicroBatchRunner"""

    def test_end_to_end_window(self, enricher, recording_sink, sample_events_df):
        """Test two events in one window become one enriched record on flush"""
        runner = MicroBatchRunner(WindowAggregator(5, 1), enricher, sleep=lambda _: None)

        results = runner.run([sample_events_df])

        assert [r.output_rows for r in results] == [0, 1]
        [(batch_id, records)] = recording_sink.appends
        record = records[0]
        assert batch_id == 1
        assert record.sku_id == "S1"
        assert record.total_sku_num == 5
        assert record.total_order_price == 25.0
        assert (record.window_start, record.window_end) == (ts(0), ts(5))
        assert record.date == "2024-03-01"
        assert record.trademark_name == "Acme"
        assert record.category1_name == "Electronics"

    def test_watermark_emits_without_flush(self, enricher, recording_sink):
        """Test a later batch closes the earlier window"""
        runner = MicroBatchRunner(WindowAggregator(5, 1), enricher, sleep=lambda _: None)

        runner.run([[event("S1", 1), event("S3", 2)], [event("S1", 7)]], flush=False)

        assert sorted(r.sku_id for r in recording_sink.records) == ["S1", "S3"]
        assert runner.aggregator.open_windows == 1

    def test_batch_ids_increase(self, enricher):
        """Test each trigger gets the next batch id"""
        runner = MicroBatchRunner(WindowAggregator(5, 1), enricher, sleep=lambda _: None)

        results = runner.run([[event("S1", 1)], [event("S1", 7)]])

        assert [r.batch_id for r in results] == [0, 1, 2]
        assert runner.next_batch_id == 3

    def test_failed_batch_retried_with_same_id(self):
        """Test a failed batch is reprocessed whole under its id"""
        sleeps = []
        enricher = FlakyEnricher(failures=2)
        runner = MicroBatchRunner(WindowAggregator(5, 1), enricher, max_attempts=3, backoff_seconds=0.5, sleep=sleeps.append)

        result = runner.finish()

        assert enricher.calls == [0, 0, 0]
        assert sleeps == [0.5, 1.0]
        assert result.batch_id == 0
        assert runner.next_batch_id == 1

    def test_permanent_failure_raises(self):
        """Test retries are bounded and the error surfaces"""
        enricher = FlakyEnricher(failures=5)
        runner = MicroBatchRunner(WindowAggregator(5, 1), enricher, max_attempts=2, sleep=lambda _: None)

        with pytest.raises(BatchProcessingError):
            runner.finish()

        assert enricher.calls == [0, 0]
        assert runner.next_batch_id == 0

    def test_writes_parquet(self, dimension_store, cache_factory, catalog, enrichment_settings, tmp_path, sample_events_df):
        """Test the full path down to parquet files"""
        sink = ParquetSink(tmp_path, "dws_trade_sku_order_window")
        enricher = BatchEnricher(dimension_store, cache_factory, sink, catalog, enrichment_settings)
        runner = MicroBatchRunner(WindowAggregator(5, 1), enricher, sleep=lambda _: None)

        runner.run([sample_events_df])

        assert len(list((sink.table_path / "date=2024-03-01").glob("*.parquet"))) == 1

    def test_run_source_commits_after_each_batch(self, enricher):
        """Test offsets are committed only after a batch is processed"""
        source = FakeSource([[event("S1", 1)], [event("S1", 7)]])
        runner = MicroBatchRunner(WindowAggregator(5, 1), enricher, sleep=lambda _: None)

        asyncio.run(runner.run_source(source))

        assert source.events == ["start", "batch", "commit", "batch", "commit", "stop"]
        assert runner.next_batch_id == 2

    def test_run_source_stops_on_failure(self):
        """Test the source is stopped and nothing committed when a batch fails"""
        source = FakeSource([[event("S1", 1)]])
        runner = MicroBatchRunner(WindowAggregator(5, 1), FlakyEnricher(failures=5), max_attempts=1, sleep=lambda _: None)

        with pytest.raises(BatchProcessingError):
            asyncio.run(runner.run_source(source))

        assert source.events == ["start", "batch", "stop"]
