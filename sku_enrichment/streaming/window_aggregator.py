"""
Windowed Aggregation

Tumbling event-time windows per product with a watermark:
- Rows without ``sku_id`` or ``create_time`` are filtered out
- The watermark is ``max(create_time seen) - lag``; it advances after each batch
- Rows older than the watermark in force when their batch arrives are late
  and dropped
- A window is emitted once, after the watermark reaches its end
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

import polars as pl
import structlog
from prometheus_client import Counter

from sku_enrichment.config.settings import WindowSettings
from sku_enrichment.models import WindowAggregate

logger = structlog.get_logger(__name__)


EVENTS_DROPPED = Counter(
    "sku_enrichment_events_dropped_total",
    "Events excluded from aggregation",
    ["reason"],
)

EVENT_SCHEMA = {
    "sku_id": pl.Utf8,
    "sku_name": pl.Utf8,
    "sku_num": pl.Int64,
    "order_price": pl.Float64,
    "create_time": pl.Datetime("us"),
}

EventBatch = Union[pl.DataFrame, Iterable[Mapping[str, Any]]]


def events_to_frame(batch: EventBatch) -> pl.DataFrame:
    """Normalize an event batch to the aggregation columns and types"""
    if not isinstance(batch, pl.DataFrame):
        rows = [dict(row) for row in batch]
        return pl.DataFrame(rows, schema=EVENT_SCHEMA)

    df = batch
    for col, dtype in EVENT_SCHEMA.items():
        if col not in df.columns:
            df = df.with_columns(pl.lit(None, dtype=dtype).alias(col))

    if df.schema["create_time"] == pl.Utf8:
        df = df.with_columns(pl.col("create_time").str.to_datetime(strict=False))

    return df.select([pl.col(col).cast(dtype) for col, dtype in EVENT_SCHEMA.items()])


@dataclass
class WindowState:
    total_sku_num: int = 0
    total_order_price: float = 0.0


@dataclass
class AggregationStats:
    """Per-batch counters"""
    input_rows: int = 0
    malformed_rows: int = 0
    late_rows: int = 0
    emitted_windows: int = 0


class WindowAggregator:
    """
    Stateful tumbling-window aggregator.

    Open windows and the maximum observed event time persist across
    ``process_batch`` calls.

    Example:
        aggregator = WindowAggregator(window_seconds=5, watermark_lag_seconds=1)
        finalized = aggregator.process_batch(events_df)
    """

    def __init__(self, window_seconds: int = 5, watermark_lag_seconds: int = 1):
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        if watermark_lag_seconds < 0:
            raise ValueError("watermark_lag_seconds must not be negative")

        self.window = timedelta(seconds=window_seconds)
        self.lag = timedelta(seconds=watermark_lag_seconds)
        self.max_event_time: Optional[datetime] = None
        self.last_stats = AggregationStats()
        self._state: Dict[Tuple[str, datetime], WindowState] = {}

    @classmethod
    def from_settings(cls, config: WindowSettings) -> "WindowAggregator":
        return cls(config.length_seconds, config.watermark_lag_seconds)

    @property
    def watermark(self) -> Optional[datetime]:
        if self.max_event_time is None:
            return None
        return self.max_event_time - self.lag

    @property
    def open_windows(self) -> int:
        return len(self._state)

    def process_batch(self, batch: EventBatch) -> List[WindowAggregate]:
        """
        Fold one micro-batch into window state.

        Returns:
            Windows finalized by the advanced watermark, ordered by window
            start then product id
        """
        df = events_to_frame(batch)
        stats = AggregationStats(input_rows=df.height)

        df = df.drop_nulls(subset=["sku_id", "create_time"])
        stats.malformed_rows = stats.input_rows - df.height

        watermark = self.watermark
        if watermark is not None and df.height:
            on_time = df.filter(pl.col("create_time") >= watermark)
            stats.late_rows = df.height - on_time.height
            df = on_time

        if df.height:
            self._fold(df)
            batch_max = df["create_time"].max()
            if self.max_event_time is None or batch_max > self.max_event_time:
                self.max_event_time = batch_max

        emitted = self._emit_finalized()
        stats.emitted_windows = len(emitted)
        self.last_stats = stats

        if stats.malformed_rows:
            EVENTS_DROPPED.labels(reason="malformed").inc(stats.malformed_rows)
        if stats.late_rows:
            EVENTS_DROPPED.labels(reason="late").inc(stats.late_rows)

        logger.debug(
            "Aggregated event batch",
            input_rows=stats.input_rows,
            malformed_rows=stats.malformed_rows,
            late_rows=stats.late_rows,
            emitted_windows=stats.emitted_windows,
            open_windows=self.open_windows,
            watermark=self.watermark.isoformat() if self.watermark else None,
        )
        return emitted

    def _fold(self, df: pl.DataFrame) -> None:
        window_ms = int(self.window.total_seconds() * 1000)
        grouped = (
            df.with_columns(
                pl.from_epoch(
                    (pl.col("create_time").dt.epoch("ms") // window_ms) * window_ms,
                    time_unit="ms",
                ).alias("window_start")
            )
            .group_by(["sku_id", "window_start"])
            .agg([
                pl.col("sku_num").sum().alias("total_sku_num"),
                pl.col("order_price").sum().alias("total_order_price"),
            ])
        )

        for row in grouped.iter_rows(named=True):
            state = self._state.setdefault((row["sku_id"], row["window_start"]), WindowState())
            state.total_sku_num += row["total_sku_num"] or 0
            state.total_order_price += row["total_order_price"] or 0.0

    def _emit(self, keys: List[Tuple[str, datetime]]) -> List[WindowAggregate]:
        emitted = []
        for sku_id, window_start in sorted(keys, key=lambda k: (k[1], k[0])):
            state = self._state.pop((sku_id, window_start))
            emitted.append(WindowAggregate(
                sku_id=sku_id,
                window_start=window_start,
                window_end=window_start + self.window,
                total_sku_num=state.total_sku_num,
                total_order_price=state.total_order_price,
            ))
        return emitted

    def _emit_finalized(self) -> List[WindowAggregate]:
        watermark = self.watermark
        if watermark is None:
            return []
        closed = [key for key in self._state if key[1] + self.window <= watermark]
        return self._emit(closed)

    def flush(self) -> List[WindowAggregate]:
        """Emit every open window regardless of the watermark."""
        return self._emit(list(self._state))
