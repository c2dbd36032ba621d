"""
Output Sink Module
"""
from .parquet_sink import ENRICHED_SCHEMA, ParquetSink, Sink

__all__ = ["ENRICHED_SCHEMA", "ParquetSink", "Sink"]
