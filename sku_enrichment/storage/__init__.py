"""
Dimension Store Module
"""
from .connection import create_store_engine, check_store_health
from .dimension_store import DimensionStore, StoreConnection
from .models import Base, DimensionCell

__all__ = [
    "create_store_engine",
    "check_store_health",
    "DimensionStore",
    "StoreConnection",
    "Base",
    "DimensionCell",
]
