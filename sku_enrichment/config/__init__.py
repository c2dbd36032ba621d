"""
SKU Order Enrichment Pipeline
Configuration Module
"""
from .settings import Settings, UnresolvedPolicy, get_settings

__all__ = ["Settings", "UnresolvedPolicy", "get_settings"]
