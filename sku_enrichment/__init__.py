"""
SKU Order Enrichment Pipeline

Windowed per-product sales aggregates enriched with product, category and
trademark dimensions through a Redis cache in front of a durable store.
"""

__version__ = "1.0.0"
