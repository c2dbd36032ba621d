"""
Lookup Cache Module
"""
from .lookup_cache import LookupCache, RedisCacheFactory, cache_key

__all__ = ["LookupCache", "RedisCacheFactory", "cache_key"]
