"""
Serving Module
"""
from .cache import CacheManager, cache_get, cache_set

__all__ = [
    "CacheManager",
    "cache_get",
    "cache_set",
]
