"""Schemas for cached data."""

from research_system.data_management.schemas.cache_schema import (
    CacheEntry,
    CacheLookup,
    CacheState,
    CacheStats,
)

__all__ = [
    "CacheEntry",
    "CacheLookup",
    "CacheState",
    "CacheStats",
]
