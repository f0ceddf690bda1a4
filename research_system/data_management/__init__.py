"""Data management package for the research verification subsystem.

Storage:
- CacheStore: TTL/staleness-aware cache with JSON persistence

Helpers:
- request_fingerprint / normalize_query: semantic cache keys
"""

from research_system.data_management.cache_store import CacheStore
from research_system.data_management.fingerprint import normalize_query, request_fingerprint

__all__ = [
    "CacheStore",
    "normalize_query",
    "request_fingerprint",
]
