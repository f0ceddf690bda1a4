"""TTL and staleness aware cache store with optional JSON persistence.

Features:
- Three-state lookups (fresh / stale / miss) driving stale-while-revalidate
- Unconditional overwrite on set(), resetting created_at
- Hit/miss accounting with hit_rate = hits / max(1, hits + misses)
- Bounded size: at max_entries, set() first drops expired entries, then the
  oldest by created_at; every removal counts as an eviction
- save()/preload() round trip through a JSON file; expired entries are
  never written and never restored
- Thread-safe: every operation runs under one lock, so concurrent get/set on
  the same key cannot interleave metadata updates

Usage:
    from research_system.data_management.cache_store import CacheStore

    cache = CacheStore(default_ttl=3600, default_stale_after=2880,
                       persistence_path="cache/research.json")
    cache.preload()
    cache.set(key, payload)
    lookup = cache.get(key)
"""

import json
import os
import tempfile
import threading
import time
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from loguru import logger
from pydantic import ValidationError as PydanticValidationError

from research_system.data_management.schemas.cache_schema import (
    CacheEntry,
    CacheLookup,
    CacheState,
    CacheStats,
)

PERSISTENCE_FORMAT_VERSION = 1


class CacheStore:
    """
    Key/value store owning all CacheEntry storage.

    Explicitly constructed and injected into the executor; there is no
    module-level instance, so independent stores can coexist (one per test).

    Attributes:
        default_ttl: TTL applied when set() receives none
        default_stale_after: Freshness window applied when set() receives none
        persistence_path: JSON file for save()/preload(), or None
        max_entries: Upper bound on stored entries
    """

    def __init__(
        self,
        default_ttl: float = 3600.0,
        default_stale_after: Optional[float] = None,
        persistence_path: Optional[str] = None,
        clock: Callable[[], float] = time.time,
        max_entries: int = 1000,
    ):
        """
        Initialize cache store.

        Args:
            default_ttl: Default entry lifetime in seconds
            default_stale_after: Default freshness window (defaults to 80% of TTL)
            persistence_path: Optional JSON file path for persistence
            clock: Wall-clock source in epoch seconds; persisted entries
                   must survive a process restart, so this is not monotonic
            max_entries: Entry count at which set() starts evicting
        """
        if default_ttl <= 0:
            raise ValueError("default_ttl must be positive")
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")

        self.default_ttl = default_ttl
        self.default_stale_after = (
            default_ttl * 0.8 if default_stale_after is None
            else min(default_stale_after, default_ttl)
        )
        self.persistence_path = Path(persistence_path) if persistence_path else None
        self.max_entries = max_entries

        self._entries: Dict[str, CacheEntry] = {}
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._clock = clock
        self._lock = threading.Lock()
        self.logger = logger.bind(component="CacheStore")

        self.logger.debug(
            "CacheStore initialized",
            default_ttl=self.default_ttl,
            default_stale_after=self.default_stale_after,
            max_entries=self.max_entries,
            persistence_enabled=self.persistence_path is not None,
        )

    def get(self, key: str) -> CacheLookup:
        """
        Look up a key.

        Expired entries are evicted on read and reported as a miss.

        Returns:
            CacheLookup with hit flag, value and state
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return CacheLookup.miss()

            state = entry.state_at(self._clock())
            if state == CacheState.MISS:
                del self._entries[key]
                self._misses += 1
                self._evictions += 1
                self.logger.debug(f"Evicted expired entry {key[:16]}")
                return CacheLookup.miss()

            self._hits += 1
            return CacheLookup(hit=True, value=entry.value, state=state)

    def set(
        self,
        key: str,
        value: Any,
        ttl: Optional[float] = None,
        stale_after: Optional[float] = None,
    ) -> CacheEntry:
        """
        Store a value, overwriting any existing entry and resetting created_at.

        A new key arriving at max_entries evicts expired entries first, then
        the oldest entries, until there is room.

        Args:
            key: Cache key (request fingerprint)
            value: JSON-serializable payload
            ttl: Entry lifetime, defaults to default_ttl
            stale_after: Freshness window, defaults to default_stale_after
                         clipped to ttl

        Returns:
            The stored CacheEntry

        Raises:
            ValueError: If stale_after exceeds ttl or ttl is not positive
        """
        ttl = self.default_ttl if ttl is None else ttl
        if stale_after is None:
            stale_after = min(self.default_stale_after, ttl)

        try:
            entry = CacheEntry(
                key=key,
                value=value,
                created_at=self._clock(),
                ttl=ttl,
                stale_after=stale_after,
            )
        except PydanticValidationError as e:
            raise ValueError(f"Invalid cache entry for {key[:16]}: {e}") from e

        with self._lock:
            if key not in self._entries:
                self._make_room(entry.created_at)
            self._entries[key] = entry
        return entry

    def _make_room(self, now: float) -> None:
        """Evict until one more entry fits. Caller holds the lock."""
        if len(self._entries) < self.max_entries:
            return

        expired = [k for k, e in self._entries.items() if e.is_expired(now)]
        for key in expired:
            del self._entries[key]

        oldest = sorted(self._entries, key=lambda k: self._entries[k].created_at)
        overflow = oldest[: max(0, len(self._entries) - self.max_entries + 1)]
        for key in overflow:
            del self._entries[key]

        self._evictions += len(expired) + len(overflow)
        self.logger.debug(
            f"Evicted {len(expired)} expired and {len(overflow)} oldest entries",
            max_entries=self.max_entries,
        )

    def has(self, key: str) -> bool:
        """True when the key holds a fresh or stale (not expired) entry."""
        with self._lock:
            entry = self._entries.get(key)
            return entry is not None and not entry.is_expired(self._clock())

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        """Remove all entries and reset hit/miss/eviction counters."""
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0
            self._evictions = 0
        self.logger.debug("Cleared cache")

    def cleanup(self) -> int:
        """
        Evict expired entries.

        Returns:
            Number of entries evicted
        """
        with self._lock:
            now = self._clock()
            expired = [k for k, e in self._entries.items() if e.is_expired(now)]
            for key in expired:
                del self._entries[key]
            self._evictions += len(expired)

        if expired:
            self.logger.debug(f"Cleaned up {len(expired)} expired cache entries")
        return len(expired)

    def get_stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                size=len(self._entries),
                hits=self._hits,
                misses=self._misses,
                evictions=self._evictions,
            )

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def save(self) -> int:
        """
        Evict expired entries, then persist the rest to the JSON file.

        Writes to a temporary file in the same directory and replaces the
        target, so a crash mid-write never leaves a truncated cache file.

        Returns:
            Number of entries written (0 when persistence is disabled)
        """
        if not self.persistence_path:
            return 0

        self.cleanup()
        with self._lock:
            now = self._clock()
            entries = [
                entry.model_dump(mode="json")
                for entry in self._entries.values()
                if not entry.is_expired(now)
            ]

        payload = {
            "version": PERSISTENCE_FORMAT_VERSION,
            "saved_at": now,
            "entries": entries,
        }

        self.persistence_path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            dir=self.persistence_path.parent,
            prefix=f".{self.persistence_path.name}.",
            suffix=".tmp",
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2, default=str)
            os.replace(tmp_path, self.persistence_path)
        except OSError:
            Path(tmp_path).unlink(missing_ok=True)
            raise

        self.logger.info(f"Saved {len(entries)} cache entries to {self.persistence_path}")
        return len(entries)

    def preload(self) -> int:
        """
        Restore entries persisted by a previous process.

        Only entries that are still unexpired are restored; created_at is
        preserved so their remaining lifetime is unchanged. Entries already in
        memory are overwritten by the persisted copy only if the persisted one
        is newer.

        Returns:
            Number of entries restored
        """
        if not self.persistence_path or not self.persistence_path.exists():
            return 0

        try:
            with open(self.persistence_path, "r", encoding="utf-8") as f:
                payload = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            self.logger.error(f"Failed to read cache file {self.persistence_path}: {e}")
            return 0

        raw_entries = payload.get("entries", []) if isinstance(payload, dict) else []
        restored = 0
        skipped = 0

        with self._lock:
            now = self._clock()
            for raw in raw_entries:
                try:
                    entry = CacheEntry.model_validate(raw)
                except PydanticValidationError:
                    skipped += 1
                    continue

                if entry.is_expired(now):
                    skipped += 1
                    continue

                current = self._entries.get(entry.key)
                if current is not None and current.created_at >= entry.created_at:
                    continue

                if current is None:
                    self._make_room(now)
                self._entries[entry.key] = entry
                restored += 1

        self.logger.info(
            f"Preloaded {restored} cache entries from disk",
            skipped=skipped,
        )
        return restored

    def close(self) -> None:
        """Persist entries if a persistence path is configured."""
        if self.persistence_path:
            self.save()
