"""Cache entry schema with TTL and staleness windows.

An entry moves through three states as it ages:

FRESH: elapsed < stale_after. Served directly.
STALE: stale_after <= elapsed < ttl. Served, and the caller refreshes it
    in the background (stale-while-revalidate).
MISS: absent, or elapsed >= ttl. The caller must block on a fresh value.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, model_validator


class CacheState(str, Enum):
    """Outcome of a cache lookup."""

    FRESH = "fresh"
    STALE = "stale"
    MISS = "miss"


class CacheEntry(BaseModel):
    """Single cached value with its lifetime metadata.

    Entries are never mutated in place: set() replaces the whole entry, so
    concurrent readers always see a consistent (created_at, ttl) pair.
    """

    key: str = Field(..., description="Request fingerprint")
    value: Any = Field(..., description="Opaque JSON-serializable payload")
    created_at: float = Field(..., description="Epoch seconds when stored")
    ttl: float = Field(..., gt=0, description="Seconds until expiry")
    stale_after: float = Field(..., ge=0, description="Seconds until the entry turns stale")

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _stale_within_ttl(self) -> "CacheEntry":
        if self.stale_after > self.ttl:
            raise ValueError(
                f"stale_after ({self.stale_after}) must not exceed ttl ({self.ttl})"
            )
        return self

    def age(self, now: float) -> float:
        return now - self.created_at

    def state_at(self, now: float) -> CacheState:
        elapsed = self.age(now)
        if elapsed >= self.ttl:
            return CacheState.MISS
        if elapsed >= self.stale_after:
            return CacheState.STALE
        return CacheState.FRESH

    def is_expired(self, now: float) -> bool:
        return self.state_at(now) == CacheState.MISS


@dataclass(frozen=True)
class CacheLookup:
    """Result of CacheStore.get()."""

    hit: bool
    value: Optional[Any]
    state: CacheState

    @classmethod
    def miss(cls) -> "CacheLookup":
        return cls(hit=False, value=None, state=CacheState.MISS)


@dataclass(frozen=True)
class CacheStats:
    """Counters reported by CacheStore.get_stats()."""

    size: int
    hits: int
    misses: int
    evictions: int = 0

    @property
    def hit_rate(self) -> float:
        return self.hits / max(1, self.hits + self.misses)

    def to_dict(self) -> dict[str, float]:
        return {
            "size": self.size,
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "hit_rate": self.hit_rate,
        }
