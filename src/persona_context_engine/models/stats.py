# persona_context_engine/models/stats.py
"""Statistics models."""

from pydantic import BaseModel, Field


class CacheStats(BaseModel):
    """Statistics for the resource cache."""

    hits: int = Field(default=0, description="Total cache hits")
    misses: int = Field(default=0, description="Total cache misses")
    evictions: int = Field(default=0, description="LRU evictions")
    expirations: int = Field(default=0, description="Entries removed after TTL expiry")
    invalidations: int = Field(default=0, description="Entries removed by invalidate()")
    size: int = Field(default=0, description="Current number of entries")
    max_size: int = Field(default=0, description="Maximum entries")
    memory_bytes: int = Field(default=0, description="Estimated footprint of cached values")

    @property
    def hit_rate(self) -> float:
        """Hit rate (0-1)."""
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return self.hits / total

    @property
    def utilization(self) -> float:
        """Current utilization (0-1)."""
        if self.max_size == 0:
            return 0.0
        return self.size / self.max_size
