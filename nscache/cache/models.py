"""Cache statistics model."""

from pydantic import BaseModel, Field


class CacheStats(BaseModel):
    """Cache usage statistics for one ``RedisCache``.

    Attributes:
        hits: Reads that found a value
        misses: Reads that found nothing
        writes: Acknowledged writes
        dropped_writes: Fire-and-forget writes that failed
        hit_rate: Hit rate percentage (hits / reads)
    """

    hits: int = Field(default=0, description="Cache hits")
    misses: int = Field(default=0, description="Cache misses")
    writes: int = Field(default=0, description="Acknowledged writes")
    dropped_writes: int = Field(default=0, description="Failed fire-and-forget writes")
    hit_rate: float = Field(default=0.0, description="Hit rate percentage")

    def update_hit_rate(self) -> None:
        """Recalculate hit rate based on current stats."""
        total = self.hits + self.misses
        self.hit_rate = (self.hits / total * 100) if total > 0 else 0.0
