"""Fixed-TTL expiry for cache index entries.

Expired entries are never removed on read. They are swept in bulk the next
time the index is written (``ArtifactStore.put``) or during an explicit
``ArtifactStore.clean()``.
"""
import logging
import time
from typing import Callable, Dict, List, Optional

from techwire.models import CacheEntry

logger = logging.getLogger(__name__)

DEFAULT_TTL = 7 * 24 * 60 * 60  # 7 days


class ExpiryPolicy:
    """TTL measured from ``CacheEntry.created_at``."""

    def __init__(self, ttl: float = DEFAULT_TTL, clock: Callable[[], float] = time.time):
        if ttl < 0:
            raise ValueError(f"ttl must be >= 0, got {ttl}")
        self.ttl = ttl
        self.clock = clock

    def is_expired(self, entry: CacheEntry, now: Optional[float] = None) -> bool:
        if now is None:
            now = self.clock()
        return (now - entry.created_at) > self.ttl

    def sweep(self, entries: Dict[str, CacheEntry], now: Optional[float] = None) -> List[CacheEntry]:
        """Remove expired entries from ``entries`` in place; return what was removed."""
        if now is None:
            now = self.clock()
        removed = [e for e in entries.values() if self.is_expired(e, now)]
        for entry in removed:
            del entries[entry.key]
        if removed:
            logger.info(f"[Expiry] Swept {len(removed)} expired entr{'y' if len(removed) == 1 else 'ies'}")
        return removed
