# URL-keyed TTL cache for resolved proposal records
import time
from typing import Callable, Dict, Optional

from proposal_resolver.schemas.proposal import CacheEntry, ProposalRecord
from proposal_resolver.utils.logger import logger

DEFAULT_TTL_MS = 5 * 60 * 1000


def _now_ms() -> int:
    return int(time.time() * 1000)


class ProposalCache:
    """In-memory TTL cache owned by a single pipeline instance"""

    def __init__(self, ttl_ms: int = DEFAULT_TTL_MS, clock: Callable[[], int] = _now_ms):
        self.ttl_ms = ttl_ms
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}

    def get(self, key: str) -> Optional[CacheEntry]:
        """Return the entry if it is still fresh; stale entries are deleted"""
        entry = self._entries.get(key)
        if entry is None:
            logger.debug(f"Cache MISS for {key}")
            return None

        if not self._is_fresh(entry, self.ttl_ms):
            del self._entries[key]
            logger.debug(f"Cache EXPIRED for {key}")
            return None

        logger.debug(f"Cache HIT for {key}")
        return entry

    def set(self, key: str, record: ProposalRecord) -> CacheEntry:
        """Store a copy of the record stamped with the current time"""
        cached_at = self._clock()
        entry = CacheEntry(record=record.model_copy(update={"cached_at": cached_at}), cached_at=cached_at)
        self._entries[key] = entry
        logger.debug(f"Stored in cache: {key}")
        return entry

    def invalidate_if_stale(self, key: str, max_age_ms: Optional[int] = None) -> bool:
        """Delete the entry if older than max_age_ms (default: the TTL). Returns True if deleted"""
        entry = self._entries.get(key)
        if entry is None:
            return False
        max_age = self.ttl_ms if max_age_ms is None else max_age_ms
        if self._is_fresh(entry, max_age):
            return False
        del self._entries[key]
        logger.debug(f"Invalidated stale cache entry: {key}")
        return True

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def _is_fresh(self, entry: CacheEntry, max_age_ms: int) -> bool:
        return self._clock() - entry.cached_at < max_age_ms

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries
