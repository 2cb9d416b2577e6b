"""
Directory listing cache with expiry
"""
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from ...core.constants import DEFAULT_DIRECTORY_CACHE_TTL
from ...core.logging import get_logger
from .models import RemoteFile

logger = get_logger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    entries: tuple
    stored_at: float


class DirectoryCache:
    """
    Canonical path -> listing.

    Entries older than the TTL are evicted when read and reported as a miss.
    """

    def __init__(self, ttl: float = DEFAULT_DIRECTORY_CACHE_TTL, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}

    def get(self, path: str) -> Optional[List[RemoteFile]]:
        """Return the fresh listing for path, or None"""
        entry = self._entries.get(path)
        if entry is None:
            return None
        if self._clock() - entry.stored_at >= self.ttl:
            logger.debug(f"Cache expired for {path}")
            del self._entries[path]
            return None
        return list(entry.entries)

    def put(self, path: str, entries: List[RemoteFile]) -> None:
        self._entries[path] = CacheEntry(entries=tuple(entries), stored_at=self._clock())

    def invalidate(self, path: str) -> None:
        if self._entries.pop(path, None) is not None:
            logger.debug(f"Invalidated cache for {path}")

    def clear(self) -> None:
        self._entries.clear()

    @property
    def paths(self) -> List[str]:
        return list(self._entries)

    def __contains__(self, path: str) -> bool:
        return self.get(path) is not None

    def __len__(self) -> int:
        return len(self._entries)
