"""
Read-through cache of located pairs, shared between resolutions.
"""

import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Hashable, Optional

from .types import PairLocation


@dataclass(frozen=True)
class CacheEntry:
    location: PairLocation
    fetched_at: float


class PairCache:
    """
    Last-write-wins cache of PairLocations.

    StateResolver keys entries on (seed_uref, ordered 66-byte pair key) so
    one cache can serve resolvers over different contracts; any hashable
    key works.

    Every operation holds a single lock, so the cache can be shared by
    resolutions running on different threads or event loops. The cache
    never expires entries on its own; callers either pass max_age to get()
    or call invalidate()/clear().
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: Dict[Hashable, CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, key: Hashable, max_age: Optional[float] = None) -> Optional[PairLocation]:
        """Return the cached location, or None if absent or older than max_age seconds."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if max_age is not None and self._clock() - entry.fetched_at > max_age:
                return None
            return entry.location

    def put(self, key: Hashable, location: PairLocation) -> None:
        with self._lock:
            self._entries[key] = CacheEntry(location=location, fetched_at=self._clock())

    def invalidate(self, key: Hashable) -> bool:
        """Drop one entry. Returns True if it was present."""
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._entries
