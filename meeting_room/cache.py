"""Small in-process TTL cache for generation results (thread-safe, per-entry TTL)."""

import logging
import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)


def make_key(kind: str, *parts: Any) -> str:
    """Join a cache kind and its identifying parts, e.g. 'topic_search:AI:cost'."""
    return ":".join([kind, *(str(p) for p in parts)])


class TTLCache:
    """Least-recently-used map whose entries expire individually.

    Expired entries are dropped lazily on access; when full, the oldest
    entry is evicted to make room.
    """

    def __init__(
        self,
        maxsize: int = 256,
        default_ttl_sec: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._data: OrderedDict[str, tuple[float, Any]] = OrderedDict()
        self._lock = threading.Lock()
        self._maxsize = maxsize
        self._default_ttl = default_ttl_sec
        self._clock = clock
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                self.misses += 1
                return None
            expires_at, value = entry
            if self._clock() >= expires_at:
                del self._data[key]
                self.misses += 1
                return None
            self._data.move_to_end(key)
            self.hits += 1
            return value

    def set(self, key: str, value: Any, ttl_sec: float | None = None) -> None:
        ttl = self._default_ttl if ttl_sec is None else ttl_sec
        with self._lock:
            self._data[key] = (self._clock() + ttl, value)
            self._data.move_to_end(key)
            while len(self._data) > self._maxsize:
                evicted, _ = self._data.popitem(last=False)
                logger.debug("Cache full, evicted %s", evicted)

    def invalidate(self, key: str) -> bool:
        with self._lock:
            return self._data.pop(key, None) is not None

    def cleanup(self) -> int:
        """Drop every expired entry. Returns the number removed."""
        with self._lock:
            now = self._clock()
            expired = [k for k, (expires_at, _) in self._data.items() if expires_at <= now]
            for key in expired:
                del self._data[key]
            return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def __len__(self) -> int:
        with self._lock:
            now = self._clock()
            return sum(1 for expires_at, _ in self._data.values() if expires_at > now)
