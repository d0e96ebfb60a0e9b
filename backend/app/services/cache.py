"""
Recipe Manager Media Backend — Response Cache Backend
======================================================

What:  Expiring key/value store used by ResponseCacheMiddleware.
Why:   Info lookups decode image headers from disk; repeated GETs for the
       same asset can be answered from memory.
How:   CacheBackend is the interface call sites depend on. MemoryCache is the
       in-process implementation; a Redis-backed class can implement the same
       protocol without touching the middleware.

The instance is created per application (create_app) and injected, never a
module-level global.
"""

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Protocol


class CacheBackend(Protocol):
    def get(self, key: str) -> Optional[Any]: ...

    def set(self, key: str, value: Any, ttl: float) -> None: ...

    def delete(self, key: str) -> None: ...

    def delete_prefix(self, prefix: str) -> int: ...

    def sweep(self) -> int: ...

    def clear(self) -> None: ...


@dataclass
class _Entry:
    value: Any
    expires_at: float


class MemoryCache:
    """
    Dict-backed CacheBackend guarded by a lock.

    The lock makes get/set/delete/sweep safe to call from threadpool code as
    well as the event loop.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._entries: Dict[str, _Entry] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.expires_at <= self._clock():
                del self._entries[key]
                return None
            return entry.value

    def set(self, key: str, value: Any, ttl: float) -> None:
        with self._lock:
            self._entries[key] = _Entry(value=value, expires_at=self._clock() + ttl)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def delete_prefix(self, prefix: str) -> int:
        with self._lock:
            doomed = [k for k in self._entries if k.startswith(prefix)]
            for key in doomed:
                del self._entries[key]
            return len(doomed)

    def sweep(self) -> int:
        """Drop expired entries; returns how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, e in self._entries.items() if e.expires_at <= now]
            for key in expired:
                del self._entries[key]
            return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
