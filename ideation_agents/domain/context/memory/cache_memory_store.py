from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional, Tuple
import asyncio
import copy
import time


class MemoryStore(ABC):
    """Key-value store for JSON-compatible memory blobs with expiry"""

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """Return the stored blob, or None if missing or expired"""

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: int = 3600) -> None:
        """Store a blob that expires after ``ttl`` seconds"""

    @abstractmethod
    async def delete(self, key: str) -> bool:
        pass

    async def close(self) -> None:
        pass


class CacheMemoryStore(MemoryStore):
    """Process-local memory store; blobs are deep-copied in and out"""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self.entries: Dict[str, Tuple[float, Any]] = {}
        self.clock = clock
        self._lock = asyncio.Lock()

    async def set(self, key: str, value: Any, ttl: int = 3600) -> None:
        async with self._lock:
            self.entries[key] = (self.clock() + ttl, copy.deepcopy(value))

    async def get(self, key: str) -> Optional[Any]:
        async with self._lock:
            entry = self.entries.get(key)
            if entry is None:
                return None

            expires_at, value = entry
            if self.clock() >= expires_at:
                del self.entries[key]
                return None
            return copy.deepcopy(value)

    async def delete(self, key: str) -> bool:
        async with self._lock:
            return self.entries.pop(key, None) is not None

    async def clear_expired(self) -> int:
        """Drop expired blobs, returning how many were removed"""

        async with self._lock:
            now = self.clock()
            stale = [key for key, (expires_at, _) in self.entries.items() if now >= expires_at]
            for key in stale:
                del self.entries[key]
            return len(stale)

    async def get_stats(self) -> Dict[str, Any]:
        async with self._lock:
            now = self.clock()
            live = sum(1 for expires_at, _ in self.entries.values() if now < expires_at)
            return {
                "total_keys": len(self.entries),
                "active_keys": live,
                "expired_keys": len(self.entries) - live
            }
