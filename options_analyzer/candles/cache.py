from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Generic, Optional, Tuple, TypeVar

T = TypeVar("T")


@dataclass
class TTLCache(Generic[T]):
    """
    In-memory cache with per-entry expiry.

    entries[key] -> (stored_at, ttl_seconds, value)
    Expired entries are evicted lazily on read.
    """
    default_ttl_seconds: float = 300.0
    clock: Callable[[], float] = time.monotonic
    entries: Dict[str, Tuple[float, float, Any]] = field(default_factory=dict)

    def set(self, key: str, value: T, ttl_seconds: Optional[float] = None) -> None:
        ttl = self.default_ttl_seconds if ttl_seconds is None else ttl_seconds
        self.entries[key] = (self.clock(), ttl, value)

    def get(self, key: str) -> Optional[T]:
        entry = self.entries.get(key)
        if entry is None:
            return None

        stored_at, ttl, value = entry
        if self.clock() - stored_at > ttl:
            del self.entries[key]
            return None
        return value

    def delete(self, key: str) -> None:
        self.entries.pop(key, None)

    def clear(self) -> None:
        self.entries.clear()
