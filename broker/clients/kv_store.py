"""Key/value persistence contract with per-key expiry."""

from __future__ import annotations

import time
from typing import Callable, Dict, Optional, Protocol, Tuple


class KeyValueStore(Protocol):
    """TTL-aware string store; expired keys read back as absent."""

    async def put(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        ...

    async def get(self, key: str) -> Optional[str]:
        ...

    async def delete(self, key: str) -> None:
        ...


class InMemoryKeyValueStore:
    """Process-local store used for development and tests."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._items: Dict[str, Tuple[str, Optional[float]]] = {}

    async def put(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        now = self._clock()
        self._purge_expired(now)
        expires_at = now + ttl_seconds if ttl_seconds is not None else None
        self._items[key] = (value, expires_at)

    async def get(self, key: str) -> Optional[str]:
        entry = self._items.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and expires_at <= self._clock():
            self._items.pop(key, None)
            return None
        return value

    async def delete(self, key: str) -> None:
        self._items.pop(key, None)

    def _purge_expired(self, now: float) -> None:
        expired = [
            key
            for key, (_, expires_at) in self._items.items()
            if expires_at is not None and expires_at <= now
        ]
        for key in expired:
            del self._items[key]

    def __len__(self) -> int:
        return len(self._items)


__all__ = ["InMemoryKeyValueStore", "KeyValueStore"]
