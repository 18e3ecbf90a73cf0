"""Coalesce concurrent calls for the same key into one in-flight operation."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Dict, Generic, TypeVar

T = TypeVar("T")


class SingleFlight(Generic[T]):
    """Callers that arrive while a key is in flight await the first call's result.

    Entries are removed as soon as the operation finishes, so a later call
    starts a fresh operation. State is process-local.
    """

    def __init__(self) -> None:
        self._inflight: Dict[str, asyncio.Future[T]] = {}

    async def run(self, key: str, func: Callable[[], Awaitable[T]]) -> T:
        future = self._inflight.get(key)
        if future is None:
            future = asyncio.ensure_future(func())
            self._inflight[key] = future
            future.add_done_callback(lambda done, key=key: self._forget(key, done))
        # Shield so one cancelled waiter does not cancel the shared operation.
        return await asyncio.shield(future)

    def in_flight(self, key: str) -> bool:
        return key in self._inflight

    def _forget(self, key: str, future: "asyncio.Future[T]") -> None:
        if self._inflight.get(key) is future:
            del self._inflight[key]


__all__ = ["SingleFlight"]
