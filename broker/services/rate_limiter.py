"""Per-client request throttling for the broker routes.

Budgets are tracked per ``(identity, route class)``. Counters are best-effort
abuse protection: the in-memory limiter forgets everything on restart and the
store-backed limiter tolerates lost updates.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Mapping, Protocol, Tuple

from broker.clients.kv_store import KeyValueStore
from broker.core.config import RateLimitSettings
from broker.services.session_store import rate_limit_key

logger = logging.getLogger(__name__)


class RouteClass(str, Enum):
    PAIR_START = "pair_start"
    PAIR_POLL = "pair_poll"
    ACCESS_TOKEN = "access_token"
    GLOBAL = "global"


@dataclass(frozen=True)
class RateLimitPolicy:
    limit: int
    window_seconds: float


def policies_from_settings(settings: RateLimitSettings) -> Dict[RouteClass, RateLimitPolicy]:
    """Build the per route class budgets from configuration."""
    return {
        RouteClass.PAIR_START: RateLimitPolicy(
            settings.pair_start_limit, settings.pair_start_window_seconds
        ),
        RouteClass.PAIR_POLL: RateLimitPolicy(
            settings.pair_poll_limit, settings.pair_poll_window_seconds
        ),
        RouteClass.ACCESS_TOKEN: RateLimitPolicy(
            settings.access_token_limit, settings.access_token_window_seconds
        ),
        RouteClass.GLOBAL: RateLimitPolicy(
            settings.global_limit, settings.global_window_seconds
        ),
    }


class RateLimiter(Protocol):
    async def allow(self, identity: str, route_class: RouteClass) -> bool:
        ...

    def retry_after(self, route_class: RouteClass) -> int:
        ...


class _Window:
    """Counter for one identity within the current window."""

    __slots__ = ("started_at", "count")

    def __init__(self, started_at: float) -> None:
        self.started_at = started_at
        self.count = 1


class InMemoryRateLimiter:
    """Window counter keyed by client identity and route class.

    A counter restarts at 1 once its window has elapsed; within the window it
    increments until the policy limit is reached, after which calls are
    rejected. Stale counters are pruned from inside ``allow`` at most once per
    ``prune_interval``.
    """

    def __init__(
        self,
        policies: Mapping[RouteClass, RateLimitPolicy],
        *,
        prune_interval: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._policies = dict(policies)
        self._prune_interval = prune_interval
        self._clock = clock
        self._windows: Dict[Tuple[str, RouteClass], _Window] = {}
        self._last_pruned = clock()

    async def allow(self, identity: str, route_class: RouteClass) -> bool:
        now = self._clock()
        self._maybe_prune(now)

        policy = self._policies.get(route_class)
        if policy is None:
            return True

        key = (identity, route_class)
        window = self._windows.get(key)
        if window is None or now - window.started_at >= policy.window_seconds:
            self._windows[key] = _Window(now)
            return policy.limit > 0
        if window.count >= policy.limit:
            return False
        window.count += 1
        return True

    def retry_after(self, route_class: RouteClass) -> int:
        policy = self._policies.get(route_class)
        return math.ceil(policy.window_seconds) if policy else 1

    def prune(self, now: float | None = None) -> int:
        """Drop counters whose window has elapsed. Returns how many were removed."""
        now = self._clock() if now is None else now
        stale = [
            key
            for key, window in self._windows.items()
            if now - window.started_at >= self._window_length(key[1])
        ]
        for key in stale:
            del self._windows[key]
        self._last_pruned = now
        if stale:
            logger.debug("Pruned %d rate limit counters", len(stale))
        return len(stale)

    def _maybe_prune(self, now: float) -> None:
        if now - self._last_pruned >= self._prune_interval:
            self.prune(now)

    def _window_length(self, route_class: RouteClass) -> float:
        policy = self._policies.get(route_class)
        return policy.window_seconds if policy else 0.0

    def __len__(self) -> int:
        return len(self._windows)


class StoreRateLimiter:
    """Fixed-window counters kept in the shared key/value store.

    Suitable when several broker instances must share budgets. Increments are
    read-then-write, so concurrent requests may undercount.
    """

    def __init__(
        self,
        kv: KeyValueStore,
        policies: Mapping[RouteClass, RateLimitPolicy],
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._kv = kv
        self._policies = dict(policies)
        self._clock = clock

    async def allow(self, identity: str, route_class: RouteClass) -> bool:
        policy = self._policies.get(route_class)
        if policy is None:
            return True

        window_length = max(int(policy.window_seconds), 1)
        window_index = int(self._clock() // window_length)
        key = rate_limit_key(route_class.value, identity, window_index)

        raw = await self._kv.get(key)
        count = int(raw) if raw else 0
        if count >= policy.limit:
            return False
        await self._kv.put(key, str(count + 1), ttl_seconds=window_length)
        return True

    def retry_after(self, route_class: RouteClass) -> int:
        policy = self._policies.get(route_class)
        if policy is None:
            return 1
        window_length = max(int(policy.window_seconds), 1)
        return window_length - int(self._clock()) % window_length


__all__ = [
    "InMemoryRateLimiter",
    "RateLimitPolicy",
    "RateLimiter",
    "RouteClass",
    "StoreRateLimiter",
    "policies_from_settings",
]
