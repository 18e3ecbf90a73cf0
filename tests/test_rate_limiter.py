"""Tests for the per route class request throttles."""

try:
    from . import _bootstrap  # noqa: F401
    from ._fakes import TickingClock
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401
    from _fakes import TickingClock  # type: ignore

import pytest

from broker.clients.kv_store import InMemoryKeyValueStore
from broker.core.config import RateLimitSettings
from broker.services.rate_limiter import (
    InMemoryRateLimiter,
    RateLimitPolicy,
    RouteClass,
    StoreRateLimiter,
    policies_from_settings,
)

POLICIES = {
    RouteClass.PAIR_START: RateLimitPolicy(limit=3, window_seconds=60),
    RouteClass.ACCESS_TOKEN: RateLimitPolicy(limit=5, window_seconds=10),
}


@pytest.mark.asyncio
async def test_call_after_limit_is_rejected_until_window_elapses() -> None:
    clock = TickingClock()
    limiter = InMemoryRateLimiter(POLICIES, clock=clock)

    results = [await limiter.allow("1.2.3.4", RouteClass.PAIR_START) for _ in range(4)]
    assert results == [True, True, True, False]

    clock.advance(59)
    assert await limiter.allow("1.2.3.4", RouteClass.PAIR_START) is False

    clock.advance(1)
    assert await limiter.allow("1.2.3.4", RouteClass.PAIR_START) is True


@pytest.mark.asyncio
async def test_budgets_are_independent_per_identity_and_route_class() -> None:
    limiter = InMemoryRateLimiter(POLICIES, clock=TickingClock())

    for _ in range(3):
        assert await limiter.allow("client-a", RouteClass.PAIR_START)
    assert await limiter.allow("client-a", RouteClass.PAIR_START) is False

    assert await limiter.allow("client-b", RouteClass.PAIR_START) is True
    assert await limiter.allow("client-a", RouteClass.ACCESS_TOKEN) is True


@pytest.mark.asyncio
async def test_unconfigured_route_class_is_not_limited() -> None:
    limiter = InMemoryRateLimiter(POLICIES, clock=TickingClock())

    for _ in range(50):
        assert await limiter.allow("client", RouteClass.PAIR_POLL)


@pytest.mark.asyncio
async def test_pruning_runs_at_most_once_per_interval() -> None:
    clock = TickingClock()
    limiter = InMemoryRateLimiter(POLICIES, prune_interval=60, clock=clock)

    for index in range(5):
        await limiter.allow(f"client-{index}", RouteClass.ACCESS_TOKEN)
    assert len(limiter) == 5

    # Windows have elapsed but the prune interval has not.
    clock.advance(30)
    await limiter.allow("late", RouteClass.PAIR_START)
    assert len(limiter) == 6

    clock.advance(30)
    await limiter.allow("late", RouteClass.PAIR_START)
    assert len(limiter) == 1


def test_retry_after_matches_window() -> None:
    limiter = InMemoryRateLimiter(POLICIES, clock=TickingClock())

    assert limiter.retry_after(RouteClass.PAIR_START) == 60
    assert limiter.retry_after(RouteClass.ACCESS_TOKEN) == 10


def test_policies_from_settings_covers_every_route_class() -> None:
    settings = RateLimitSettings(RATE_LIMIT_PAIR_START_LIMIT=2)

    policies = policies_from_settings(settings)

    assert set(policies) == set(RouteClass)
    assert policies[RouteClass.PAIR_START] == RateLimitPolicy(2, 60)
    assert policies[RouteClass.GLOBAL].limit == settings.global_limit


@pytest.mark.asyncio
async def test_store_limiter_counts_in_fixed_windows() -> None:
    clock = TickingClock(start=1_700_000_000.0)
    kv = InMemoryKeyValueStore(clock=clock)
    limiter = StoreRateLimiter(kv, POLICIES, clock=clock)

    results = [await limiter.allow("client", RouteClass.PAIR_START) for _ in range(4)]
    assert results == [True, True, True, False]
    assert await limiter.allow("other", RouteClass.PAIR_START) is True

    clock.advance(60)
    assert await limiter.allow("client", RouteClass.PAIR_START) is True
