"""Public schema exports."""

from .broker import (
    AccessTokenResponse,
    LifecycleEvent,
    LifecyclePingData,
    OkResponse,
    PairResponse,
    PairStatusResponse,
)

__all__ = [
    "AccessTokenResponse",
    "LifecycleEvent",
    "LifecyclePingData",
    "OkResponse",
    "PairResponse",
    "PairStatusResponse",
]
