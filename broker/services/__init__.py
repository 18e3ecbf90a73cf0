"""Service layer exports."""

from .pairing import CallbackOutcome, CallbackResult, PairingService, PairingStart
from .rate_limiter import (
    InMemoryRateLimiter,
    RateLimitPolicy,
    RateLimiter,
    RouteClass,
    StoreRateLimiter,
    policies_from_settings,
)
from .session_store import SessionStore
from .session_tokens import IssuedAccessToken, SessionTokenService
from .token_cipher import TokenCipherService, load_encryption_key

__all__ = [
    "CallbackOutcome",
    "CallbackResult",
    "InMemoryRateLimiter",
    "IssuedAccessToken",
    "PairingService",
    "PairingStart",
    "RateLimitPolicy",
    "RateLimiter",
    "RouteClass",
    "SessionStore",
    "SessionTokenService",
    "StoreRateLimiter",
    "TokenCipherService",
    "load_encryption_key",
    "policies_from_settings",
]
