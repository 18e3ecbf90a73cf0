"""
Factory functions to provide shared clients and services as FastAPI dependencies.

Everything here is a per-process singleton: the services hold the in-flight
maps used to coalesce refreshes and duplicate callbacks.
"""

from functools import lru_cache

from broker.clients import (
    DynamoDBKeyValueStore,
    InMemoryKeyValueStore,
    KeyValueStore,
    SmartThingsOAuthClient,
    SQLiteKeyValueStore,
)
from broker.core.config import get_settings
from broker.services import (
    InMemoryRateLimiter,
    PairingService,
    RateLimiter,
    SessionStore,
    SessionTokenService,
    StoreRateLimiter,
    TokenCipherService,
    load_encryption_key,
    policies_from_settings,
)


@lru_cache()
def _settings():
    """Internal helper to cache settings for client factories."""
    return get_settings()


@lru_cache()
def get_kv_store() -> KeyValueStore:
    """Provide the configured key/value backend."""
    storage = _settings().storage
    if storage.backend == "sqlite":
        return SQLiteKeyValueStore(storage.sqlite_path)
    if storage.backend == "dynamodb":
        return DynamoDBKeyValueStore(storage)
    return InMemoryKeyValueStore()


@lru_cache()
def get_session_store() -> SessionStore:
    """Provide the namespaced pairing/token record store."""
    return SessionStore(get_kv_store())


@lru_cache()
def get_token_cipher_service() -> TokenCipherService:
    """Provide AES-GCM encryption for token storage; the key is decoded once."""
    settings = _settings()
    return TokenCipherService(
        key=load_encryption_key(settings.security.token_encryption_key)
    )


@lru_cache()
def get_oauth_client() -> SmartThingsOAuthClient:
    """Create a singleton SmartThings OAuth client."""
    settings = _settings()
    return SmartThingsOAuthClient(
        settings.smartthings, timeout=settings.oauth_http_timeout
    )


@lru_cache()
def get_pairing_service() -> PairingService:
    """Provide the pairing flow service."""
    settings = _settings()
    return PairingService(
        store=get_session_store(),
        oauth_client=get_oauth_client(),
        token_cipher=get_token_cipher_service(),
        settings=settings.pairing,
    )


@lru_cache()
def get_session_token_service() -> SessionTokenService:
    """Provide helper for issuing and refreshing session access tokens."""
    settings = _settings()
    return SessionTokenService(
        store=get_session_store(),
        oauth_client=get_oauth_client(),
        token_cipher=get_token_cipher_service(),
        settings=settings.pairing,
    )


@lru_cache()
def get_rate_limiter() -> RateLimiter:
    """Provide the request throttle selected by configuration."""
    rate_limit = _settings().rate_limit
    policies = policies_from_settings(rate_limit)
    if rate_limit.backend == "store":
        return StoreRateLimiter(get_kv_store(), policies)
    return InMemoryRateLimiter(
        policies, prune_interval=rate_limit.prune_interval_seconds
    )


__all__ = [
    "get_kv_store",
    "get_oauth_client",
    "get_pairing_service",
    "get_rate_limiter",
    "get_session_store",
    "get_session_token_service",
    "get_token_cipher_service",
]
