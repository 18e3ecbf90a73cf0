"""Expose dependency helpers for FastAPI routers."""

from .clients import (
    get_kv_store,
    get_oauth_client,
    get_pairing_service,
    get_rate_limiter,
    get_session_store,
    get_session_token_service,
    get_token_cipher_service,
)
from .config import SettingsDependency, get_app_settings

__all__ = [
    "SettingsDependency",
    "get_app_settings",
    "get_kv_store",
    "get_oauth_client",
    "get_pairing_service",
    "get_rate_limiter",
    "get_session_store",
    "get_session_token_service",
    "get_token_cipher_service",
]
