"""
Application configuration models and helpers.

Centralizes settings management so the FastAPI app, the dependency factories
and the operator scripts share a consistent configuration surface.
"""

import base64
import binascii
import os
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _load_env_file(path: str = ".env") -> None:
    """Best-effort load key=value pairs from a .env file without extra deps."""
    env_path = Path(path)
    if not env_path.exists():
        return
    for raw_line in env_path.read_text().splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        if not sep:
            continue
        key = key.strip()
        if not key or key in os.environ:
            continue
        cleaned = value.strip().strip('"').strip("'")
        os.environ[key] = cleaned


_load_env_file()


def decode_key_material(encoded: str) -> bytes:
    """Decode a base64 (standard or URL-safe, padding optional) key string."""
    cleaned = encoded.strip()
    padded = cleaned + "=" * (-len(cleaned) % 4)
    altchars = b"-_" if ("-" in cleaned or "_" in cleaned) else None
    return base64.b64decode(padded, altchars=altchars, validate=True)


class _Section(BaseSettings):
    model_config = SettingsConfigDict(populate_by_name=True, extra="ignore")


class SmartThingsSettings(_Section):
    """Configuration required for the SmartThings OAuth integration."""

    client_id: str = Field(..., validation_alias="ST_CLIENT_ID")
    client_secret: str = Field(..., validation_alias="ST_CLIENT_SECRET")
    redirect_uri: Optional[str] = Field(
        None,
        validation_alias="ST_REDIRECT_URI",
        description="Explicit OAuth redirect URI registered with SmartThings.",
    )
    public_base_url: Optional[str] = Field(
        None,
        validation_alias="PUBLIC_BASE_URL",
        description="Public origin of the broker; used to derive the redirect URI.",
    )
    token_url: str = Field(
        "https://auth-global.api.smartthings.com/oauth/token",
        validation_alias="ST_TOKEN_URL",
    )
    authorization_url: str = Field(
        "https://api.smartthings.com/oauth/authorize",
        validation_alias="ST_AUTHORIZATION_URL",
    )
    scopes: str = Field(
        "r:devices:* x:devices:*",
        validation_alias="ST_SCOPES",
        description="Space-delimited scopes requested during pairing.",
    )

    @model_validator(mode="after")
    def _require_redirect_source(self) -> "SmartThingsSettings":
        if not self.redirect_uri and not self.public_base_url:
            raise ValueError(
                "Missing redirect URI: set ST_REDIRECT_URI or PUBLIC_BASE_URL."
            )
        return self

    @property
    def resolved_redirect_uri(self) -> str:
        """Redirect URI sent to SmartThings for both authorize and exchange."""
        if self.redirect_uri:
            return self.redirect_uri
        return f"{self.public_base_url.rstrip('/')}/v1/callback"


class SecuritySettings(_Section):
    """Security-related configuration."""

    token_encryption_key: str = Field(
        ...,
        validation_alias="TOKEN_ENC_KEY_B64",
        description="Base64-encoded 32-byte key for AES-GCM encryption of tokens.",
    )

    @field_validator("token_encryption_key")
    @classmethod
    def _check_key_length(cls, value: str) -> str:
        try:
            raw = decode_key_material(value)
        except (binascii.Error, ValueError) as exc:
            raise ValueError("TOKEN_ENC_KEY_B64 is not valid base64.") from exc
        if len(raw) != 32:
            raise ValueError(
                f"TOKEN_ENC_KEY_B64 must decode to 32 bytes, got {len(raw)}."
            )
        return value


class PairingSettings(_Section):
    """Lifetimes for pairing attempts and broker sessions."""

    pair_ttl_seconds: int = Field(900, validation_alias="PAIR_TTL_SECONDS", gt=0)
    session_ttl_seconds: int = Field(
        60 * 60 * 24 * 60, validation_alias="SESSION_TTL_SECONDS", gt=0
    )
    access_token_safety_margin_seconds: int = Field(
        60, validation_alias="ACCESS_TOKEN_SAFETY_MARGIN_SECONDS", ge=0
    )
    debug: bool = Field(
        False,
        validation_alias="PAIR_DEBUG",
        description="Include authorize URL diagnostics in pairing responses.",
    )


class RateLimitSettings(_Section):
    """Per route class request budgets."""

    backend: Literal["memory", "store"] = Field(
        "memory", validation_alias="RATE_LIMIT_BACKEND"
    )
    pair_start_limit: int = Field(10, validation_alias="RATE_LIMIT_PAIR_START_LIMIT")
    pair_start_window_seconds: int = Field(
        60, validation_alias="RATE_LIMIT_PAIR_START_WINDOW_SECONDS"
    )
    pair_poll_limit: int = Field(120, validation_alias="RATE_LIMIT_PAIR_POLL_LIMIT")
    pair_poll_window_seconds: int = Field(
        60, validation_alias="RATE_LIMIT_PAIR_POLL_WINDOW_SECONDS"
    )
    access_token_limit: int = Field(
        60, validation_alias="RATE_LIMIT_ACCESS_TOKEN_LIMIT"
    )
    access_token_window_seconds: int = Field(
        60, validation_alias="RATE_LIMIT_ACCESS_TOKEN_WINDOW_SECONDS"
    )
    global_limit: int = Field(300, validation_alias="RATE_LIMIT_GLOBAL_LIMIT")
    global_window_seconds: int = Field(
        60, validation_alias="RATE_LIMIT_GLOBAL_WINDOW_SECONDS"
    )
    prune_interval_seconds: float = Field(
        60.0, validation_alias="RATE_LIMIT_PRUNE_INTERVAL_SECONDS"
    )
    trust_forwarded_for: bool = Field(
        False,
        validation_alias="RATE_LIMIT_TRUST_FORWARDED_FOR",
        description="Identify clients by the first X-Forwarded-For hop.",
    )


class StorageSettings(_Section):
    """Backend selection for the key/value session store."""

    backend: Literal["memory", "sqlite", "dynamodb"] = Field(
        "memory", validation_alias="KV_BACKEND"
    )
    sqlite_path: str = Field("data/broker.sqlite3", validation_alias="KV_SQLITE_PATH")
    region_name: str = Field("us-east-1", validation_alias="AWS_REGION")
    dynamodb_table_name: Optional[str] = Field(
        None, validation_alias="DYNAMODB_TABLE_NAME"
    )

    @model_validator(mode="after")
    def _require_table_for_dynamodb(self) -> "StorageSettings":
        if self.backend == "dynamodb" and not self.dynamodb_table_name:
            raise ValueError("DYNAMODB_TABLE_NAME is required when KV_BACKEND=dynamodb.")
        return self


class AppSettings(_Section):
    """Root settings object for the FastAPI application."""

    environment: str = Field("development", validation_alias="APP_ENV")
    log_level: str = Field("INFO", validation_alias="APP_LOG_LEVEL")
    oauth_http_timeout: float = Field(
        10.0,
        validation_alias="OAUTH_HTTP_TIMEOUT",
        description="Timeout in seconds for calls to the SmartThings token endpoint.",
    )
    smartthings: SmartThingsSettings = Field(default_factory=SmartThingsSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    pairing: PairingSettings = Field(default_factory=PairingSettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        populate_by_name=True,
        extra="ignore",
    )


@lru_cache()
def get_settings() -> AppSettings:
    """Return a cached settings object."""
    return AppSettings()  # type: ignore[call-arg]


__all__ = [
    "AppSettings",
    "PairingSettings",
    "RateLimitSettings",
    "SecuritySettings",
    "SmartThingsSettings",
    "StorageSettings",
    "decode_key_material",
    "get_settings",
]
