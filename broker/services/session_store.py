"""Namespaced persistence for pairing and token records."""

from __future__ import annotations

from typing import Optional

from pydantic import ValidationError as ModelValidationError

from broker.clients.kv_store import KeyValueStore
from broker.core.errors import StorageError
from broker.models.records import PAIRING_RECORD_ADAPTER, PairingRecord, TokenRecord

PAIR_PREFIX = "pair:"
TOKEN_PREFIX = "token:"
RATE_LIMIT_PREFIX = "ratelimit:"


def pair_key(pair_id: str) -> str:
    return f"{PAIR_PREFIX}{pair_id}"


def token_key(session_token: str) -> str:
    return f"{TOKEN_PREFIX}{session_token}"


def rate_limit_key(route_class: str, identity: str, window: int) -> str:
    return f"{RATE_LIMIT_PREFIX}{route_class}:{identity}:{window}"


class SessionStore:
    """Reads and writes broker records as JSON documents in a KV store."""

    def __init__(self, kv: KeyValueStore) -> None:
        self._kv = kv

    @property
    def kv(self) -> KeyValueStore:
        return self._kv

    async def get_pairing(self, pair_id: str) -> Optional[PairingRecord]:
        raw = await self._kv.get(pair_key(pair_id))
        if raw is None:
            return None
        try:
            return PAIRING_RECORD_ADAPTER.validate_json(raw)
        except ModelValidationError as exc:
            raise StorageError(f"Stored document under {PAIR_PREFIX} is malformed.") from exc

    async def put_pairing(self, record: PairingRecord, *, ttl_seconds: int) -> None:
        await self._kv.put(
            pair_key(record.pair_id),
            record.model_dump_json(),
            ttl_seconds=ttl_seconds,
        )

    async def get_token(self, session_token: str) -> Optional[TokenRecord]:
        raw = await self._kv.get(token_key(session_token))
        if raw is None:
            return None
        try:
            return TokenRecord.model_validate_json(raw)
        except ModelValidationError as exc:
            raise StorageError(f"Stored document under {TOKEN_PREFIX} is malformed.") from exc

    async def put_token(self, record: TokenRecord, *, ttl_seconds: int) -> None:
        await self._kv.put(
            token_key(record.session_token),
            record.model_dump_json(),
            ttl_seconds=ttl_seconds,
        )

    async def delete_token(self, session_token: str) -> None:
        await self._kv.delete(token_key(session_token))


__all__ = [
    "SessionStore",
    "pair_key",
    "rate_limit_key",
    "token_key",
]
