try:
    from . import _bootstrap  # noqa: F401
    from ._fakes import TickingClock
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401
    from _fakes import TickingClock  # type: ignore

from pathlib import Path

import pytest

from broker.clients.dynamodb import DynamoDBKeyValueStore
from broker.clients.kv_store import InMemoryKeyValueStore
from broker.clients.sqlite_store import SQLiteKeyValueStore
from broker.core.config import StorageSettings
from broker.core.errors import StorageError
from broker.models.records import PendingPairing, TokenRecord
from broker.services.session_store import SessionStore


class FakeDynamoDBTable:
    def __init__(self) -> None:
        self._storage: dict[str, dict] = {}

    def put_item(self, *, Item: dict) -> None:
        self._storage[Item["pk"]] = dict(Item)

    def get_item(self, *, Key: dict, ConsistentRead: bool = False) -> dict:
        item = self._storage.get(Key["pk"])
        return {"Item": dict(item)} if item else {}

    def delete_item(self, *, Key: dict) -> None:
        self._storage.pop(Key["pk"], None)


@pytest.mark.asyncio
async def test_in_memory_store_expires_keys() -> None:
    clock = TickingClock()
    store = InMemoryKeyValueStore(clock=clock)

    await store.put("pair:abc", "value", ttl_seconds=900)
    await store.put("token:xyz", "forever")
    assert await store.get("pair:abc") == "value"

    clock.advance(899)
    assert await store.get("pair:abc") == "value"

    clock.advance(1)
    assert await store.get("pair:abc") is None
    assert await store.get("token:xyz") == "forever"


@pytest.mark.asyncio
async def test_in_memory_store_put_replaces_ttl_and_delete_is_idempotent() -> None:
    clock = TickingClock()
    store = InMemoryKeyValueStore(clock=clock)

    await store.put("token:abc", "v1", ttl_seconds=10)
    clock.advance(8)
    await store.put("token:abc", "v2", ttl_seconds=10)
    clock.advance(8)
    assert await store.get("token:abc") == "v2"

    await store.delete("token:abc")
    await store.delete("token:abc")
    assert await store.get("token:abc") is None


@pytest.mark.asyncio
async def test_in_memory_store_purges_expired_entries_on_write() -> None:
    clock = TickingClock()
    store = InMemoryKeyValueStore(clock=clock)

    for index in range(5):
        await store.put(f"pair:{index}", "x", ttl_seconds=1)
    clock.advance(2)
    await store.put("pair:fresh", "x", ttl_seconds=1)

    assert len(store) == 1


@pytest.mark.asyncio
async def test_sqlite_store_roundtrip_and_expiry(tmp_path: Path) -> None:
    clock = TickingClock(start=1_700_000_000.0)
    store = SQLiteKeyValueStore(str(tmp_path / "nested" / "kv.sqlite3"), clock=clock)

    await store.put("pair:abc", '{"status": "pending"}', ttl_seconds=60)
    await store.put("token:def", "persistent")
    assert await store.get("pair:abc") == '{"status": "pending"}'

    await store.put("pair:abc", "updated", ttl_seconds=60)
    assert await store.get("pair:abc") == "updated"

    clock.advance(61)
    assert await store.get("pair:abc") is None
    assert await store.get("token:def") == "persistent"

    await store.delete("token:def")
    await store.delete("token:missing")
    assert await store.get("token:def") is None


@pytest.mark.asyncio
async def test_dynamodb_store_filters_items_past_ttl() -> None:
    clock = TickingClock(start=1_700_000_000.0)
    table = FakeDynamoDBTable()
    store = DynamoDBKeyValueStore(
        StorageSettings(KV_BACKEND="dynamodb", DYNAMODB_TABLE_NAME="broker"),
        table=table,
        clock=clock,
    )

    await store.put("pair:abc", "value", ttl_seconds=900)
    stored = table.get_item(Key={"pk": "pair:abc"})["Item"]
    assert stored["expires_at"] == 1_700_000_900

    assert await store.get("pair:abc") == "value"
    clock.advance(900)
    assert await store.get("pair:abc") is None

    await store.put("token:abc", "no-ttl")
    assert "expires_at" not in table.get_item(Key={"pk": "token:abc"})["Item"]
    await store.delete("token:abc")
    assert await store.get("token:abc") is None


@pytest.mark.asyncio
async def test_session_store_namespaces_do_not_collide() -> None:
    store = SessionStore(InMemoryKeyValueStore())
    shared_id = "same-identifier"

    await store.put_pairing(PendingPairing(pair_id=shared_id), ttl_seconds=900)
    await store.put_token(
        TokenRecord(
            session_token=shared_id,
            access_token_enc="enc-access",
            refresh_token_enc="enc-refresh",
            access_token_expires_at="2026-01-01T00:00:00+00:00",
        ),
        ttl_seconds=60,
    )

    pairing = await store.get_pairing(shared_id)
    token = await store.get_token(shared_id)
    assert isinstance(pairing, PendingPairing)
    assert token is not None and token.access_token_enc == "enc-access"

    await store.delete_token(shared_id)
    assert await store.get_token(shared_id) is None
    assert await store.get_pairing(shared_id) is not None


@pytest.mark.asyncio
async def test_session_store_reports_malformed_documents() -> None:
    kv = InMemoryKeyValueStore()
    store = SessionStore(kv)
    await kv.put("pair:broken", '{"status": "archived", "pair_id": "broken"}')
    await kv.put("token:broken", "not json")

    with pytest.raises(StorageError) as pairing_exc:
        await store.get_pairing("broken")
    with pytest.raises(StorageError) as token_exc:
        await store.get_token("broken")

    assert pairing_exc.value.to_public_message() == "Internal error"
    assert "not json" not in str(token_exc.value)
