"""
DynamoDB-backed key/value store for pairing and session records.

The table needs a string partition key ``pk``. Enable DynamoDB TTL on the
numeric ``expires_at`` attribute so expired items are eventually removed;
reads also filter them because TTL deletion can lag by hours.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Callable, Dict, Optional

import boto3

from broker.core.config import StorageSettings


class DynamoDBKeyValueStore:
    """Put/get/delete against a single DynamoDB table."""

    def __init__(
        self,
        settings: StorageSettings,
        *,
        table: Any = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._settings = settings
        self._clock = clock
        if table is None:
            resource = boto3.resource("dynamodb", region_name=settings.region_name)
            table = resource.Table(settings.dynamodb_table_name)
        self._table = table

    async def put(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        item: Dict[str, Any] = {"pk": key, "value": value}
        if ttl_seconds is not None:
            item["expires_at"] = int(self._clock()) + int(ttl_seconds)
        await asyncio.to_thread(self._table.put_item, Item=item)

    async def get(self, key: str) -> Optional[str]:
        response = await asyncio.to_thread(
            self._table.get_item, Key={"pk": key}, ConsistentRead=True
        )
        item = response.get("Item")
        if not item:
            return None
        expires_at = item.get("expires_at")
        if expires_at is not None and int(expires_at) <= self._clock():
            return None
        return item["value"]

    async def delete(self, key: str) -> None:
        await asyncio.to_thread(self._table.delete_item, Key={"pk": key})


__all__ = ["DynamoDBKeyValueStore"]
