"""SQLite-backed key/value store with per-key expiry."""

from __future__ import annotations

import asyncio
import sqlite3
import time
from pathlib import Path
from typing import Callable, Optional


class SQLiteKeyValueStore:
    """Simple key-value table; expired rows are ignored and purged lazily."""

    def __init__(self, db_path: str, clock: Callable[[], float] = time.time) -> None:
        self._db_path = Path(db_path)
        self._clock = clock
        if self._db_path.parent and not self._db_path.parent.exists():
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_schema(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS kv_records (
                    key TEXT NOT NULL PRIMARY KEY,
                    value TEXT NOT NULL,
                    expires_at REAL
                )
                """
            )

    async def put(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        await asyncio.to_thread(self._put, key, value, ttl_seconds)

    async def get(self, key: str) -> Optional[str]:
        return await asyncio.to_thread(self._get, key)

    async def delete(self, key: str) -> None:
        await asyncio.to_thread(self._delete, key)

    def _put(self, key: str, value: str, ttl_seconds: Optional[int]) -> None:
        now = self._clock()
        expires_at = now + ttl_seconds if ttl_seconds is not None else None
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO kv_records (key, value, expires_at)
                VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    expires_at = excluded.expires_at
                """,
                (key, value, expires_at),
            )
            conn.execute(
                "DELETE FROM kv_records WHERE expires_at IS NOT NULL AND expires_at <= ?",
                (now,),
            )

    def _get(self, key: str) -> Optional[str]:
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT value FROM kv_records
                WHERE key = ? AND (expires_at IS NULL OR expires_at > ?)
                """,
                (key, self._clock()),
            ).fetchone()
        if not row:
            return None
        return row["value"]

    def _delete(self, key: str) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM kv_records WHERE key = ?", (key,))


__all__ = ["SQLiteKeyValueStore"]
