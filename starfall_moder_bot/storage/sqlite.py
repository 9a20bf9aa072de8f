from __future__ import annotations

import time
from pathlib import Path
from typing import Optional

import aiosqlite
import structlog

from ..errors import StoreError
from .base import KeyValueStore

logger = structlog.get_logger(__name__)


CREATE_KV = """
CREATE TABLE IF NOT EXISTS kv_store (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    expires_at REAL
)
"""


class SQLiteStore(KeyValueStore):
    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._conn: Optional[aiosqlite.Connection] = None

    async def connect(self) -> None:
        try:
            self._conn = await aiosqlite.connect(self._path)
            await self._conn.execute("PRAGMA journal_mode=WAL")
            await self._conn.execute(CREATE_KV)
            await self._conn.commit()
        except aiosqlite.Error as exc:
            raise StoreError(f"Cannot open {self._path}: {exc}") from exc
        logger.info("sqlite_connected", path=str(self._path))

    async def disconnect(self) -> None:
        if self._conn:
            await self._conn.close()
            self._conn = None

    async def get(self, key: str) -> Optional[str]:
        conn = self._require_conn()
        try:
            cursor = await conn.execute("SELECT value, expires_at FROM kv_store WHERE key = ?", (key,))
            row = await cursor.fetchone()
            await cursor.close()
            if row is None:
                return None
            value, expires_at = row
            if expires_at is not None and expires_at <= time.time():
                await conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
                await conn.commit()
                return None
            return value
        except aiosqlite.Error as exc:
            raise StoreError(f"Read of {key!r} failed: {exc}") from exc

    async def put(self, key: str, value: str, *, ttl_seconds: Optional[float] = None) -> None:
        conn = self._require_conn()
        expires_at = time.time() + ttl_seconds if ttl_seconds else None
        try:
            await conn.execute(
                """
                INSERT INTO kv_store (key, value, expires_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value=excluded.value,
                    expires_at=excluded.expires_at
                """,
                (key, value, expires_at),
            )
            await conn.commit()
        except aiosqlite.Error as exc:
            raise StoreError(f"Write of {key!r} failed: {exc}") from exc
        logger.debug("sqlite_put", key=key, ttl=ttl_seconds)

    async def delete(self, key: str) -> None:
        conn = self._require_conn()
        try:
            await conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
            await conn.commit()
        except aiosqlite.Error as exc:
            raise StoreError(f"Delete of {key!r} failed: {exc}") from exc
        logger.debug("sqlite_delete", key=key)

    async def purge_expired(self) -> int:
        conn = self._require_conn()
        try:
            cursor = await conn.execute(
                "DELETE FROM kv_store WHERE expires_at IS NOT NULL AND expires_at <= ?",
                (time.time(),),
            )
            await conn.commit()
        except aiosqlite.Error as exc:
            raise StoreError(f"Purge failed: {exc}") from exc
        removed = cursor.rowcount or 0
        if removed:
            logger.info("sqlite_purged_expired", count=removed)
        return removed

    def _require_conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise StoreError("Store is not connected")
        return self._conn
