from __future__ import annotations

import pytest

from starfall_moder_bot.errors import StoreError
from starfall_moder_bot.storage.markers import ProcessedMessageMarker
from starfall_moder_bot.storage.sqlite import SQLiteStore
from tests.factories import CHAT_ID, InMemoryStore


@pytest.mark.asyncio
async def test_sqlite_put_get_delete(tmp_path) -> None:
    store = SQLiteStore(tmp_path / "kv.db")
    await store.connect()
    try:
        assert await store.get("rules_1") is None

        await store.put("rules_1", "no ads")
        await store.put("rules_1", "no ads, no links")
        assert await store.get("rules_1") == "no ads, no links"

        await store.delete("rules_1")
        assert await store.get("rules_1") is None
    finally:
        await store.disconnect()


@pytest.mark.asyncio
async def test_sqlite_persists_across_connections(tmp_path) -> None:
    path = tmp_path / "kv.db"
    store = SQLiteStore(path)
    await store.connect()
    await store.put("language_1", "русский")
    await store.disconnect()

    reopened = SQLiteStore(path)
    await reopened.connect()
    try:
        assert await reopened.get("language_1") == "русский"
    finally:
        await reopened.disconnect()


@pytest.mark.asyncio
async def test_sqlite_expired_entries_are_invisible(tmp_path) -> None:
    store = SQLiteStore(tmp_path / "kv.db")
    await store.connect()
    try:
        await store.put("processed_1_1", "x", ttl_seconds=-1)
        await store.put("processed_1_2", "y", ttl_seconds=-1)
        await store.put("processed_1_3", "z", ttl_seconds=600)

        assert await store.get("processed_1_1") is None
        assert await store.purge_expired() == 1
        assert await store.get("processed_1_3") == "z"
    finally:
        await store.disconnect()


@pytest.mark.asyncio
async def test_sqlite_requires_connection(tmp_path) -> None:
    store = SQLiteStore(tmp_path / "kv.db")

    with pytest.raises(StoreError):
        await store.get("anything")


@pytest.mark.asyncio
async def test_marker_claims_once() -> None:
    marker = ProcessedMessageMarker(InMemoryStore(), ttl_seconds=60)

    assert await marker.claim(CHAT_ID, 5) is True
    assert await marker.claim(CHAT_ID, 5) is False
    assert await marker.claim(CHAT_ID, 6) is True


@pytest.mark.asyncio
async def test_marker_disabled_and_unavailable_store_process_message() -> None:
    disabled = ProcessedMessageMarker(InMemoryStore(), ttl_seconds=0)
    assert await disabled.claim(CHAT_ID, 5) is True
    assert await disabled.claim(CHAT_ID, 5) is True

    store = InMemoryStore()
    store.fail_reads = True
    broken = ProcessedMessageMarker(store, ttl_seconds=60)
    assert await broken.claim(CHAT_ID, 5) is True
    assert await broken.claim(CHAT_ID, 5) is True


@pytest.mark.asyncio
async def test_marker_periodically_purges_expired_markers() -> None:
    store = InMemoryStore()
    await store.put(ProcessedMessageMarker.key(CHAT_ID, 1), "old", ttl_seconds=-1)
    await store.put("rules_1", "no ads")
    marker = ProcessedMessageMarker(store, ttl_seconds=60, purge_every=2)

    await marker.claim(CHAT_ID, 2)
    assert ProcessedMessageMarker.key(CHAT_ID, 1) in store.data

    await marker.claim(CHAT_ID, 3)
    assert ProcessedMessageMarker.key(CHAT_ID, 1) not in store.data
    assert set(store.data) == {"rules_1", ProcessedMessageMarker.key(CHAT_ID, 2), ProcessedMessageMarker.key(CHAT_ID, 3)}


@pytest.mark.asyncio
async def test_marker_purge_failure_does_not_block_claims() -> None:
    store = InMemoryStore()
    marker = ProcessedMessageMarker(store, ttl_seconds=60, purge_every=1)
    await marker.claim(CHAT_ID, 1)

    store.fail_writes = True
    assert await marker.claim(CHAT_ID, 2) is True
