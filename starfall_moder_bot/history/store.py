from __future__ import annotations

import json
from typing import Any, Optional

import structlog

from ..errors import StoreError
from ..models import ViolationRecord
from ..storage.base import KeyValueStore

logger = structlog.get_logger(__name__)


class ViolationHistory:
    """
    Append-only per-user violation log stored as a JSON array under ``user_{id}``.

    Reads are lenient: a backend failure reads as an empty history and an entry
    that cannot be decoded is skipped. Writes are strict: they work on the raw
    stored entries, keep the ones they cannot decode, and raise ``StoreError``
    instead of replacing a value they could not read.
    """

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    @staticmethod
    def key(user_id: int) -> str:
        return f"user_{user_id}"

    async def list(self, user_id: int) -> list[ViolationRecord]:
        try:
            entries = await self._load_entries(user_id)
        except StoreError as exc:
            logger.warning("history_read_failed", user_id=user_id, error=str(exc))
            return []
        records = []
        for entry in entries:
            record = self._decode(user_id, entry)
            if record is not None:
                records.append(record)
        return records

    async def append(self, user_id: int, record: ViolationRecord) -> None:
        """Append a record. Raises StoreError when the history cannot be read back or written."""
        entries = await self._load_entries(user_id)
        entries.append(record.to_dict())
        await self._write(user_id, entries)
        logger.info(
            "history_appended",
            user_id=user_id,
            chat_id=record.chat_id,
            punishment=record.punishment.value,
            total=len(entries),
        )

    async def recent(self, user_id: int, limit: int = 5) -> list[ViolationRecord]:
        records = await self.list(user_id)
        return records[-limit:] if limit > 0 else []

    async def latest_for_chat(self, user_id: int, chat_id: int) -> Optional[ViolationRecord]:
        for record in reversed(await self.list(user_id)):
            if record.chat_id == chat_id:
                return record
        return None

    async def mark_handled(self, user_id: int, chat_id: int) -> int:
        """Flag every unhandled record of the user in the chat as handled; returns how many changed."""
        entries = await self._load_entries(user_id)
        changed = 0
        for entry in entries:
            record = self._decode(user_id, entry)
            if record is not None and record.chat_id == chat_id and not record.handled:
                entry["handled"] = True
                changed += 1
        if changed:
            await self._write(user_id, entries)
            logger.info("history_marked_handled", user_id=user_id, chat_id=chat_id, count=changed)
        return changed

    async def _load_entries(self, user_id: int) -> list[Any]:
        raw = await self._store.get(self.key(user_id))
        if not raw:
            return []
        try:
            entries = json.loads(raw)
        except ValueError as exc:
            logger.error("history_corrupted", user_id=user_id, error=str(exc))
            raise StoreError(f"History of user {user_id} is not valid JSON") from exc
        if not isinstance(entries, list):
            logger.error("history_corrupted", user_id=user_id, error="not a list")
            raise StoreError(f"History of user {user_id} is not a JSON array")
        return entries

    def _decode(self, user_id: int, entry: Any) -> Optional[ViolationRecord]:
        try:
            return ViolationRecord.from_dict(entry)
        except (ValueError, TypeError, KeyError, AttributeError) as exc:
            logger.warning("history_entry_skipped", user_id=user_id, error=str(exc))
            return None

    async def _write(self, user_id: int, entries: list[Any]) -> None:
        payload = json.dumps(entries, ensure_ascii=False)
        await self._store.put(self.key(user_id), payload)
