from __future__ import annotations

from datetime import datetime, timezone

import structlog

from ..errors import StoreError
from .base import KeyValueStore

logger = structlog.get_logger(__name__)


class ProcessedMessageMarker:
    """
    Short-lived per-message markers that suppress redelivered updates.

    Markers are almost never read again once their TTL passes, so every
    ``purge_every`` claims the store is asked to drop expired entries.
    """

    def __init__(self, store: KeyValueStore, ttl_seconds: float, *, purge_every: int = 500) -> None:
        self._store = store
        self._ttl = ttl_seconds
        self._purge_every = purge_every
        self._claims = 0

    @property
    def enabled(self) -> bool:
        return self._ttl > 0

    @staticmethod
    def key(chat_id: int, message_id: int) -> str:
        return f"processed_{chat_id}_{message_id}"

    async def claim(self, chat_id: int, message_id: int) -> bool:
        """Return True when the message has not been seen within the TTL."""
        if not self.enabled:
            return True
        key = self.key(chat_id, message_id)
        try:
            if await self._store.get(key) is not None:
                logger.info("duplicate_message_skipped", chat_id=chat_id, message_id=message_id)
                return False
            await self._store.put(key, datetime.now(timezone.utc).isoformat(), ttl_seconds=self._ttl)
        except StoreError as exc:
            # unknown state: process rather than drop the message
            logger.warning("processed_marker_unavailable", error=str(exc), chat_id=chat_id)
        await self._maybe_purge()
        return True

    async def _maybe_purge(self) -> None:
        if self._purge_every <= 0:
            return
        self._claims += 1
        if self._claims < self._purge_every:
            return
        self._claims = 0
        try:
            removed = await self._store.purge_expired()
        except StoreError as exc:
            logger.warning("processed_marker_purge_failed", error=str(exc))
            return
        logger.debug("processed_markers_purged", count=removed)
