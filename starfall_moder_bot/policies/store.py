from __future__ import annotations

from typing import Optional

import structlog

from ..errors import StoreError
from ..models import ChatPolicy, PunishmentKind
from ..storage.base import KeyValueStore

logger = structlog.get_logger(__name__)


class PolicyStore:
    """
    Per-chat moderation policy on top of the key-value store.

    Reads never fail: a missing key, a backend error or an unrecognised stored
    value falls back to the configured default. Writes raise ``StoreError`` so
    the admin command that issued them can report the failure.
    """

    def __init__(self, store: KeyValueStore, defaults: Optional[ChatPolicy] = None) -> None:
        self._store = store
        self._defaults = defaults or ChatPolicy()

    @property
    def defaults(self) -> ChatPolicy:
        return self._defaults

    @staticmethod
    def rules_key(chat_id: int) -> str:
        return f"rules_{chat_id}"

    @staticmethod
    def language_key(chat_id: int) -> str:
        return f"language_{chat_id}"

    @staticmethod
    def punishment_key(chat_id: int) -> str:
        return f"punishment_{chat_id}"

    @staticmethod
    def mute_duration_key(chat_id: int) -> str:
        return f"mute_duration_{chat_id}"

    async def get_policy(self, chat_id: int) -> ChatPolicy:
        rules = await self._read(self.rules_key(chat_id))
        language = await self._read(self.language_key(chat_id))
        punishment = self._parse_punishment(await self._read(self.punishment_key(chat_id)), chat_id)
        mute_duration = self._parse_duration(await self._read(self.mute_duration_key(chat_id)), chat_id)
        return ChatPolicy(
            rules=rules or self._defaults.rules,
            language=language or self._defaults.language,
            punishment=punishment or self._defaults.punishment,
            mute_duration_seconds=mute_duration
            if mute_duration is not None
            else self._defaults.mute_duration_seconds,
        )

    async def set_rules(self, chat_id: int, rules: str) -> None:
        await self._store.put(self.rules_key(chat_id), rules.strip())
        logger.info("policy_rules_set", chat_id=chat_id, length=len(rules))

    async def set_language(self, chat_id: int, language: str) -> None:
        await self._store.put(self.language_key(chat_id), language.strip().lower())
        logger.info("policy_language_set", chat_id=chat_id, language=language)

    async def set_punishment(self, chat_id: int, punishment: PunishmentKind) -> None:
        await self._store.put(self.punishment_key(chat_id), punishment.value)
        logger.info("policy_punishment_set", chat_id=chat_id, punishment=punishment.value)

    async def set_mute_duration(self, chat_id: int, seconds: Optional[int]) -> None:
        if seconds:
            await self._store.put(self.mute_duration_key(chat_id), str(seconds))
        else:
            await self._store.delete(self.mute_duration_key(chat_id))
        logger.info("policy_mute_duration_set", chat_id=chat_id, seconds=seconds)

    async def reset(self, chat_id: int) -> None:
        for key in (
            self.rules_key(chat_id),
            self.language_key(chat_id),
            self.punishment_key(chat_id),
            self.mute_duration_key(chat_id),
        ):
            await self._store.delete(key)
        logger.info("policy_reset", chat_id=chat_id)

    async def _read(self, key: str) -> Optional[str]:
        try:
            return await self._store.get(key)
        except StoreError as exc:
            logger.warning("policy_read_failed", key=key, error=str(exc))
            return None

    def _parse_punishment(self, value: Optional[str], chat_id: int) -> Optional[PunishmentKind]:
        if not value:
            return None
        try:
            return PunishmentKind(value.strip().lower())
        except ValueError:
            logger.warning("policy_unknown_punishment", chat_id=chat_id, value=value)
            return None

    def _parse_duration(self, value: Optional[str], chat_id: int) -> Optional[int]:
        if not value:
            return None
        try:
            seconds = int(value)
        except ValueError:
            logger.warning("policy_invalid_mute_duration", chat_id=chat_id, value=value)
            return None
        return seconds if seconds > 0 else None
