from __future__ import annotations

import json
from typing import Any, Optional

import structlog

from ..adapters.openai import ChatCompletionRequest, GPTClient
from ..config import BotSettings
from ..errors import ClassificationError, StoreError
from ..storage.base import KeyValueStore

logger = structlog.get_logger(__name__)

DEFAULT_SYSTEM_PROMPT = (
    "Your name is AI Starfall, an AI assistant that helps users with a variety of tasks. "
    "You are friendly, knowledgeable, and always eager to assist. "
    "Keep your responses concise and to the point."
)
FALLBACK_REPLY = "I'm sorry, I couldn't generate a response at this time."


class ChatAssistant:
    """
    Conversational replies for messages addressed to the bot.

    Each chat keeps a rolling transcript under ``chat_{id}`` holding the last
    ``history_limit`` user and assistant turns. The system prompt is never
    stored. A broken or unreachable transcript starts a fresh conversation.
    """

    def __init__(
        self,
        client: GPTClient,
        store: KeyValueStore,
        *,
        model: str = "gpt-4.1-mini",
        history_limit: int = 50,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        max_completion_tokens: int = 512,
    ) -> None:
        self._client = client
        self._store = store
        self._model = model
        self._history_limit = history_limit
        self._system_prompt = system_prompt
        self._max_completion_tokens = max_completion_tokens

    @classmethod
    def from_settings(cls, settings: BotSettings, *, client: GPTClient, store: KeyValueStore) -> "ChatAssistant":
        return cls(
            client,
            store,
            model=settings.openai.model,
            history_limit=settings.assistant.history_limit,
            system_prompt=settings.assistant.system_prompt or DEFAULT_SYSTEM_PROMPT,
        )

    @staticmethod
    def key(chat_id: int) -> str:
        return f"chat_{chat_id}"

    async def reply(self, chat_id: int, author: str, text: str) -> Optional[str]:
        """Answer ``text`` in the context of the chat transcript; None when no answer could be produced."""
        transcript = await self.transcript(chat_id)
        transcript.append({"role": "user", "content": f"{author}: {text}"})
        transcript = self._trim(transcript)

        request = ChatCompletionRequest(
            model=self._model,
            messages=[{"role": "system", "content": self._system_prompt}, *transcript],
            max_completion_tokens=self._max_completion_tokens,
        )
        try:
            completion = await self._client.complete(request)
        except ClassificationError as exc:
            logger.warning("assistant_completion_failed", chat_id=chat_id, error=str(exc))
            return None
        answer = completion.content.strip()
        if not answer:
            logger.info("assistant_empty_answer", chat_id=chat_id, finish_reason=completion.finish_reason)
            return None

        transcript.append({"role": "assistant", "content": answer})
        await self._save(chat_id, self._trim(transcript))
        logger.info("assistant_replied", chat_id=chat_id, turns=len(transcript), tokens=completion.tokens)
        return answer

    async def transcript(self, chat_id: int) -> list[dict[str, Any]]:
        try:
            raw = await self._store.get(self.key(chat_id))
        except StoreError as exc:
            logger.warning("assistant_transcript_read_failed", chat_id=chat_id, error=str(exc))
            return []
        if not raw:
            return []
        try:
            entries = json.loads(raw)
        except ValueError as exc:
            logger.warning("assistant_transcript_corrupted", chat_id=chat_id, error=str(exc))
            return []
        if not isinstance(entries, list):
            return []
        return [
            entry
            for entry in entries
            if isinstance(entry, dict) and entry.get("role") in {"user", "assistant"} and "content" in entry
        ]

    async def reset(self, chat_id: int) -> None:
        """Forget the chat transcript. Raises StoreError when the store fails."""
        await self._store.delete(self.key(chat_id))
        logger.info("assistant_transcript_reset", chat_id=chat_id)

    def _trim(self, transcript: list[dict[str, Any]]) -> list[dict[str, Any]]:
        if self._history_limit <= 0:
            return transcript[-1:]
        return transcript[-self._history_limit:]

    async def _save(self, chat_id: int, transcript: list[dict[str, Any]]) -> None:
        try:
            await self._store.put(self.key(chat_id), json.dumps(transcript, ensure_ascii=False))
        except StoreError as exc:
            logger.error("assistant_transcript_write_failed", chat_id=chat_id, error=str(exc))


def is_addressed(
    text: Optional[str],
    *,
    chat_type: str,
    bot_username: Optional[str],
    replied_to_bot: bool,
) -> bool:
    """Private messages, @mentions of the bot and replies to the bot are addressed to it."""
    if not text or text.startswith("/"):
        return False
    if chat_type == "private" or replied_to_bot:
        return True
    return bool(bot_username) and f"@{bot_username}".lower() in text.lower()
