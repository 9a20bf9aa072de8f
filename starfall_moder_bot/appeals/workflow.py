from __future__ import annotations

from typing import Optional

import structlog

from ..adapters.platform import PlatformGateway
from ..errors import NotificationError, PermissionLookupError
from ..history.store import ViolationHistory
from ..models import Admin, AppealOutcome, InlineButton
from ..utils.text import escape, format_appeal_summary

logger = structlog.get_logger(__name__)


def resolve_callback_data(user_id: int, chat_id: int) -> str:
    return f"resolve:{user_id}:{chat_id}"


class AppealWorkflow:
    """
    Best-effort relay of a user's dispute to the chat administrators.

    Every human administrator is messaged privately; delivery failures only
    move that admin into ``unreachable``. The workflow never retries and never
    changes the ``handled`` flag of the violation.
    """

    def __init__(
        self,
        platform: PlatformGateway,
        history: ViolationHistory,
        *,
        fallback_contact: str,
        preview_chars: int = 100,
    ) -> None:
        self._platform = platform
        self._history = history
        self._fallback_contact = fallback_contact
        self._preview_chars = preview_chars

    async def resolve(
        self,
        user_id: int,
        chat_id: int,
        *,
        requester_name: Optional[str] = None,
        chat_title: Optional[str] = None,
    ) -> AppealOutcome:
        record = await self._history.latest_for_chat(user_id, chat_id)
        title = chat_title or (record.chat_title if record else None) or str(chat_id)
        outcome = AppealOutcome(record=record)

        admins = await self._human_admins(chat_id)
        summary = format_appeal_summary(
            user_id,
            requester_name,
            title,
            record,
            preview_chars=self._preview_chars,
        )
        buttons = [InlineButton(text="✅ Mark resolved", callback_data=resolve_callback_data(user_id, chat_id))]
        for admin in admins:
            try:
                await self._platform.send_message(admin.user_id, summary, buttons=buttons)
                outcome.notified.append(admin)
            except NotificationError as exc:
                logger.info("appeal_admin_unreachable", chat_id=chat_id, admin_id=admin.user_id, error=str(exc))
                outcome.unreachable.append(admin)

        logger.info(
            "appeal_relayed",
            user_id=user_id,
            chat_id=chat_id,
            notified=len(outcome.notified),
            unreachable=len(outcome.unreachable),
            has_record=record is not None,
        )
        await self._reply(user_id, title, outcome)
        return outcome

    async def _human_admins(self, chat_id: int) -> list[Admin]:
        try:
            admins = await self._platform.get_administrators(chat_id)
        except PermissionLookupError as exc:
            logger.warning("appeal_admin_lookup_failed", chat_id=chat_id, error=str(exc))
            return []
        return [admin for admin in admins if not admin.is_bot]

    async def _reply(self, user_id: int, chat_title: str, outcome: AppealOutcome) -> None:
        if outcome.notified:
            count = len(outcome.notified)
            noun = "administrator" if count == 1 else "administrators"
            text = f"✅ Your appeal was sent to {count} {noun} of <b>{escape(chat_title)}</b>."
        else:
            text = (
                f"❗ Could not contact the administrators of <b>{escape(chat_title)}</b> directly. "
                f"Please reach them via {escape(self._fallback_contact)}."
            )
        try:
            await self._platform.send_message(user_id, text)
        except NotificationError as exc:
            logger.warning("appeal_reply_failed", user_id=user_id, error=str(exc))
