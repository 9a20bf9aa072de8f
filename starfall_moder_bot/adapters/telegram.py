from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Optional, Sequence

import structlog
from aiogram import Bot
from aiogram.enums import ParseMode
from aiogram.exceptions import TelegramAPIError
from aiogram.types import ChatPermissions, InlineKeyboardButton, InlineKeyboardMarkup

from ..errors import EnforcementActionError, ModerationError, NotificationError, PermissionLookupError
from ..models import Admin, InlineButton, MemberStatus, Membership
from .platform import PlatformGateway

logger = structlog.get_logger(__name__)


def _status_value(status) -> str:
    return getattr(status, "value", status)


def build_keyboard(buttons: Optional[Sequence[InlineButton]]) -> Optional[InlineKeyboardMarkup]:
    if not buttons:
        return None
    return InlineKeyboardMarkup(
        inline_keyboard=[
            [InlineKeyboardButton(text=button.text, callback_data=button.callback_data)]
            for button in buttons
        ]
    )


@asynccontextmanager
async def _translate(error_cls: type[ModerationError], operation: str, **context) -> AsyncIterator[None]:
    try:
        yield
    except TelegramAPIError as exc:
        logger.debug("telegram_call_failed", operation=operation, error=str(exc), **context)
        raise error_cls(f"{operation} failed: {exc}") from exc


class TelegramPlatform(PlatformGateway):
    """PlatformGateway backed by an aiogram ``Bot``; replies use HTML parse mode."""

    def __init__(self, bot: Bot) -> None:
        self._bot = bot

    @property
    def bot_id(self) -> int:
        return self._bot.id

    async def delete_message(self, chat_id: int, message_id: int) -> None:
        async with _translate(EnforcementActionError, "delete_message", chat_id=chat_id, message_id=message_id):
            await self._bot.delete_message(chat_id, message_id)

    async def ban_user(self, chat_id: int, user_id: int, until: Optional[datetime] = None) -> None:
        async with _translate(EnforcementActionError, "ban_chat_member", chat_id=chat_id, user_id=user_id):
            await self._bot.ban_chat_member(chat_id, user_id, until_date=until)

    async def unban_user(self, chat_id: int, user_id: int) -> None:
        async with _translate(EnforcementActionError, "unban_chat_member", chat_id=chat_id, user_id=user_id):
            await self._bot.unban_chat_member(chat_id, user_id, only_if_banned=True)

    async def restrict_send(
        self,
        chat_id: int,
        user_id: int,
        allowed: bool,
        until: Optional[datetime] = None,
    ) -> None:
        if allowed:
            permissions = ChatPermissions(
                can_send_messages=True,
                can_send_polls=True,
                can_send_other_messages=True,
                can_add_web_page_previews=True,
            )
        else:
            permissions = ChatPermissions(can_send_messages=False)
        async with _translate(EnforcementActionError, "restrict_chat_member", chat_id=chat_id, user_id=user_id):
            await self._bot.restrict_chat_member(chat_id, user_id, permissions=permissions, until_date=until)

    async def ban_sender_chat(self, chat_id: int, sender_chat_id: int) -> None:
        async with _translate(
            EnforcementActionError, "ban_chat_sender_chat", chat_id=chat_id, sender_chat_id=sender_chat_id
        ):
            await self._bot.ban_chat_sender_chat(chat_id, sender_chat_id)

    async def get_membership(self, chat_id: int, user_id: int) -> Membership:
        async with _translate(PermissionLookupError, "get_chat_member", chat_id=chat_id, user_id=user_id):
            member = await self._bot.get_chat_member(chat_id, user_id)
        try:
            status = MemberStatus(_status_value(member.status))
        except ValueError as exc:
            raise PermissionLookupError(f"Unknown member status: {member.status}") from exc
        return Membership(
            status=status,
            can_delete_messages=bool(getattr(member, "can_delete_messages", False)),
            can_restrict_members=bool(getattr(member, "can_restrict_members", False)),
        )

    async def get_administrators(self, chat_id: int) -> list[Admin]:
        async with _translate(PermissionLookupError, "get_chat_administrators", chat_id=chat_id):
            members = await self._bot.get_chat_administrators(chat_id)
        return [
            Admin(user_id=member.user.id, name=member.user.full_name, is_bot=member.user.is_bot)
            for member in members
        ]

    async def send_message(
        self,
        chat_id: int,
        text: str,
        *,
        buttons: Optional[Sequence[InlineButton]] = None,
    ) -> None:
        async with _translate(NotificationError, "send_message", chat_id=chat_id):
            await self._bot.send_message(
                chat_id,
                text,
                parse_mode=ParseMode.HTML,
                reply_markup=build_keyboard(buttons),
            )
