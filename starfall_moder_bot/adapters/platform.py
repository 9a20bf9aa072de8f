from __future__ import annotations

import abc
from datetime import datetime
from typing import Optional, Sequence

from ..models import Admin, InlineButton, Membership


class PlatformGateway(abc.ABC):
    """
    Narrow capability interface the moderation core uses to act on a chat.

    Implementations raise ``EnforcementActionError`` for failed moderation
    primitives, ``PermissionLookupError`` for failed membership or admin
    lookups and ``NotificationError`` for undeliverable messages.
    """

    @property
    @abc.abstractmethod
    def bot_id(self) -> int:
        ...

    @abc.abstractmethod
    async def delete_message(self, chat_id: int, message_id: int) -> None:
        ...

    @abc.abstractmethod
    async def ban_user(self, chat_id: int, user_id: int, until: Optional[datetime] = None) -> None:
        ...

    @abc.abstractmethod
    async def unban_user(self, chat_id: int, user_id: int) -> None:
        ...

    @abc.abstractmethod
    async def restrict_send(
        self,
        chat_id: int,
        user_id: int,
        allowed: bool,
        until: Optional[datetime] = None,
    ) -> None:
        ...

    @abc.abstractmethod
    async def ban_sender_chat(self, chat_id: int, sender_chat_id: int) -> None:
        ...

    @abc.abstractmethod
    async def get_membership(self, chat_id: int, user_id: int) -> Membership:
        ...

    @abc.abstractmethod
    async def get_administrators(self, chat_id: int) -> list[Admin]:
        ...

    @abc.abstractmethod
    async def send_message(
        self,
        chat_id: int,
        text: str,
        *,
        buttons: Optional[Sequence[InlineButton]] = None,
    ) -> None:
        ...
