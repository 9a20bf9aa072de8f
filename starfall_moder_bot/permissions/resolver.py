from __future__ import annotations

import structlog

from ..adapters.platform import PlatformGateway
from ..errors import PermissionLookupError
from ..models import CapabilitySnapshot, MemberStatus, Sender

logger = structlog.get_logger(__name__)


class CapabilityResolver:
    """Resolves per-message bot rights and sender admin status. Never cached."""

    def __init__(self, platform: PlatformGateway) -> None:
        self._platform = platform

    async def resolve(self, chat_id: int, sender: Sender, bot_id: int) -> CapabilitySnapshot:
        try:
            bot_member = await self._platform.get_membership(chat_id, bot_id)
            bot_is_admin = bot_member.status == MemberStatus.ADMINISTRATOR
            sender_is_admin = False
            if sender.user_id is not None:
                sender_member = await self._platform.get_membership(chat_id, sender.user_id)
                sender_is_admin = sender_member.is_admin
            elif sender.sender_chat_id == chat_id:
                # anonymous group admin posting as the group itself
                sender_is_admin = True
        except PermissionLookupError as exc:
            logger.warning("capability_lookup_failed", chat_id=chat_id, error=str(exc))
            return CapabilitySnapshot.conservative()

        snapshot = CapabilitySnapshot(
            bot_can_delete=bot_is_admin and bot_member.can_delete_messages,
            bot_can_restrict=bot_is_admin and bot_member.can_restrict_members,
            sender_is_admin=sender_is_admin,
        )
        logger.debug(
            "capability_resolved",
            chat_id=chat_id,
            bot_can_delete=snapshot.bot_can_delete,
            bot_can_restrict=snapshot.bot_can_restrict,
            sender_is_admin=snapshot.sender_is_admin,
            channel_sender=sender.is_channel,
        )
        return snapshot

    async def is_chat_admin(self, chat_id: int, user_id: int) -> bool:
        try:
            member = await self._platform.get_membership(chat_id, user_id)
        except PermissionLookupError as exc:
            logger.warning("admin_check_failed", chat_id=chat_id, user_id=user_id, error=str(exc))
            return False
        return member.is_admin
