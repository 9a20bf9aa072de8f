from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, Optional

import structlog

from ..adapters.platform import PlatformGateway
from ..errors import EnforcementActionError, NotificationError, StoreError
from ..history.store import ViolationHistory
from ..models import (
    CapabilitySnapshot,
    ChatPolicy,
    InlineButton,
    MessageEnvelope,
    ModerationOutcome,
    ModerationState,
    ModerationVerdict,
    PunishmentKind,
    Sender,
    ViolationRecord,
)
from ..utils.text import format_spam_notice, format_user_notice, humanize_duration

logger = structlog.get_logger(__name__)

ACTION_DELETED = "deleted the message"
ACTION_ADMIN = "no action taken (admin)"
ACTION_NO_PERMISSION = "insufficient permissions"
ACTION_BANNED = "banned the user"
ACTION_KICKED = "kicked the user"
ACTION_MUTED = "muted the user"
ACTION_CHANNEL_BANNED = "banned the channel"
ACTION_CHANNEL_UNSUPPORTED = "channel senders cannot be muted or kicked"
ACTION_UNKNOWN_SENDER = "sender unknown (no action)"

DEFAULT_RECORDED = (PunishmentKind.MUTE, PunishmentKind.BAN)


def appeal_callback_data(user_id: int, chat_id: int) -> str:
    return f"appeal:{user_id}:{chat_id}"


class PunishmentEngine:
    """
    Turns a spam verdict into enforcement, bounded by the capability snapshot.

    Deletion always runs first. Admin senders are never restricted, and no
    restriction is attempted without the restrict right. Every platform failure
    is logged and the remaining steps still run.
    """

    def __init__(
        self,
        platform: PlatformGateway,
        history: ViolationHistory,
        *,
        recorded_punishments: Iterable[PunishmentKind] = DEFAULT_RECORDED,
        notify_users: bool = True,
        preview_chars: int = 100,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._platform = platform
        self._history = history
        self._recorded = frozenset(recorded_punishments)
        self._notify_users = notify_users
        self._preview_chars = preview_chars
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def enforce(
        self,
        message: MessageEnvelope,
        verdict: ModerationVerdict,
        capability: CapabilitySnapshot,
        policy: ChatPolicy,
    ) -> ModerationOutcome:
        outcome = ModerationOutcome(
            state=ModerationState.CLASSIFIED,
            verdict=verdict,
            capability=capability,
        )
        if not verdict.is_spam:
            outcome.state = ModerationState.CLEAN
            return outcome

        outcome.state = ModerationState.ENFORCING
        ctx = message.context
        sender = ctx.sender

        if capability.bot_can_delete:
            try:
                await self._platform.delete_message(ctx.chat_id, ctx.message_id)
                outcome.actions.append(ACTION_DELETED)
                if policy.punishment == PunishmentKind.DELETE:
                    outcome.applied = PunishmentKind.DELETE
            except EnforcementActionError as exc:
                logger.error("spam_delete_failed", chat_id=ctx.chat_id, message_id=ctx.message_id, error=str(exc))

        if capability.sender_is_admin:
            outcome.actions.append(ACTION_ADMIN)
        elif not capability.bot_can_restrict:
            outcome.actions.append(ACTION_NO_PERMISSION)
        elif sender.user_id is not None:
            await self._punish_user(ctx.chat_id, sender.user_id, policy, outcome)
        elif sender.sender_chat_id is not None:
            await self._punish_channel(ctx.chat_id, sender.sender_chat_id, policy, outcome)
        else:
            outcome.actions.append(ACTION_UNKNOWN_SENDER)

        logger.info(
            "punishment_decision",
            chat_id=ctx.chat_id,
            user_id=sender.user_id,
            sender_chat_id=sender.sender_chat_id,
            policy=policy.punishment.value,
            applied=outcome.applied.value if outcome.applied else None,
            actions=outcome.actions,
        )

        stored = False
        if outcome.applied in self._recorded and sender.user_id is not None:
            outcome.record, stored = await self._record(message, verdict, outcome.applied)

        await self._notify_chat(message, sender, outcome.actions, verdict.reason)
        if outcome.record is not None and self._notify_users and sender.user_id is not None:
            await self._notify_user(sender.user_id, ctx.chat_id, outcome.record, appealable=stored)

        outcome.state = ModerationState.NOTIFIED
        return outcome

    async def _punish_user(
        self,
        chat_id: int,
        user_id: int,
        policy: ChatPolicy,
        outcome: ModerationOutcome,
    ) -> None:
        kind = policy.punishment
        try:
            if kind == PunishmentKind.BAN:
                await self._platform.ban_user(chat_id, user_id)
                outcome.actions.append(ACTION_BANNED)
            elif kind == PunishmentKind.KICK:
                await self._platform.ban_user(chat_id, user_id)
                try:
                    await self._platform.unban_user(chat_id, user_id)
                except EnforcementActionError as exc:
                    logger.error("kick_readmit_failed", chat_id=chat_id, user_id=user_id, error=str(exc))
                outcome.actions.append(ACTION_KICKED)
            elif kind == PunishmentKind.MUTE:
                until = None
                label = ACTION_MUTED
                if policy.mute_duration_seconds:
                    until = self._clock() + timedelta(seconds=policy.mute_duration_seconds)
                    label = f"{ACTION_MUTED} for {humanize_duration(policy.mute_duration_seconds)}"
                await self._platform.restrict_send(chat_id, user_id, allowed=False, until=until)
                outcome.actions.append(label)
            else:
                return
        except EnforcementActionError as exc:
            logger.error("punishment_failed", chat_id=chat_id, user_id=user_id, punishment=kind.value, error=str(exc))
            outcome.actions.append(f"failed to {kind.value} the user")
            return
        outcome.applied = kind

    async def _punish_channel(
        self,
        chat_id: int,
        sender_chat_id: int,
        policy: ChatPolicy,
        outcome: ModerationOutcome,
    ) -> None:
        if policy.punishment == PunishmentKind.DELETE:
            return
        if policy.punishment != PunishmentKind.BAN:
            outcome.actions.append(ACTION_CHANNEL_UNSUPPORTED)
            return
        try:
            await self._platform.ban_sender_chat(chat_id, sender_chat_id)
        except EnforcementActionError as exc:
            logger.error("channel_ban_failed", chat_id=chat_id, sender_chat_id=sender_chat_id, error=str(exc))
            outcome.actions.append("failed to ban the channel")
            return
        outcome.actions.append(ACTION_CHANNEL_BANNED)
        outcome.applied = PunishmentKind.BAN

    async def _record(
        self,
        message: MessageEnvelope,
        verdict: ModerationVerdict,
        punishment: PunishmentKind,
    ) -> tuple[ViolationRecord, bool]:
        """Build the record and append it; the flag tells whether it reached the history."""
        ctx = message.context
        record = ViolationRecord(
            chat_id=ctx.chat_id,
            chat_title=ctx.chat_title or str(ctx.chat_id),
            timestamp=self._clock(),
            punishment=punishment,
            content=message.content_text(),
            reason=verdict.reason,
        )
        try:
            await self._history.append(ctx.sender.user_id, record)
        except StoreError as exc:
            logger.error("history_append_failed", user_id=ctx.sender.user_id, error=str(exc))
            return record, False
        return record, True

    async def _notify_chat(self, message: MessageEnvelope, sender: Sender, actions: list[str], reason: str) -> None:
        text = format_spam_notice(
            sender,
            message.content_text(),
            actions,
            reason,
            preview_chars=self._preview_chars,
        )
        try:
            await self._platform.send_message(message.context.chat_id, text)
        except NotificationError as exc:
            logger.error("spam_notice_failed", chat_id=message.context.chat_id, error=str(exc))

    async def _notify_user(
        self,
        user_id: int,
        chat_id: int,
        record: ViolationRecord,
        *,
        appealable: bool = True,
    ) -> None:
        # an appeal needs the stored record for the admin summary
        buttons = None
        if appealable:
            buttons = [InlineButton(text="📨 Appeal", callback_data=appeal_callback_data(user_id, chat_id))]
        try:
            await self._platform.send_message(
                user_id,
                format_user_notice(record, preview_chars=self._preview_chars, appealable=appealable),
                buttons=buttons,
            )
        except NotificationError as exc:
            # user never opened a private chat with the bot
            logger.debug("user_notice_undelivered", user_id=user_id, error=str(exc))
