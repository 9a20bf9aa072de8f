from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import timezone
from typing import Optional

import structlog
from aiogram import Bot, Dispatcher, F
from aiogram.enums import ChatAction, ChatType, ParseMode
from aiogram.exceptions import TelegramBadRequest
from aiogram.filters import Command, CommandObject
from aiogram.types import CallbackQuery, Message

from ..adapters.openai import GPTClient
from ..adapters.telegram import TelegramPlatform, build_keyboard
from ..assistant.responder import FALLBACK_REPLY, ChatAssistant, is_addressed
from ..config import BotSettings
from ..errors import NotificationError, StoreError
from ..logging.events import level_from_name, setup_logging
from ..models import ChatContext, InlineButton, MessageEnvelope, ModerationState, PunishmentKind, Sender
from ..punishments.engine import appeal_callback_data
from ..storage.sqlite import SQLiteStore
from ..utils.text import escape, format_history, format_verdict, humanize_duration, parse_mute_duration
from .moderation_service import ModerationCoordinator

logger = structlog.get_logger(__name__)

HELP_TEXT = (
    "🛡 <b>Starfall anti-spam</b>\n"
    "Every message in this group is checked by an AI spam classifier.\n\n"
    "<b>Admin commands</b> (groups only):\n"
    "/setrules &lt;text&gt; – spam detection instructions\n"
    "/setlanguage &lt;language&gt; – language of the reasons\n"
    "/setpunishment &lt;delete|mute|kick|ban&gt; – punishment for spam\n"
    "/setmute &lt;duration|off&gt; – mute length, e.g. 30m, 2h, 1d\n"
    "/policy – show the current configuration\n"
    "/resetpolicy – restore the defaults\n\n"
    "<b>Everyone</b>:\n"
    "/test &lt;text&gt; – run the classifier on a text\n"
    "/start – in a private chat, show your recent violations and appeal them\n"
    "/resetchat – in a private chat, forget our conversation\n\n"
    "Mention me or reply to my message to chat with the assistant."
)

PUNISHMENT_CHOICES = "|".join(kind.value for kind in PunishmentKind)


def _parse_target(data: str) -> Optional[tuple[int, int]]:
    try:
        _, user_part, chat_part = data.split(":", 2)
        return int(user_part), int(chat_part)
    except ValueError:
        return None


class TelegramModerationApp:
    """
    Aiogram integration wrapper around the moderation coordinator.

    - Group text and captions are pushed through the coordinator one by one.
    - `/setrules`, `/setlanguage`, `/setpunishment`, `/setmute` edit the chat policy.
    - `/start` in DM lists the latest violations with appeal buttons.
    - Clean messages that mention or reply to the bot, and private messages, get an assistant answer.
    - `appeal:` callbacks relay disputes to admins, `resolve:` callbacks close them.
    """

    def __init__(self, settings: BotSettings) -> None:
        setup_logging(level=level_from_name(settings.logging.level), use_json=settings.logging.use_json)
        self._settings = settings
        self.bot = Bot(token=settings.telegram_token)
        self.dispatcher = Dispatcher()
        self.store = SQLiteStore(settings.storage.sqlite_path)
        self.gpt_client = GPTClient(
            api_key=settings.openai.api_key,
            base_url=settings.openai.base_url,
            timeout=settings.openai.timeout_seconds,
            max_attempts=settings.openai.max_attempts,
        )
        self.platform = TelegramPlatform(self.bot)
        self.coordinator = ModerationCoordinator.from_settings(
            settings,
            platform=self.platform,
            store=self.store,
            gpt_client=self.gpt_client,
        )
        self.assistant: Optional[ChatAssistant] = None
        if settings.assistant.enabled:
            self.assistant = ChatAssistant.from_settings(settings, client=self.gpt_client, store=self.store)
        self._bot_username: Optional[str] = None
        self._register_handlers()

    def _register_handlers(self) -> None:
        self.dispatcher.message(Command(commands=["start"]))(self._handle_start)
        self.dispatcher.message(Command(commands=["help"]))(self._handle_help)
        self.dispatcher.message(Command(commands=["setrules"]))(self._handle_set_rules)
        self.dispatcher.message(Command(commands=["setlanguage"]))(self._handle_set_language)
        self.dispatcher.message(Command(commands=["setpunishment"]))(self._handle_set_punishment)
        self.dispatcher.message(Command(commands=["setmute"]))(self._handle_set_mute)
        self.dispatcher.message(Command(commands=["policy"]))(self._handle_show_policy)
        self.dispatcher.message(Command(commands=["resetpolicy"]))(self._handle_reset_policy)
        self.dispatcher.message(Command(commands=["test"]))(self._handle_test)
        self.dispatcher.message(Command(commands=["resetchat"]))(self._handle_reset_chat)
        self.dispatcher.message(F.text | F.caption)(self._handle_message)
        self.dispatcher.callback_query(F.data.startswith("appeal:"))(self._handle_appeal)
        self.dispatcher.callback_query(F.data.startswith("resolve:"))(self._handle_resolve)

    async def start(self) -> None:
        await self.store.connect()
        me = await self.bot.me()
        self._bot_username = me.username
        try:
            await self.store.purge_expired()
        except StoreError as exc:
            logger.warning("startup_purge_failed", error=str(exc))
        logger.info("moderation_app_started", bot_id=self.platform.bot_id)

    async def shutdown(self) -> None:
        await self.store.disconnect()
        await self.gpt_client.close()
        await self.bot.session.close()
        logger.info("moderation_app_stopped")

    async def run(self) -> None:
        await self.start()
        try:
            await self.dispatcher.start_polling(self.bot)
        finally:
            await self.shutdown()

    async def _handle_message(self, message: Message) -> None:
        if message.text and message.text.startswith("/"):
            return
        if message.chat.type in {ChatType.GROUP, ChatType.SUPERGROUP}:
            envelope = self._to_envelope(message)
            logger.debug(
                "telegram_message_ingested",
                chat_id=envelope.context.chat_id,
                message_id=envelope.context.message_id,
            )
            outcome = await self.coordinator.handle(envelope)
            # spam, duplicates and bot senders never reach the assistant
            if outcome.state != ModerationState.CLEAN:
                return
        elif message.chat.type != ChatType.PRIVATE:
            return
        if self.assistant is not None and self._addresses_bot(message):
            await self._answer(message)

    def _addresses_bot(self, message: Message) -> bool:
        if message.from_user is not None and message.from_user.is_bot:
            return False
        reply = message.reply_to_message
        replied_to_bot = (
            reply is not None and reply.from_user is not None and reply.from_user.id == self.platform.bot_id
        )
        return is_addressed(
            message.text,
            chat_type=message.chat.type,
            bot_username=self._bot_username,
            replied_to_bot=replied_to_bot,
        )

    async def _answer(self, message: Message) -> None:
        if message.sender_chat is not None:
            author = message.sender_chat.title or str(message.sender_chat.id)
        elif message.from_user is not None:
            author = message.from_user.first_name
        else:
            author = "someone"
        await self.bot.send_chat_action(message.chat.id, ChatAction.TYPING)
        answer = await self.assistant.reply(message.chat.id, author, message.text or "")
        await message.reply(answer or FALLBACK_REPLY)

    async def _handle_reset_chat(self, message: Message) -> None:
        if self.assistant is None:
            await message.reply("The assistant is disabled for this bot.")
            return
        if message.chat.type != ChatType.PRIVATE:
            await message.reply("The /resetchat command can only be used in private chats.")
            return
        try:
            await self.assistant.reset(message.chat.id)
        except StoreError as exc:
            logger.error("assistant_reset_failed", chat_id=message.chat.id, error=str(exc))
            await message.reply("Failed to reset the conversation. Check logs for details.")
            return
        await message.reply("Your chat history has been reset.")

    def _to_envelope(self, message: Message) -> MessageEnvelope:
        if message.sender_chat is not None:
            sender = Sender(
                sender_chat_id=message.sender_chat.id,
                display_name=message.sender_chat.title or "",
                username=message.sender_chat.username,
            )
        elif message.from_user is not None:
            sender = Sender(
                user_id=message.from_user.id,
                display_name=message.from_user.full_name,
                username=message.from_user.username,
                is_bot=message.from_user.is_bot,
            )
        else:
            sender = Sender()
        return MessageEnvelope(
            context=ChatContext(
                chat_id=message.chat.id,
                message_id=message.message_id,
                timestamp=message.date.replace(tzinfo=timezone.utc),
                sender=sender,
                chat_title=message.chat.title,
                chat_type=message.chat.type,
            ),
            text=message.text,
            caption=message.caption,
        )

    async def _handle_start(self, message: Message) -> None:
        if message.chat.type != ChatType.PRIVATE:
            await message.reply("👋 I am watching this chat for spam. Send /help to see the commands.")
            return
        user_id = message.from_user.id
        limit = self._settings.appeals.history_display_limit
        records = await self.coordinator.history.recent(user_id, limit)
        if not records:
            await message.answer(
                "👋 Welcome to Starfall anti-spam! You have no recorded violations.",
                parse_mode=ParseMode.HTML,
            )
            return
        buttons: list[InlineButton] = []
        seen_chats: set[int] = set()
        for record in reversed(records):
            if record.handled or record.chat_id in seen_chats:
                continue
            seen_chats.add(record.chat_id)
            buttons.append(
                InlineButton(
                    text=f"📨 Appeal in {record.chat_title or record.chat_id}"[:60],
                    callback_data=appeal_callback_data(user_id, record.chat_id),
                )
            )
        await message.answer(
            f"👋 Welcome back! Your last {len(records)} violation(s):\n\n{format_history(records)}",
            parse_mode=ParseMode.HTML,
            reply_markup=build_keyboard(buttons),
        )

    async def _handle_help(self, message: Message) -> None:
        await message.reply(HELP_TEXT, parse_mode=ParseMode.HTML)

    async def _handle_set_rules(self, message: Message, command: CommandObject) -> None:
        if not await self._require_group_admin(message):
            return
        rules = (command.args or "").strip()
        if not rules:
            await message.reply("Usage: /setrules <spam detection instructions>")
            return
        if await self._store_policy(message, self.coordinator.policies.set_rules(message.chat.id, rules)):
            await message.reply("✅ Spam detection rules updated.")

    async def _handle_set_language(self, message: Message, command: CommandObject) -> None:
        if not await self._require_group_admin(message):
            return
        language = (command.args or "").strip()
        if not language:
            await message.reply("Usage: /setlanguage <language>, e.g. /setlanguage english")
            return
        if await self._store_policy(message, self.coordinator.policies.set_language(message.chat.id, language)):
            await message.reply(f"✅ Reasons will be written in {language.lower()}.")

    async def _handle_set_punishment(self, message: Message, command: CommandObject) -> None:
        if not await self._require_group_admin(message):
            return
        try:
            kind = PunishmentKind((command.args or "").strip().lower())
        except ValueError:
            await message.reply(f"Usage: /setpunishment <{PUNISHMENT_CHOICES}>")
            return
        if await self._store_policy(message, self.coordinator.policies.set_punishment(message.chat.id, kind)):
            await message.reply(f"✅ Spam will now be punished with: {kind.value}.")

    async def _handle_set_mute(self, message: Message, command: CommandObject) -> None:
        if not await self._require_group_admin(message):
            return
        token = (command.args or "").strip().lower()
        if not token:
            await message.reply("Usage: /setmute <duration|off>, e.g. /setmute 1h30m")
            return
        seconds: Optional[int] = None
        if token not in {"off", "forever", "0"}:
            try:
                seconds = parse_mute_duration(token)
            except ValueError as exc:
                await message.reply(str(exc))
                return
        if await self._store_policy(message, self.coordinator.policies.set_mute_duration(message.chat.id, seconds)):
            label = humanize_duration(seconds) if seconds else "until lifted by an admin"
            await message.reply(f"✅ Mutes now last {label}.")

    async def _handle_show_policy(self, message: Message) -> None:
        if not await self._require_group_admin(message):
            return
        policy = await self.coordinator.policies.get_policy(message.chat.id)
        mute = humanize_duration(policy.mute_duration_seconds) if policy.mute_duration_seconds else "unbounded"
        await message.reply(
            "📋 <b>Moderation policy</b>\n"
            f"Rules: {escape(policy.rules)}\n"
            f"Language: {escape(policy.language)}\n"
            f"Punishment: {policy.punishment.value}\n"
            f"Mute duration: {mute}",
            parse_mode=ParseMode.HTML,
        )

    async def _handle_reset_policy(self, message: Message) -> None:
        if not await self._require_group_admin(message):
            return
        if await self._store_policy(message, self.coordinator.policies.reset(message.chat.id)):
            await message.reply("♻️ Policy restored to the defaults.")

    async def _handle_test(self, message: Message, command: CommandObject) -> None:
        text = (command.args or "").strip()
        if not text and message.reply_to_message is not None:
            text = (message.reply_to_message.text or message.reply_to_message.caption or "").strip()
        if not text:
            await message.reply("Usage: /test <text>, or reply to a message with /test")
            return
        if message.chat.type == ChatType.PRIVATE:
            policy = self.coordinator.policies.defaults
        else:
            policy = await self.coordinator.policies.get_policy(message.chat.id)
        verdict = await self.coordinator.classifier.evaluate(policy.rules, policy.language, text)
        logger.info("classifier_test", chat_id=message.chat.id, is_spam=verdict.is_spam)
        await message.reply(format_verdict(verdict), parse_mode=ParseMode.HTML)

    async def _handle_appeal(self, callback: CallbackQuery) -> None:
        target = _parse_target(callback.data or "")
        if target is None:
            await callback.answer("Malformed appeal.", show_alert=True)
            return
        user_id, chat_id = target
        if callback.from_user.id != user_id:
            await callback.answer("This appeal belongs to another user.", show_alert=True)
            return
        await callback.answer("Sending your appeal to the administrators…")
        await self.coordinator.appeals.resolve(
            user_id,
            chat_id,
            requester_name=callback.from_user.full_name,
        )

    async def _handle_resolve(self, callback: CallbackQuery) -> None:
        target = _parse_target(callback.data or "")
        if target is None:
            await callback.answer("Malformed request.", show_alert=True)
            return
        user_id, chat_id = target
        if not await self.coordinator.resolver.is_chat_admin(chat_id, callback.from_user.id):
            await callback.answer("Only administrators of that chat can resolve this appeal.", show_alert=True)
            return
        try:
            changed = await self.coordinator.history.mark_handled(user_id, chat_id)
        except StoreError as exc:
            logger.error("appeal_resolve_failed", user_id=user_id, chat_id=chat_id, error=str(exc))
            await callback.answer("Could not save the resolution, try again later.", show_alert=True)
            return
        await callback.answer(f"Marked {changed} violation(s) as handled.")
        if isinstance(callback.message, Message):
            try:
                await callback.message.edit_reply_markup(reply_markup=None)
            except TelegramBadRequest as exc:
                logger.debug("resolve_markup_edit_failed", error=str(exc))
        if changed:
            try:
                await self.platform.send_message(
                    user_id,
                    "✅ An administrator reviewed your appeal and marked it as handled.",
                )
            except NotificationError as exc:
                logger.debug("resolve_user_notice_failed", user_id=user_id, error=str(exc))

    async def _require_group_admin(self, message: Message) -> bool:
        if message.chat.type == ChatType.PRIVATE:
            await message.reply("This command only works inside a group.")
            return False
        if message.sender_chat is not None and message.sender_chat.id == message.chat.id:
            return True
        if message.from_user is None or not await self.coordinator.resolver.is_chat_admin(
            message.chat.id, message.from_user.id
        ):
            await message.reply("You must be a chat admin to change moderation settings.")
            return False
        return True

    async def _store_policy(self, message: Message, write) -> bool:
        try:
            await write
        except StoreError as exc:
            logger.error("policy_write_failed", chat_id=message.chat.id, error=str(exc))
            await message.reply("Failed to save the setting. Check logs for details.")
            return False
        return True


@asynccontextmanager
async def telegram_app(settings: BotSettings):
    app = TelegramModerationApp(settings)
    await app.start()
    try:
        yield app
    finally:
        await app.shutdown()
