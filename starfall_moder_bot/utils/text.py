"""Pure text helpers for HTML-formatted Telegram replies and duration tokens."""

from __future__ import annotations

import html
import re
from typing import Iterable, Optional, Sequence

from ..models import ModerationVerdict, Sender, ViolationRecord

ELLIPSIS = "..."
_DURATION_PATTERN = re.compile(r"(\d+)([smhd])")
_UNIT_SECONDS = {"s": 1, "m": 60, "h": 3600, "d": 86400}
MIN_MUTE_SECONDS = 30
MAX_MUTE_SECONDS = 366 * 86400


def escape(text: Optional[str]) -> str:
    return html.escape(text or "", quote=False)


def truncate(text: str, limit: int = 100, marker: str = ELLIPSIS) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + marker


def quote_preview(text: str, limit: int = 100) -> str:
    return f"<i>“{escape(truncate(text, limit))}”</i>"


def mention(sender: Sender) -> str:
    name = escape(sender.display_name or sender.username or str(sender.user_id or sender.sender_chat_id))
    if sender.user_id is not None:
        return f'<a href="tg://user?id={sender.user_id}">{name}</a>'
    return f"<b>{name}</b>"


def parse_duration(token: str) -> int:
    """Parse ``30s``, ``10m``, ``2h``, ``1d`` or combinations like ``1h30m`` into seconds."""
    token = token.strip().lower()
    matches = list(_DURATION_PATTERN.finditer(token))
    if not matches:
        raise ValueError("Invalid duration format. Use values like 30s, 10m, 2h, 3d.")
    total = 0
    consumed = 0
    for match in matches:
        start, end = match.span()
        if start != consumed:
            raise ValueError("Invalid duration format. Use values like 30s, 10m, 2h, 3d.")
        consumed = end
        total += int(match.group(1)) * _UNIT_SECONDS[match.group(2)]
    if consumed != len(token):
        raise ValueError("Invalid duration format. Use values like 30s, 10m, 2h, 3d.")
    return total


def parse_mute_duration(token: str) -> int:
    """Parse a mute length; Telegram treats restrictions outside 30s..366d as permanent."""
    seconds = parse_duration(token)
    if not MIN_MUTE_SECONDS <= seconds <= MAX_MUTE_SECONDS:
        raise ValueError("Mute duration must be between 30s and 366d.")
    return seconds


def humanize_duration(seconds: int) -> str:
    parts = []
    remaining = seconds
    for unit_seconds, suffix in ((86400, "d"), (3600, "h"), (60, "m"), (1, "s")):
        if remaining >= unit_seconds:
            parts.append(f"{remaining // unit_seconds}{suffix}")
            remaining %= unit_seconds
    return " ".join(parts) if parts else "0s"


def format_spam_notice(
    sender: Sender,
    content: str,
    actions: Sequence[str],
    reason: str,
    *,
    preview_chars: int = 100,
) -> str:
    action_text = ", ".join(actions) if actions else "no action taken"
    return (
        f"⚠️ Spam detected from {mention(sender)}\n"
        f"Message: {quote_preview(content, preview_chars)}\n"
        f"Action: {escape(action_text)}\n"
        f"Reason: {escape(reason)}"
    )


def format_user_notice(record: ViolationRecord, *, preview_chars: int = 100, appealable: bool = True) -> str:
    if appealable:
        footer = "If you believe this was a mistake, press the button below to contact the administrators."
    else:
        footer = "If you believe this was a mistake, please contact the administrators of the group."
    return (
        f"🚫 You received a <b>{record.punishment.value}</b> in "
        f"<b>{escape(record.chat_title or str(record.chat_id))}</b>.\n"
        f"Message: {quote_preview(record.content, preview_chars)}\n"
        f"Reason: {escape(record.reason)}\n\n"
        f"{footer}"
    )


def format_appeal_summary(
    user_id: int,
    requester_name: Optional[str],
    chat_title: str,
    record: Optional[ViolationRecord],
    *,
    preview_chars: int = 100,
) -> str:
    who = f'<a href="tg://user?id={user_id}">{escape(requester_name or str(user_id))}</a>'
    lines = [f"📨 Appeal from {who} (id <code>{user_id}</code>) in <b>{escape(chat_title)}</b>"]
    if record is not None:
        lines.extend(
            [
                f"Punishment: {record.punishment.value} at {record.timestamp.strftime('%Y-%m-%d %H:%M UTC')}",
                f"Message: {quote_preview(record.content, preview_chars)}",
                f"Reason: {escape(record.reason)}",
            ]
        )
    else:
        lines.append("No stored violation was found for this chat.")
    lines.append("The user asks for the punishment to be reviewed.")
    return "\n".join(lines)


def format_history(records: Iterable[ViolationRecord], *, preview_chars: int = 60) -> str:
    lines = []
    for record in records:
        status = "✅ handled" if record.handled else "⏳ open"
        lines.append(
            f"• {record.timestamp.strftime('%Y-%m-%d %H:%M')} "
            f"<b>{escape(record.chat_title or str(record.chat_id))}</b>: "
            f"{record.punishment.value} ({status})\n"
            f"  {quote_preview(record.content, preview_chars)} · {escape(record.reason)}"
        )
    return "\n".join(lines)


def format_verdict(verdict: ModerationVerdict) -> str:
    label = "🚨 SPAM" if verdict.is_spam else "✅ NOT SPAM"
    return f"{label}\nReason: {escape(verdict.reason)}"
