from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class PunishmentKind(str, Enum):
    DELETE = "delete"
    MUTE = "mute"
    KICK = "kick"
    BAN = "ban"


class ModerationState(str, Enum):
    RECEIVED = "received"
    CLASSIFIED = "classified"
    CLEAN = "clean"
    ENFORCING = "enforcing"
    NOTIFIED = "notified"
    SKIPPED = "skipped"


class MemberStatus(str, Enum):
    CREATOR = "creator"
    ADMINISTRATOR = "administrator"
    MEMBER = "member"
    RESTRICTED = "restricted"
    LEFT = "left"
    KICKED = "kicked"


ADMIN_STATUSES = frozenset({MemberStatus.ADMINISTRATOR, MemberStatus.CREATOR})


@dataclass(slots=True)
class ChatPolicy:
    rules: str = "general spam detection"
    language: str = "english"
    punishment: PunishmentKind = PunishmentKind.MUTE
    mute_duration_seconds: Optional[int] = None


@dataclass(slots=True)
class ModerationVerdict:
    is_spam: bool
    reason: str


@dataclass(slots=True, frozen=True)
class CapabilitySnapshot:
    bot_can_delete: bool = False
    bot_can_restrict: bool = False
    sender_is_admin: bool = False

    @classmethod
    def conservative(cls) -> "CapabilitySnapshot":
        return cls(bot_can_delete=False, bot_can_restrict=False, sender_is_admin=False)


@dataclass(slots=True)
class Sender:
    user_id: Optional[int] = None
    sender_chat_id: Optional[int] = None
    display_name: str = ""
    username: Optional[str] = None
    is_bot: bool = False

    @property
    def is_channel(self) -> bool:
        return self.user_id is None and self.sender_chat_id is not None


@dataclass(slots=True)
class ChatContext:
    chat_id: int
    message_id: int
    timestamp: datetime
    sender: Sender
    chat_title: Optional[str] = None
    chat_type: str = "supergroup"

    @property
    def is_private(self) -> bool:
        return self.chat_type == "private"


@dataclass(slots=True)
class MessageEnvelope:
    context: ChatContext
    text: Optional[str] = None
    caption: Optional[str] = None

    def content_text(self) -> str:
        return self.text or self.caption or ""


@dataclass(slots=True)
class ViolationRecord:
    chat_id: int
    chat_title: str
    timestamp: datetime
    punishment: PunishmentKind
    content: str
    reason: str
    handled: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "chat_id": self.chat_id,
            "chat_title": self.chat_title,
            "timestamp": self.timestamp.isoformat(),
            "punishment": self.punishment.value,
            "content": self.content,
            "reason": self.reason,
            "handled": self.handled,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ViolationRecord":
        return cls(
            chat_id=int(data["chat_id"]),
            chat_title=data.get("chat_title") or "",
            timestamp=datetime.fromisoformat(data["timestamp"]),
            punishment=PunishmentKind(data["punishment"]),
            content=data.get("content", ""),
            reason=data.get("reason", ""),
            handled=bool(data.get("handled", False)),
        )


@dataclass(slots=True)
class Membership:
    status: MemberStatus
    can_delete_messages: bool = False
    can_restrict_members: bool = False

    @property
    def is_admin(self) -> bool:
        return self.status in ADMIN_STATUSES


@dataclass(slots=True, frozen=True)
class Admin:
    user_id: int
    name: str
    is_bot: bool = False


@dataclass(slots=True, frozen=True)
class InlineButton:
    text: str
    callback_data: str


@dataclass(slots=True)
class ModerationOutcome:
    state: ModerationState
    verdict: Optional[ModerationVerdict] = None
    capability: Optional[CapabilitySnapshot] = None
    actions: list[str] = field(default_factory=list)
    applied: Optional[PunishmentKind] = None
    record: Optional[ViolationRecord] = None


@dataclass(slots=True)
class AppealOutcome:
    notified: list[Admin] = field(default_factory=list)
    unreachable: list[Admin] = field(default_factory=list)
    record: Optional[ViolationRecord] = None


__all__ = [
    "ADMIN_STATUSES",
    "Admin",
    "AppealOutcome",
    "CapabilitySnapshot",
    "ChatContext",
    "ChatPolicy",
    "InlineButton",
    "MemberStatus",
    "Membership",
    "MessageEnvelope",
    "ModerationOutcome",
    "ModerationState",
    "ModerationVerdict",
    "PunishmentKind",
    "Sender",
    "ViolationRecord",
]
