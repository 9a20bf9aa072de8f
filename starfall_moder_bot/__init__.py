"""
Starfall anti-spam moderation bot core package.

Exposes the per-message moderation coordinator and the aiogram application
that wires it into Telegram, keeping the classifier, permission resolution,
punishment engine and appeal workflow independently testable.
"""

from .services.moderation_service import ModerationCoordinator
from .services.telegram_bot import TelegramModerationApp, telegram_app

__all__ = ["ModerationCoordinator", "TelegramModerationApp", "telegram_app"]
