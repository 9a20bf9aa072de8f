from .moderation_service import ModerationCoordinator
from .telegram_bot import TelegramModerationApp, telegram_app

__all__ = ["ModerationCoordinator", "TelegramModerationApp", "telegram_app"]
