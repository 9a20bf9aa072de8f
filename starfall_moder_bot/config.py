from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models import ChatPolicy, PunishmentKind


class OpenAISettings(BaseModel):
    api_key: str
    base_url: str = "https://api.openai.com/v1"
    model: str = "gpt-4.1-mini"
    timeout_seconds: float = 15.0
    max_attempts: int = Field(default=1, ge=1, description="Attempts per classification, 1 disables retries.")


class StorageSettings(BaseModel):
    sqlite_path: str = "moderation.db"


class PolicyDefaults(BaseModel):
    rules: str = "general spam detection"
    language: str = "english"
    punishment: PunishmentKind = PunishmentKind.MUTE

    def to_policy(self) -> ChatPolicy:
        return ChatPolicy(rules=self.rules, language=self.language, punishment=self.punishment)


class EnforcementSettings(BaseModel):
    recorded_punishments: list[PunishmentKind] = Field(
        default_factory=lambda: [PunishmentKind.MUTE, PunishmentKind.BAN],
        description="Punishments that create a violation record when applied.",
    )
    notify_users: bool = True
    preview_chars: int = Field(default=100, ge=10)
    dedupe_ttl_seconds: float = Field(default=300.0, ge=0, description="0 disables duplicate suppression.")
    purge_every_claims: int = Field(default=500, ge=0, description="Drop expired markers every N claims, 0 disables.")


class AppealSettings(BaseModel):
    fallback_contact: str = "the group itself (mention an admin there)"
    history_display_limit: int = Field(default=5, ge=1)


class AssistantSettings(BaseModel):
    enabled: bool = Field(default=True, description="Answer messages that mention or reply to the bot.")
    history_limit: int = Field(default=50, ge=1, description="Turns kept per chat transcript.")
    system_prompt: Optional[str] = None


class LoggingSettings(BaseModel):
    level: str = Field(default="INFO", description="Logging level: DEBUG, INFO, WARNING, ERROR")
    use_json: bool = Field(default=False, description="Use JSON format instead of console output")


class BotSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="STARFALL_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
    )

    telegram_token: str = Field(..., description="Telegram bot token.")
    openai: OpenAISettings
    storage: StorageSettings = StorageSettings()
    policy_defaults: PolicyDefaults = PolicyDefaults()
    enforcement: EnforcementSettings = EnforcementSettings()
    appeals: AppealSettings = AppealSettings()
    assistant: AssistantSettings = AssistantSettings()
    logging: LoggingSettings = LoggingSettings()
