"""Application configuration."""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

DEFAULT_RELAY_TOPICS = [
    "ticket.admin.replied",
    "ticket.operator.replied",
    "conversation.admin.replied",
    "conversation.operator.replied",
]


class Settings(BaseSettings):
    """Runtime settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "discord-intercom-bridge"
    app_env: str = "dev"
    log_level: str = "INFO"

    intercom_token: str | None = None
    intercom_ticket_type_id: str | None = None
    intercom_api_base: str = "https://api.intercom.io"
    intercom_api_version: str = "2.11"
    intercom_channel_attribute: str | None = None
    reply_target: Literal["ticket", "conversation"] = "ticket"
    relay_topics: Annotated[list[str], NoDecode] = Field(default_factory=lambda: list(DEFAULT_RELAY_TOPICS))
    strip_reply_html: bool = True
    expose_upstream_details: bool = False

    discord_bot_token: str | None = None
    discord_bot_user_id: str | None = None
    discord_api_base: str = "https://discord.com/api/v10"
    discord_gateway_enabled: bool = True

    http_timeout_seconds: float | None = None
    redis_url: str | None = None
    dedup_ttl_seconds: int = 86400

    @field_validator("relay_topics", mode="before")
    @classmethod
    def _parse_topics(cls, value: object) -> list[str]:
        """Allow comma-separated topic values from env."""
        if value is None:
            return list(DEFAULT_RELAY_TOPICS)
        if isinstance(value, str):
            parts = [part.strip() for part in value.split(",")]
            return [part for part in parts if part] or list(DEFAULT_RELAY_TOPICS)
        if isinstance(value, list):
            return [str(item).strip() for item in value if str(item).strip()]
        return list(DEFAULT_RELAY_TOPICS)

    @field_validator("intercom_channel_attribute", "redis_url", "discord_bot_user_id", mode="before")
    @classmethod
    def _blank_to_none(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached application settings."""
    return Settings()
