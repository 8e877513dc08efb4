"""Application settings for the retention bot."""

import json
import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from core.exceptions import ConfigurationError


logger = logging.getLogger(__name__)

ForwardPolicy = Literal["ignore", "retain"]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=(".env"), env_file_encoding="utf-8")

    # App
    APP_NAME: str = "Topic Retention Bot"
    ENVIRONMENT: str = "development"  # development | production | test

    # Telegram Bot API
    TELEGRAM_BOT_TOKEN: str = ""
    TELEGRAM_API_BASE_URL: str = "https://api.telegram.org"
    TELEGRAM_REQUEST_TIMEOUT_SECONDS: float = Field(default=10.0, gt=0)

    # Only these group/supergroup chat ids are processed.
    # Accept list or CSV/JSON string from env; normalized to list[int] by validators
    ALLOWED_CHAT_IDS: list[int] | str = []

    # Retention state snapshot
    STATE_PATH: Path = Path("state.json")

    # Sweep cadence and per-tick batch bound
    SWEEP_INTERVAL_SECONDS: float = Field(default=5.0, gt=0)
    SWEEP_BATCH_LIMIT: int = Field(default=50, ge=1)
    SHUTDOWN_GRACE_SECONDS: float = Field(default=10.0, ge=0)

    # Update intake
    UPDATE_MODE: Literal["polling", "webhook"] = "polling"
    POLL_TIMEOUT_SECONDS: int = Field(default=30, ge=0)
    POLL_RETRY_SECONDS: float = Field(default=5.0, ge=0)
    DROP_PENDING_UPDATES: bool = True
    WEBHOOK_URL: str | None = None
    WEBHOOK_SECRET: str | None = None

    # HTTP host (health + webhook endpoints)
    HTTP_HOST: str = "127.0.0.1"
    HTTP_PORT: int = Field(default=8080, ge=1, le=65535)

    # Forwarded messages: "retain" applies topic policies, "ignore" never deletes
    AUTOMATIC_FORWARD_POLICY: ForwardPolicy = "ignore"
    FORWARDED_MESSAGE_POLICY: ForwardPolicy = "retain"

    @field_validator("ALLOWED_CHAT_IDS", mode="before")
    @classmethod
    def assemble_chat_ids(cls, v: object) -> list[int]:
        """Allow list, CSV string, or JSON array string for chat ids."""
        if isinstance(v, list):
            return [int(i) for i in v]
        if isinstance(v, int):
            return [v]
        if isinstance(v, str):
            s = v.strip()
            if not s:
                return []
            if s.startswith("["):
                try:
                    parsed = json.loads(s)
                except json.JSONDecodeError as e:
                    raise ValueError(
                        "ALLOWED_CHAT_IDS must be a CSV list or JSON array string"
                    ) from e
                if not isinstance(parsed, list):
                    raise ValueError("ALLOWED_CHAT_IDS JSON must be a list")
                return [int(i) for i in parsed]
            # CSV fallback
            return [int(i.strip()) for i in s.split(",") if i.strip()]
        raise ValueError("Invalid ALLOWED_CHAT_IDS type; expected str or list[int]")

    @model_validator(mode="after")
    def _validate_webhook(self) -> "Settings":
        """Webhook mode needs a public URL to register with Telegram."""
        if isinstance(self.ALLOWED_CHAT_IDS, str):
            self.ALLOWED_CHAT_IDS = self.assemble_chat_ids(self.ALLOWED_CHAT_IDS)
        if self.UPDATE_MODE == "webhook" and not self.WEBHOOK_URL:
            raise ValueError("UPDATE_MODE=webhook requires WEBHOOK_URL")
        return self

    @property
    def allowed_chat_ids(self) -> frozenset[int]:
        ids = self.ALLOWED_CHAT_IDS
        return frozenset(ids) if isinstance(ids, list) else frozenset()


def validate_startup_settings(settings: Settings) -> None:
    """Check settings the bot cannot run without.

    A missing token is fatal. An empty allow-list is a valid but inert
    configuration, so it only produces a warning.
    """
    if not settings.TELEGRAM_BOT_TOKEN.strip():
        raise ConfigurationError("TELEGRAM_BOT_TOKEN is not set")
    if not settings.allowed_chat_ids:
        logger.warning("ALLOWED_CHAT_IDS is empty; bot will ignore all chats.")


@lru_cache
def get_settings() -> Settings:
    env = os.getenv("ENVIRONMENT", "development").lower()
    if env not in {"development", "production", "test"}:
        raise ValueError("ENVIRONMENT must be 'development', 'production', or 'test'")

    if env == "production":
        env_file = ".env.prod"
    elif env == "development":
        env_file = ".env.dev"
    else:
        # test environment - no env file needed, use defaults
        env_file = ""

    # The Settings initializer accepts a runtime-only `_env_file` kwarg used by
    # pydantic-settings; mypy's stub doesn't allow this call argument.
    return Settings(_env_file=env_file or None)  # type: ignore[call-arg]
