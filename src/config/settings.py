"""
Application settings management using Pydantic.

This module combines YAML configuration with environment variables to create
a unified settings object.
"""

from functools import lru_cache
from typing import Annotated, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from src.config.loader import ConfigurationError, load_config, merge_with_env


class TelegramSettings(BaseSettings):
    """Telegram Bot API settings."""

    api_url: str = "https://api.telegram.org"
    request_timeout: float = 10.0
    init_data_ttl_hours: int = 24

    @field_validator("api_url")
    @classmethod
    def validate_api_url(cls, v: str) -> str:
        if not v.startswith(("https://", "http://")):
            raise ValueError("api_url must start with https:// or http://")
        return v.rstrip("/")


class APISettings(BaseSettings):
    """API configuration settings."""

    host: str = "0.0.0.0"
    port: int = 8080
    cors_origins: list[str] = Field(default_factory=list)

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        if not 1 <= v <= 65535:
            raise ValueError("Port must be between 1 and 65535")
        return v


class ExportSettings(BaseSettings):
    """Results export settings."""

    chat_batch_size: int = 100
    cli_batch_size: int = 128

    @field_validator("chat_batch_size", "cli_batch_size")
    @classmethod
    def validate_batch_size(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Batch size must be positive")
        return v


class LoggingSettings(BaseSettings):
    """Logging configuration settings."""

    level: str = "INFO"
    format: str = "json"

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Log level must be one of: {', '.join(valid_levels)}")
        return v_upper

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        valid_formats = ["json", "text"]
        if v not in valid_formats:
            raise ValueError(f"Log format must be one of: {', '.join(valid_formats)}")
        return v


class AppSettings(BaseSettings):
    """
    Main application settings.

    Combines environment variables (for secrets) with YAML configuration
    (for application settings).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Secrets from environment variables
    telegram_token: str = Field(default="", description="Telegram bot token")
    telegram_webhook_secret: Optional[str] = Field(
        default=None, description="Expected X-Telegram-Bot-Api-Secret-Token header"
    )
    admin_user_ids: Annotated[list[int], NoDecode] = Field(default_factory=list)

    # Application configuration (from YAML)
    telegram: TelegramSettings = Field(default_factory=TelegramSettings)
    api: APISettings = Field(default_factory=APISettings)
    export: ExportSettings = Field(default_factory=ExportSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    environment: str = "development"
    release_version: str = "UNKNOWN"

    @field_validator("admin_user_ids", mode="before")
    @classmethod
    def parse_admin_user_ids(cls, v):
        if v is None or v == "":
            return []
        if isinstance(v, str):
            try:
                return [int(part.strip()) for part in v.split(",") if part.strip()]
            except ValueError as e:
                raise ValueError("admin_user_ids must be comma-separated integers") from e
        return v

    def is_admin(self, user_id: int) -> bool:
        return user_id in self.admin_user_ids


def create_settings() -> AppSettings:
    """
    Create application settings by combining YAML config and environment variables.

    Returns:
        AppSettings instance with all configuration loaded

    Raises:
        ConfigurationError: If configuration cannot be loaded or is invalid
    """
    try:
        config = merge_with_env(load_config())

        # Environment variables are loaded automatically by Pydantic
        return AppSettings(
            telegram=TelegramSettings(**config["telegram"]),
            api=APISettings(**config["api"]),
            export=ExportSettings(**config["export"]),
            logging=LoggingSettings(**config["logging"]),
            environment=config.get("environment", "development"),
        )

    except ConfigurationError:
        raise
    except Exception as e:
        raise ConfigurationError(f"Failed to create settings: {e}") from e


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    """
    Get the application settings singleton.

    This function is cached, so subsequent calls return the same instance.
    Use reload_settings() to force a reload.

    Returns:
        Cached AppSettings instance
    """
    return create_settings()


def reload_settings() -> AppSettings:
    """Reload settings by clearing the cache and recreating."""
    get_settings.cache_clear()
    return get_settings()
