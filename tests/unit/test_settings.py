"""Unit tests for application settings."""

import os
from unittest.mock import patch

import pytest
import yaml
from pydantic import ValidationError

from src.config.loader import ConfigurationError
from src.config.settings import (
    APISettings,
    AppSettings,
    ExportSettings,
    LoggingSettings,
    TelegramSettings,
    create_settings,
    get_settings,
)


class TestSectionSettings:
    def test_api_url_is_normalized(self):
        assert TelegramSettings(api_url="https://api.telegram.org/").api_url == "https://api.telegram.org"

    def test_api_url_requires_scheme(self):
        with pytest.raises(ValidationError):
            TelegramSettings(api_url="api.telegram.org")

    def test_port_range(self):
        with pytest.raises(ValidationError):
            APISettings(port=70000)

    def test_batch_size_positive(self):
        with pytest.raises(ValidationError):
            ExportSettings(cli_batch_size=0)

    def test_log_level_uppercased(self):
        assert LoggingSettings(level="warning").level == "WARNING"

    def test_unknown_log_format(self):
        with pytest.raises(ValidationError):
            LoggingSettings(format="xml")


class TestAppSettings:
    def test_admin_ids_from_comma_separated_env(self):
        with patch.dict(os.environ, {"ADMIN_USER_IDS": "10, 20,30"}):
            settings = AppSettings(_env_file=None)

        assert settings.admin_user_ids == [10, 20, 30]
        assert settings.is_admin(20)
        assert not settings.is_admin(40)

    def test_admin_ids_empty(self):
        with patch.dict(os.environ, {"ADMIN_USER_IDS": ""}):
            assert AppSettings(_env_file=None).admin_user_ids == []

    def test_admin_ids_invalid(self):
        with patch.dict(os.environ, {"ADMIN_USER_IDS": "10,abc"}):
            with pytest.raises(ValidationError):
                AppSettings(_env_file=None)

    def test_token_from_env(self):
        with patch.dict(os.environ, {"TELEGRAM_TOKEN": "123:abc"}):
            assert AppSettings(_env_file=None).telegram_token == "123:abc"


class TestCreateSettings:
    def test_create_from_yaml(self, tmp_path):
        config = {
            "telegram": {"api_url": "https://tg.example", "init_data_ttl_hours": 1},
            "api": {"port": 8181},
            "export": {"chat_batch_size": 7, "cli_batch_size": 9},
            "logging": {"level": "DEBUG", "format": "text"},
            "environment": "staging",
        }
        (tmp_path / "settings.yaml").write_text(yaml.dump(config))

        with patch.dict(os.environ, {"SURVEY_BOT_SETTINGS_DIR": str(tmp_path)}, clear=True):
            settings = create_settings()

        assert settings.telegram.api_url == "https://tg.example"
        assert settings.api.port == 8181
        assert settings.export.cli_batch_size == 9
        assert settings.logging.format == "text"
        assert settings.environment == "staging"

    def test_invalid_section_is_configuration_error(self, tmp_path):
        config = {
            "telegram": {},
            "api": {"port": 0},
            "export": {},
            "logging": {},
        }
        (tmp_path / "settings.yaml").write_text(yaml.dump(config))

        with patch.dict(os.environ, {"SURVEY_BOT_SETTINGS_DIR": str(tmp_path)}, clear=True):
            with pytest.raises(ConfigurationError, match="Failed to create settings"):
                create_settings()

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()
