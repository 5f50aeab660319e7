"""
Configuration loader for YAML files.

This module handles loading and parsing the YAML settings file and applying
environment variable overrides on top of it.
"""

import os
from pathlib import Path
from typing import Any

import yaml


class ConfigurationError(Exception):
    """Raised when configuration loading or validation fails."""

    pass


REQUIRED_SECTIONS = ["telegram", "api", "export", "logging"]


def get_config_path(filename: str) -> Path:
    """
    Get the path to a configuration file.

    Searches for settings files in multiple locations:
    1. SURVEY_BOT_SETTINGS_DIR environment variable
    2. Current working directory
    3. Relative to source file (for local development)

    Args:
        filename: Name of the settings file (e.g., 'settings.yaml')

    Returns:
        Path to the configuration file

    Raises:
        ConfigurationError: If settings file doesn't exist
    """
    if settings_dir := os.getenv("SURVEY_BOT_SETTINGS_DIR"):
        explicit_path = Path(settings_dir) / filename
        if not explicit_path.exists():
            raise ConfigurationError(f"Configuration file not found: {explicit_path}")
        return explicit_path

    cwd_config_path = Path.cwd() / "settings" / filename
    if cwd_config_path.exists():
        return cwd_config_path

    project_root = Path(__file__).parent.parent.parent
    config_path = project_root / "settings" / filename

    if not config_path.exists():
        raise ConfigurationError(
            f"Configuration file not found: {config_path}. "
            f"Searched locations: {cwd_config_path}, {config_path}."
        )

    return config_path


def load_yaml_file(file_path: Path) -> dict[str, Any]:
    """
    Load and parse a YAML file.

    Args:
        file_path: Path to the YAML file

    Returns:
        Parsed YAML content as a dictionary

    Raises:
        ConfigurationError: If file cannot be loaded or parsed
    """
    try:
        with open(file_path, "r", encoding="utf-8") as f:
            content = yaml.safe_load(f)

        if content is None:
            raise ConfigurationError(f"YAML file is empty: {file_path}")

        if not isinstance(content, dict):
            raise ConfigurationError(
                f"YAML file must contain a dictionary at root level: {file_path}"
            )

        return content

    except yaml.YAMLError as e:
        raise ConfigurationError(f"Failed to parse YAML file {file_path}: {e}") from e
    except OSError as e:
        raise ConfigurationError(f"Failed to read file {file_path}: {e}") from e


def load_config() -> dict[str, Any]:
    """
    Load the main configuration file (settings.yaml).

    Returns:
        Configuration dictionary

    Raises:
        ConfigurationError: If settings cannot be loaded
    """
    config = load_yaml_file(get_config_path("settings.yaml"))

    missing_keys = [key for key in REQUIRED_SECTIONS if key not in config]
    if missing_keys:
        raise ConfigurationError(
            f"Missing required configuration sections: {', '.join(missing_keys)}"
        )

    return config


def merge_with_env(config: dict[str, Any]) -> dict[str, Any]:
    """
    Merge configuration with environment variable overrides.

    Environment variables can override specific settings values:
    - API_PORT -> api.port
    - ALLOWED_ORIGINS -> api.cors_origins (comma-separated)
    - LOG_LEVEL -> logging.level
    - LOG_FORMAT -> logging.format
    - ENVIRONMENT -> environment

    Args:
        config: Base configuration dictionary

    Returns:
        Configuration with environment overrides applied
    """
    merged = {
        key: dict(value) if isinstance(value, dict) else value
        for key, value in config.items()
    }

    if port := os.getenv("API_PORT"):
        try:
            merged["api"]["port"] = int(port)
        except (ValueError, KeyError) as e:
            raise ConfigurationError(f"Invalid API_PORT value: {port}") from e

    if origins := os.getenv("ALLOWED_ORIGINS"):
        merged["api"]["cors_origins"] = [o.strip() for o in origins.split(",") if o.strip()]

    if log_level := os.getenv("LOG_LEVEL"):
        merged["logging"]["level"] = log_level.upper()

    if log_format := os.getenv("LOG_FORMAT"):
        merged["logging"]["format"] = log_format.lower()

    if environment := os.getenv("ENVIRONMENT"):
        merged["environment"] = environment

    return merged
