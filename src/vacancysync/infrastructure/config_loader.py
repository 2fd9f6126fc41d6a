"""
Configuration loader module.

Loads ``appsettings.json``, applies environment overrides for secrets,
validates with pydantic and reports problems as ConfigurationError with
the offending setting named.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Mapping

from pydantic import ValidationError

from vacancysync.domain.config.settings import AppSettings
from vacancysync.domain.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "appsettings.json"

# Environment variable -> (section, key)
ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "VACANCYSYNC_REMOTE_URL": ("remote_store", "url"),
    "VACANCYSYNC_REMOTE_KEY": ("remote_store", "key"),
    "VACANCYSYNC_LINEWORKS_CLIENT_ID": ("lineworks", "client_id"),
    "VACANCYSYNC_LINEWORKS_CLIENT_SECRET": ("lineworks", "client_secret"),
    "VACANCYSYNC_LINEWORKS_BOT_ID": ("lineworks", "bot_id"),
}

REQUIRED_SETTINGS: tuple[tuple[str, str], ...] = (
    ("workbook", "base_path"),
    ("remote_store", "url"),
    ("remote_store", "key"),
    ("remote_store", "table_name"),
    ("lineworks", "bot_id"),
    ("lineworks", "client_id"),
    ("lineworks", "client_secret"),
    ("lineworks", "token_url"),
    ("lineworks", "message_url"),
)


def validate_required(settings: AppSettings) -> None:
    """
    Ensure every required setting is non-empty.

    Raises:
        ConfigurationError: Naming the first missing setting and listing all
    """
    missing = []
    for section, key in REQUIRED_SETTINGS:
        value = getattr(getattr(settings, section), key)
        if value is None or (isinstance(value, str) and not value.strip()):
            missing.append(f"{section}.{key}")
    if not settings.workbook.facility_map:
        missing.append("workbook.facility_map")
    if missing:
        raise ConfigurationError(
            "Required settings are missing: " + ", ".join(missing),
            setting=missing[0],
        )


class ConfigLoader:
    """
    Load and validate the application configuration.

    Args:
        config_dir: Directory containing ``appsettings.json``. A relative
            default is anchored to the executable when frozen.
        environ: Environment used for overrides (defaults to ``os.environ``)
    """

    def __init__(self, config_dir: str | Path = "config", environ: Mapping[str, str] | None = None) -> None:
        if getattr(sys, "frozen", False) and not Path(config_dir).is_absolute():
            self.config_dir = Path(sys.executable).parent / config_dir
        else:
            self.config_dir = Path(config_dir)
        self.environ = os.environ if environ is None else environ
        logger.debug("ConfigLoader initialized with directory: %s", self.config_dir)

    def _load_json_file(self, filepath: Path) -> dict[str, Any]:
        """
        Load and parse a JSON file with clear error messages.

        Raises:
            ConfigurationError: Missing, unreadable, empty or malformed file
        """
        if not filepath.exists():
            raise ConfigurationError(
                f"Configuration file not found: {filepath}\n"
                f"Hint: Copy appsettings.example.json and customize it.",
                setting=str(filepath),
            )

        try:
            content = filepath.read_text(encoding="utf-8-sig")
        except PermissionError as e:
            raise ConfigurationError(
                f"Cannot read config file (permission denied): {filepath}\n"
                f"Hint: Check file permissions or if another process has it locked.",
                setting=str(filepath),
            ) from e

        if not content.strip():
            raise ConfigurationError(
                f"Configuration file is empty: {filepath}\n"
                f"Hint: Add valid JSON content or copy from appsettings.example.json",
                setting=str(filepath),
            )

        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            raise ConfigurationError(
                f"Invalid JSON in config file: {filepath}\n"
                f"Error at line {e.lineno}, column {e.colno}: {e.msg}\n"
                f"Hint: Validate JSON syntax. Note: .json files cannot have comments.",
                setting=str(filepath),
            ) from e

        if not isinstance(data, dict):
            raise ConfigurationError(
                f"Configuration root must be a JSON object: {filepath}",
                setting=str(filepath),
            )
        return data

    def apply_env_overrides(self, data: dict[str, Any]) -> dict[str, Any]:
        """Overlay secrets from environment variables onto raw config data."""
        for env_name, (section, key) in ENV_OVERRIDES.items():
            value = self.environ.get(env_name)
            if value:
                data.setdefault(section, {})[key] = value
                logger.debug("Applied environment override %s -> %s.%s", env_name, section, key)
        return data

    def parse(self, data: dict[str, Any]) -> AppSettings:
        """
        Validate raw data into AppSettings.

        Raises:
            ConfigurationError: Naming the first invalid field
        """
        try:
            return AppSettings.model_validate(self.apply_env_overrides(data))
        except ValidationError as e:
            first = e.errors()[0]
            setting = ".".join(str(part) for part in first["loc"])
            raise ConfigurationError(
                f"Invalid configuration value for '{setting}': {first['msg']}",
                setting=setting,
            ) from e

    def load(self, filename: str = DEFAULT_CONFIG_FILE, validate: bool = True) -> AppSettings:
        """
        Load, override, validate.

        Args:
            filename: Config file name inside ``config_dir``
            validate: Also enforce required settings

        Returns:
            Validated AppSettings
        """
        filepath = self.config_dir / filename
        settings = self.parse(self._load_json_file(filepath))
        if validate:
            validate_required(settings)
        logger.info("Loaded configuration from %s", filepath)
        return settings
