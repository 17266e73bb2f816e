"""
Manages loading, validation, and migration of the INI configuration file.
"""

import configparser
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from partyplay.exceptions import ConfigurationError
from partyplay.models.config import PartyConfig

log = logging.getLogger(__name__)

MAIN_SECTION = "partyplay"
BACKEND_SECTION_PREFIX = "backend:"


def default_cache_dir(config_dir: Path) -> str:
    return str(config_dir / "song-cache")


class ConfigManager:
    """Handles all operations related to the application's INI config file."""

    def __init__(self, config_file_path: Path):
        self.config_file_path = config_file_path
        self._parser = configparser.ConfigParser(interpolation=None)

    def load_config(self, cli_options: dict[str, Any] | None = None) -> PartyConfig:
        """
        Loads configuration from the INI file, applies CLI overrides, and validates it.

        Args:
            cli_options: A dictionary of options provided via the command line.

        Returns:
            A validated PartyConfig object.

        Raises:
            ConfigurationError: If the config file is missing, invalid, or validation
            fails.
        """
        if not self.config_file_path.is_file():
            raise ConfigurationError(
                f"Configuration file not found at '{self.config_file_path}'. "
                "Please run 'partyplay init' first."
            )

        try:
            self._parser.read(self.config_file_path, encoding="utf-8")
        except configparser.Error as e:
            raise ConfigurationError(f"Error parsing configuration file: {e}") from e

        if not self._parser.has_section(MAIN_SECTION):
            raise ConfigurationError(
                f"Configuration file is missing the [{MAIN_SECTION}] section."
            )

        if self._migrate_if_needed():
            log.info(
                "[yellow]Configuration file was updated with new default values."
                "[/yellow]"
            )

        try:
            config_from_file = self._get_config_as_dict()
        except ValueError as e:
            raise ConfigurationError(f"Invalid value in configuration file: {e}") from e

        if cli_options:
            config_from_file.update(cli_options)

        try:
            config_dir = self.config_file_path.parent
            return PartyConfig(**config_from_file, config_path=str(config_dir))
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed:\n{e}") from e

    def save_new_config(
        self,
        settings: dict[str, Any],
        backends: dict[str, dict[str, str]] | None = None,
    ) -> None:
        """
        Creates and saves a new configuration file.

        Args:
            settings: Values for the main section; missing keys get defaults.
            backends: Options of each backend section, keyed by backend name.
        """
        config = configparser.ConfigParser(interpolation=None)
        config[MAIN_SECTION] = {}
        section = config[MAIN_SECTION]

        defaults = PartyConfig.model_construct(
            cache_dir=default_cache_dir(self.config_file_path.parent)
        )
        backends = backends or {}
        settings = {"backends": list(backends), **settings}

        for key in sorted(PartyConfig.get_ini_keys()):
            value = settings.get(key, getattr(defaults, key, None))
            section[key] = self._to_ini(value)

        for name, options in backends.items():
            config[BACKEND_SECTION_PREFIX + name] = {
                k: str(v) for k, v in options.items()
            }

        try:
            self.config_file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_file_path, "w", encoding="utf-8") as configfile:
                config.write(configfile)
        except OSError as e:
            raise ConfigurationError(f"Failed to save configuration file: {e}") from e

    @staticmethod
    def _to_ini(value: Any) -> str:
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, list):
            return ",".join(map(str, value))
        return "" if value is None else str(value)

    def _get_config_as_dict(self) -> dict[str, Any]:
        """Reads the main section and every backend section into a dictionary."""
        section = self._parser[MAIN_SECTION]
        backend_options = {
            name[len(BACKEND_SECTION_PREFIX) :].strip(): dict(self._parser[name])
            for name in self._parser.sections()
            if name.startswith(BACKEND_SECTION_PREFIX)
        }
        return {
            "host": section.get("host", "0.0.0.0"),
            "port": section.getint("port", 8080),
            "cache_dir": section.get(
                "cache_dir", default_cache_dir(self.config_file_path.parent)
            ),
            "max_workers": section.getint("max_workers", 8),
            "retry_delay": section.getfloat("retry_delay", 5.0),
            "max_redirects": section.getint("max_redirects", 10),
            "max_connection_retries": section.getint("max_connection_retries", 5),
            "end_padding": section.getfloat("end_padding", 1.0),
            "search_result_count": section.getint("search_result_count", 10),
            "backends": [
                b.strip() for b in section.get("backends", "").split(",") if b.strip()
            ],
            "backend_options": backend_options,
        }

    def get_raw_settings(self) -> dict[str, Any]:
        """Returns the main section as written, for display purposes."""
        self._parser.read(self.config_file_path, encoding="utf-8")
        if not self._parser.has_section(MAIN_SECTION):
            return {}
        return dict(self._parser[MAIN_SECTION])

    def _migrate_if_needed(self) -> bool:
        """Adds missing default values to an existing config file."""
        defaults = PartyConfig.model_construct(
            cache_dir=default_cache_dir(self.config_file_path.parent)
        )
        config_section = self._parser[MAIN_SECTION]
        needs_saving = False

        for key in sorted(PartyConfig.get_ini_keys()):
            if key not in config_section:
                config_section[key] = self._to_ini(getattr(defaults, key))
                needs_saving = True
                log.debug(
                    f"Migrating config: added missing key '{key}' with "
                    f"value '{config_section[key]}'."
                )

        if needs_saving:
            try:
                with open(self.config_file_path, "w", encoding="utf-8") as f:
                    self._parser.write(f)
            except OSError as e:
                log.error(f"Could not save migrated configuration file: {e}")
                return False

        return needs_saving
