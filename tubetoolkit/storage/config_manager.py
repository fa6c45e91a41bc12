"""
Manages loading and validation of the INI configuration file.
"""

import configparser
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from tubetoolkit.exceptions import ConfigurationError
from tubetoolkit.models.config import QueueConfig

log = logging.getLogger(__name__)


class ConfigManager:
    """Handles reading the application's INI config file."""

    def __init__(self, config_file_path: Path):
        self.config_file_path = config_file_path
        self._parser = configparser.ConfigParser(interpolation=None)

    def load_config(self, cli_options: dict[str, Any] | None = None) -> QueueConfig:
        """
        Loads configuration from the INI file, applies CLI overrides, and validates it.
        A missing file is not an error; built-in defaults are used instead.

        Args:
            cli_options: A dictionary of options provided via the command line.

        Returns:
            A validated QueueConfig object.

        Raises:
            ConfigurationError: If the config file is unreadable or validation fails.
        """
        config_from_file: dict[str, Any] = {}
        if self.config_file_path.is_file():
            try:
                self._parser.read(self.config_file_path, encoding="utf-8")
            except configparser.Error as e:
                raise ConfigurationError(
                    f"Error parsing configuration file: {e}"
                ) from e
            config_from_file = self._get_config_as_dict()
            self._warn_unknown_keys()
        else:
            log.debug(
                f"No config file at '{self.config_file_path}', using defaults."
            )

        if cli_options:
            config_from_file.update(cli_options)

        try:
            config = QueueConfig(**config_from_file)
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed:\n{e}") from e

        state_path = Path(config.state_file).expanduser()
        if not state_path.is_absolute():
            config.state_file = str(self.config_file_path.parent / state_path)
        return config

    def _get_config_as_dict(self) -> dict[str, Any]:
        """Reads the keys present in the 'DEFAULT' section into a dictionary."""
        section = self._parser["DEFAULT"]
        getters = {
            "output_dir": section.get,
            "state_file": section.get,
            "max_concurrent": section.getint,
            "max_attempts": section.getint,
            "retry_delay": section.getfloat,
            "save_interval": section.getfloat,
            "attempt_timeout": section.getfloat,
            "default_format": section.get,
            "default_quality": section.get,
            "ytdlp_binary": section.get,
            "cookies_file": section.get,
        }
        config: dict[str, Any] = {}
        for key, getter in getters.items():
            if key not in section:
                continue
            try:
                config[key] = getter(key)
            except ValueError as e:
                raise ConfigurationError(f"Invalid value for '{key}': {e}") from e

        if "proxies" in section:
            config["proxies"] = [
                p.strip() for p in section.get("proxies", "").split(",") if p.strip()
            ]
        return config

    def _warn_unknown_keys(self) -> None:
        known = QueueConfig.get_ini_keys()
        for key in self._parser["DEFAULT"]:
            if key not in known:
                log.warning(
                    f"[yellow]Ignoring unknown config key '{key}' "
                    f"in {self.config_file_path.name}.[/yellow]"
                )
