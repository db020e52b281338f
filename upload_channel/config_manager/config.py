"""Resolve upload settings from a YAML file, environment, and CLI overrides."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml

from upload_channel.config_manager.settings import UploadSettings
from upload_channel.const import CONFIG_DIR, CONFIG_ENCODING, SETTINGS_FILE

logger = logging.getLogger(__name__)

_ENV_MAP: dict[str, str] = {
    "chunk_size": "UPLOAD_CHANNEL_CHUNK_SIZE",
    "state_dir": "UPLOAD_CHANNEL_STATE_DIR",
    "http_timeout": "UPLOAD_CHANNEL_HTTP_TIMEOUT",
    "log_level": "UPLOAD_CHANNEL_LOG_LEVEL",
}


class ConfigManager:
    """Build effective settings from defaults, file, env, and CLI overrides."""

    def __init__(self, settings_path: Path | None = None) -> None:
        """Initialise ConfigManager.

        Args:
            settings_path: YAML settings file. Defaults to
                ``~/.upload_channel/settings.yaml``; a missing file is ignored.
        """
        self.settings_path = settings_path or CONFIG_DIR / SETTINGS_FILE

    def _read_file_settings(self) -> dict[str, Any]:
        """Read settings from the YAML file.

        Returns:
            Mapping of setting names to values, empty if the file is absent.

        Raises:
            ValueError: If the file does not contain a mapping.
        """
        if not self.settings_path.exists():
            return {}

        with self.settings_path.open("r", encoding=CONFIG_ENCODING) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(
                f"Settings file {self.settings_path} must contain a mapping"
            )
        unknown = set(data) - set(UploadSettings.model_fields)
        if unknown:
            logger.warning(
                "Ignoring unknown settings in %s: %s",
                self.settings_path,
                ", ".join(sorted(unknown)),
            )
        return {key: value for key, value in data.items() if key not in unknown}

    def _read_env_overrides(self) -> dict[str, Any]:
        """Read setting overrides from environment variables."""
        overrides: dict[str, Any] = {}
        for field_name, env_var_name in _ENV_MAP.items():
            env_value = os.getenv(env_var_name)
            if env_value is None:
                continue
            overrides[field_name] = env_value
        return overrides

    def resolve_effective_settings(
        self, cli_overrides: dict[str, Any] | None = None
    ) -> UploadSettings:
        """Resolve the settings for this run.

        Later sources win: file, then environment, then CLI overrides. Values
        that are None in ``cli_overrides`` are ignored.

        Args:
            cli_overrides: Optional settings passed on the command line.

        Returns:
            The validated ``UploadSettings``.
        """
        merged: dict[str, Any] = {}
        merged.update(self._read_file_settings())
        merged.update(self._read_env_overrides())
        if cli_overrides:
            merged.update(
                {
                    key: value
                    for key, value in cli_overrides.items()
                    if value is not None
                }
            )
        return UploadSettings.model_validate(merged)
