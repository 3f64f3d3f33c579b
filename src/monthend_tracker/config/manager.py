"""Configuration loading from YAML files and environment overrides."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Mapping

import yaml

from monthend_tracker.config.schema import AppConfig

logger = logging.getLogger(__name__)

# Environment variable -> (section, key). Credentials are expected here
# rather than in the YAML files.
ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "ENERGY_API_URL": ("energy_api", "base_url"),
    "ENERGY_API_USER": ("energy_api", "username"),
    "ENERGY_API_PASSWORD": ("energy_api", "password"),
    "MONTHEND_DB_PATH": ("db", "path"),
    "MONTHEND_TIMEZONE": ("schedule", "timezone"),
    "LOG_LEVEL": ("logging", "level"),
    "LOG_FORMAT": ("logging", "format"),
}


class ConfigManager:
    """Loads config from YAML defaults + user overrides + environment."""

    def __init__(
        self,
        defaults_path: Path | None = None,
        user_path: Path | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self._defaults_path = defaults_path or Path("config.defaults.yaml")
        self._user_path = user_path or Path("config.yaml")
        self._environ = os.environ if environ is None else environ
        self._config: AppConfig | None = None
        self._raw: dict[str, Any] = {}

    @property
    def config(self) -> AppConfig:
        if self._config is None:
            raise RuntimeError("Config not loaded. Call load() first.")
        return self._config

    def load(self) -> AppConfig:
        """Load configuration from defaults, user overrides and environment."""
        defaults = self._load_yaml(self._defaults_path)
        overrides = self._load_yaml(self._user_path) if self._user_path.exists() else {}
        merged = self._deep_merge(defaults, overrides)
        merged = self._deep_merge(merged, self._env_overrides())
        self._raw = merged
        self._config = AppConfig.model_validate(merged)
        logger.info("Configuration loaded successfully")
        return self._config

    def get_raw(self) -> dict[str, Any]:
        return dict(self._raw)

    def _env_overrides(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        for env_name, (section, key) in ENV_OVERRIDES.items():
            value = self._environ.get(env_name)
            if value:
                result.setdefault(section, {})[key] = value
        return result

    @staticmethod
    def _load_yaml(path: Path) -> dict[str, Any]:
        if not path.exists():
            return {}
        with open(path) as f:
            data = yaml.safe_load(f)
        return data if isinstance(data, dict) else {}

    @staticmethod
    def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
        """Recursively merge override into base, returning a new dict."""
        result = dict(base)
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = ConfigManager._deep_merge(result[key], value)
            else:
                result[key] = value
        return result
