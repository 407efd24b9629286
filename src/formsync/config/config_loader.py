"""
Configuration loader for formsync.
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from ..core.exceptions import ConfigError


logger = logging.getLogger(__name__)

ENV_STORAGE_DIR = "FORMSYNC_STORAGE_DIR"
ENV_SERVER_URL = "FORMSYNC_SERVER_URL"
ENV_USERNAME = "FORMSYNC_USERNAME"
ENV_PASSWORD = "FORMSYNC_PASSWORD"


class SyncConfig:
    """
    Configuration for form synchronization.

    Loads a YAML configuration file, or defaults, then applies environment
    variable overrides.
    """

    def __init__(self, config_path: Optional[Path] = None):
        """
        Initialize configuration.

        Args:
            config_path: Path to YAML config file (optional)
        """
        self.config_path = Path(config_path) if config_path else None
        self.config = self._default_config()
        if self.config_path:
            _merge(self.config, self._load_config())
        self._apply_env_overrides()

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from YAML file."""
        if not self.config_path.exists():
            raise ConfigError(f"Config file not found: {self.config_path}")

        logger.info(f"Loading config from: {self.config_path}")

        try:
            with open(self.config_path, "r", encoding="utf-8") as f:
                config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {self.config_path}: {e}") from e

        if config is None:
            return {}
        if not isinstance(config, dict):
            raise ConfigError(f"Config file must contain a mapping: {self.config_path}")
        return config

    def _default_config(self) -> Dict[str, Any]:
        """Return default configuration."""
        return {
            "storage": {
                "root_dir": "./formsync_storage",
                "copy_candidates": False,
            },
            "server": {
                "url": None,
                "username": None,
                "password": None,
                "timeout": 30,
                "max_retries": 3,
                "rate_limit_delay": 0.0,
            },
            "pull": {
                "num_entries": 100,
                "forms": [],
            },
            "logging": {
                "level": "INFO",
                "structured": False,
            },
        }

    def _apply_env_overrides(self) -> None:
        """Apply environment variable overrides to loaded config."""
        overrides = {
            ENV_STORAGE_DIR: ("storage", "root_dir"),
            ENV_SERVER_URL: ("server", "url"),
            ENV_USERNAME: ("server", "username"),
            ENV_PASSWORD: ("server", "password"),
        }
        for env_var, (section, key) in overrides.items():
            value = os.environ.get(env_var)
            if value:
                self.config.setdefault(section, {})[key] = value

    def get_storage_config(self) -> Dict[str, Any]:
        """Get storage configuration."""
        return self.config.get("storage", {})

    def get_server_config(self) -> Dict[str, Any]:
        """Get server configuration."""
        return self.config.get("server", {})

    def get_pull_config(self) -> Dict[str, Any]:
        """Get pull configuration."""
        return self.config.get("pull", {})

    def get_forms(self) -> List[str]:
        """Get the form ids to pull."""
        return list(self.get_pull_config().get("forms") or [])

    def get_storage_root(self) -> Path:
        return Path(self.get("storage.root_dir", "./formsync_storage"))

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value by dotted key."""
        keys = key.split(".")
        value = self.config

        for k in keys:
            if isinstance(value, dict):
                value = value.get(k)
            else:
                return default

        return value if value is not None else default


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> None:
    """Recursively merge override into base."""
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _merge(base[key], value)
        else:
            base[key] = value
