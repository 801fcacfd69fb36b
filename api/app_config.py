"""
App configuration manager for the neural network interpreter.

Settings are resolved from (lowest to highest priority):
1. Built-in defaults (``AppSettings``)
2. ``settings.json`` in the config folder
3. ``NNI_*`` environment variables (e.g. ``NNI_TEST_FRACTION=0.25``)

The config folder location is determined by (in order of priority):
1. NNI_CONFIG environment variable
2. Default location: ~/.nn-interpreter/
"""

import json
import os
from dataclasses import asdict, dataclass, fields
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from .shared.logger import get_logger

logger = get_logger(__name__)

_CONFIG_DIR_NAME = ".nn-interpreter"
_SETTINGS_FILE_NAME = "settings.json"
_ENV_PREFIX = "NNI_"


@dataclass
class AppSettings:
    """Effective application settings."""

    host: str = "127.0.0.1"
    port: int = 8000
    log_level: str = "INFO"
    test_fraction: float = 0.2
    random_seed: Optional[int] = None
    classification_threshold: int = 10
    categorical_policy: str = "zero"
    max_upload_mb: int = 50
    max_workers: int = 2
    max_sessions: int = 32

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_mb * 1024 * 1024

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AppSettings":
        """Build settings from a mapping, coercing values and ignoring unknown keys."""
        values = {}
        for f in fields(cls):
            if f.name in data:
                values[f.name] = _coerce(f.name, data[f.name])
        return cls(**values)


_FIELD_TYPES = {
    "host": str,
    "port": int,
    "log_level": str,
    "test_fraction": float,
    "random_seed": int,
    "classification_threshold": int,
    "categorical_policy": str,
    "max_upload_mb": int,
    "max_workers": int,
    "max_sessions": int,
}


def _coerce(name: str, value: Any) -> Any:
    if value is None or (isinstance(value, str) and value.strip().lower() in ("", "none", "null")):
        if name == "random_seed":
            return None
        raise ValueError(f"Setting '{name}' cannot be empty")
    try:
        return _FIELD_TYPES[name](value)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid value for setting '{name}': {value!r}") from None


class AppConfigManager:
    """Loads, merges and saves application settings."""

    def __init__(self, config_dir: Optional[Path] = None):
        self._config_dir = Path(config_dir) if config_dir else self._get_config_dir()
        self._settings_path = self._config_dir / _SETTINGS_FILE_NAME

    def _get_config_dir(self) -> Path:
        env_config = os.environ.get("NNI_CONFIG")
        if env_config:
            return Path(env_config)
        return Path.home() / _CONFIG_DIR_NAME

    @property
    def config_dir(self) -> Path:
        return self._config_dir

    @property
    def settings_path(self) -> Path:
        return self._settings_path

    # ============================================================================
    # Settings file
    # ============================================================================

    def _load_file(self) -> Dict[str, Any]:
        if not self._settings_path.exists():
            return {}
        try:
            with open(self._settings_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Failed to load settings from %s: %s", self._settings_path, e)
            return {}
        if not isinstance(data, dict):
            logger.warning("Ignoring settings file %s: not a JSON object", self._settings_path)
            return {}
        return data

    def _env_overrides(self) -> Dict[str, Any]:
        overrides = {}
        for name in _FIELD_TYPES:
            raw = os.environ.get(_ENV_PREFIX + name.upper())
            if raw is not None:
                overrides[name] = raw
        return overrides

    def get_settings(self) -> AppSettings:
        """Effective settings: defaults < settings file < environment."""
        merged = self._deep_merge(AppSettings().to_dict(), self._load_file())
        merged = self._deep_merge(merged, self._env_overrides())
        return AppSettings.from_dict(merged)

    def save_settings(self, settings: Dict[str, Any]) -> None:
        """Write settings to the config folder.

        Raises:
            OSError: The file could not be written
        """
        self._config_dir.mkdir(parents=True, exist_ok=True)
        data = dict(settings)
        data["last_updated"] = datetime.now().isoformat()
        with open(self._settings_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)

    def update_settings(self, updates: Dict[str, Any]) -> AppSettings:
        """Merge updates into the settings file and return the effective settings.

        Raises:
            ValueError: An update has an invalid value
        """
        current = self._load_file()
        merged = self._deep_merge(current, updates)
        # Validate before writing
        AppSettings.from_dict(self._deep_merge(AppSettings().to_dict(), merged))
        self.save_settings(merged)
        logger.info("Updated settings: %s", sorted(updates))
        return self.get_settings()

    def _deep_merge(self, base: Dict, updates: Dict) -> Dict:
        """Deep merge two dictionaries."""
        result = base.copy()
        for key, value in updates.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value
        return result


# Global instance
app_config = AppConfigManager()
