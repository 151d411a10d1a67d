"""Configuration loader for Heartlink.

Loads config.py from the working directory or its parents, falling back to defaults.
"""

import importlib.util
import sys
from pathlib import Path
from types import ModuleType
from typing import Any

from . import defaults


class Config:
    """Configuration object with attribute access."""

    def __init__(self, config_path: Path | None = None) -> None:
        # Start with defaults
        for key in defaults.CONFIG_KEYS:
            setattr(self, key, getattr(defaults, key))

        self.source: Path | None = config_path or self._find_config_file()
        if self.source is not None:
            self._load_user_config(self.source)

    def _load_user_config(self, config_path: Path) -> None:
        """Override defaults with values from a config.py file."""
        user_config = self._load_module_from_path(config_path)

        for key in defaults.CONFIG_KEYS:
            if hasattr(user_config, key):
                setattr(self, key, getattr(user_config, key))

    def _find_config_file(self) -> Path | None:
        """Find config.py in current dir or parents."""
        current = Path.cwd()
        search_paths = [current, *current.parents]

        for path in search_paths:
            config_path = path / "config.py"
            if config_path.exists():
                return config_path

        return None

    def _load_module_from_path(self, path: Path) -> ModuleType:
        """Load a Python module from a file path."""
        spec = importlib.util.spec_from_file_location("heartlink_user_config", path)
        if spec is None or spec.loader is None:
            raise RuntimeError(f"Could not load config from {path}")

        module = importlib.util.module_from_spec(spec)
        sys.modules["heartlink_user_config"] = module
        spec.loader.exec_module(module)
        return module

    def get(self, key: str, default: Any = None) -> Any:
        """Get config value with optional default."""
        return getattr(self, key, default)

    @property
    def db_path(self) -> Path:
        return Path(self.DATA_DIR) / self.DB_FILENAME

    def validate(self) -> list[str]:
        """Validate configuration, return list of errors."""
        errors = []

        if not isinstance(self.PROGRESS_TARGET, int) or self.PROGRESS_TARGET <= 0:
            errors.append("PROGRESS_TARGET must be a positive integer")

        if not isinstance(self.POLL_INTERVAL, (int, float)) or self.POLL_INTERVAL <= 0:
            errors.append("POLL_INTERVAL must be a positive number")

        if self.PROMPTS_PATH is not None and not Path(self.PROMPTS_PATH).exists():
            errors.append(f"PROMPTS_PATH does not exist: {self.PROMPTS_PATH}")

        if self.LOG_LEVEL not in ("DEBUG", "INFO", "WARNING", "ERROR"):
            errors.append(f"Unknown LOG_LEVEL '{self.LOG_LEVEL}'")

        return errors

    def __repr__(self) -> str:
        return f"<Config source={self.source} target={self.PROGRESS_TARGET}>"


# Global config instance
_config: Config | None = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config()
    return _config


def reload_config() -> Config:
    """Reload configuration from disk."""
    global _config
    _config = Config()
    return _config
