"""
Settings - User configuration persisted as settings.json.

Unknown keys are ignored and a malformed file falls back to defaults,
so a bad edit never blocks startup.
"""

import json
import logging
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Optional

from utils import get_settings_path
from wallet import __version__
from wallet.manager import DEFAULT_RPC_URL
from wallet.errors import StorageFailure

logger = logging.getLogger(__name__)


DEFAULT_USER_AGENT = f"octra-wallet/{__version__}"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class Settings:
    rpc_url: str = DEFAULT_RPC_URL
    auto_lock_duration: int = 300
    user_agent: str = DEFAULT_USER_AGENT
    log_level: str = "INFO"
    log_retention_days: int = 0

    @property
    def log_level_value(self) -> int:
        return getattr(logging, self.log_level.upper(), logging.INFO)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "Settings":
        """Build from a mapping, dropping unknown keys and bad values."""
        defaults = cls()
        known = {f.name: f for f in fields(cls)}
        values = {}
        for key, value in data.items():
            if key not in known:
                logger.debug(f"Ignoring unknown setting: {key}")
                continue
            expected = type(getattr(defaults, key))
            if expected is int and (isinstance(value, bool) or not isinstance(value, int)):
                logger.warning(f"Setting {key} must be an integer, using default")
                continue
            if expected is str and not isinstance(value, str):
                logger.warning(f"Setting {key} must be a string, using default")
                continue
            values[key] = value

        settings = cls(**values)
        if settings.auto_lock_duration < 0:
            logger.warning("auto_lock_duration cannot be negative, using default")
            settings.auto_lock_duration = defaults.auto_lock_duration
        if settings.log_level.upper() not in LOG_LEVELS:
            logger.warning(f"Unknown log level {settings.log_level!r}, using INFO")
            settings.log_level = defaults.log_level
        return settings

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "Settings":
        """Load settings from disk."""
        path = path or get_settings_path()
        if not path.exists():
            return cls()
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to load settings: {e}")
            return cls()
        if not isinstance(data, dict):
            logger.warning("Settings file is not a JSON object, using defaults")
            return cls()
        return cls.from_dict(data)

    def save(self, path: Optional[Path] = None) -> None:
        """Save settings to disk."""
        path = path or get_settings_path()
        try:
            with open(path, 'w', encoding='utf-8') as f:
                json.dump(self.to_dict(), f, indent=2)
        except OSError as e:
            logger.error(f"Failed to save settings: {e}")
            raise StorageFailure(f"Failed to save settings: {e}") from e
