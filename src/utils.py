"""
Shared utility functions for the Octra wallet.

Contains path helpers and common utilities used across packages.
"""

import os
import sys
import time
from pathlib import Path


APP_HOME_ENV = "OCTRA_WALLET_HOME"


def get_app_dir() -> Path:
    """Get the application data directory ($OCTRA_WALLET_HOME wins)."""
    override = os.environ.get(APP_HOME_ENV)
    if override:
        app_dir = Path(override).expanduser()
    elif getattr(sys, 'frozen', False):
        # Running as compiled
        app_dir = Path(sys.executable).parent / "data"
    else:
        app_dir = Path.home() / ".octra-wallet"

    app_dir.mkdir(parents=True, exist_ok=True)
    return app_dir


def get_store_path() -> Path:
    """Get path to the key-value store holding vault and session state."""
    return get_app_dir() / "wallet.json"


def get_settings_path() -> Path:
    """Get path to settings file."""
    return get_app_dir() / "settings.json"


def get_logs_dir() -> Path:
    """Get the logs directory."""
    logs_dir = get_app_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    return logs_dir


def now_ms() -> int:
    """Wall clock in milliseconds since the epoch."""
    return int(time.time() * 1000)
