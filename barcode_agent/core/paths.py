"""Centralized path constants for the barcode agent."""

from __future__ import annotations

import os
import sys
from pathlib import Path


def _is_frozen() -> bool:
    """Check if running as a frozen/compiled application."""
    return bool(getattr(sys, 'frozen', False))


def _get_base_path() -> Path:
    """Get the base path, handling normal and frozen environments."""
    if _is_frozen() and hasattr(sys, '_MEIPASS'):
        return Path(sys._MEIPASS)
    return Path(__file__).resolve().parents[2]


# Project/package roots
PROJECT_ROOT = _get_base_path()
PACKAGE_ROOT = PROJECT_ROOT / "barcode_agent"

# Configuration
CONFIG_PATH = PROJECT_ROOT / "config.txt"

# Logging
LOGS_DIR = PROJECT_ROOT / "logs"
LOG_FILE = LOGS_DIR / "scanner.log"

# Persisted device identity (may live outside a read-only install)
_STATE_ENV = os.environ.get("BARCODE_AGENT_STATE_DIR")
STATE_DIR = Path(_STATE_ENV).expanduser() if _STATE_ENV else (PROJECT_ROOT / "config")
IDENTITY_FILE = STATE_DIR / "device.json"


def ensure_directories() -> None:
    """Create necessary directories if they don't exist."""

    LOGS_DIR.mkdir(parents=True, exist_ok=True)
    STATE_DIR.mkdir(parents=True, exist_ok=True)


__all__ = [
    'PROJECT_ROOT',
    'PACKAGE_ROOT',
    'CONFIG_PATH',
    'LOGS_DIR',
    'LOG_FILE',
    'STATE_DIR',
    'IDENTITY_FILE',
    'ensure_directories',
]
