"""Configuration management for kakeibo.

This module centralizes all configuration values including paths,
defaults, and environment variable overrides.
"""

from __future__ import annotations

import os
from pathlib import Path

# Base project root - assumes this file is in kakeibo/
_PROJECT_ROOT = Path(__file__).parent.parent.resolve()

APP_NAME = "kakeibo"

# Data directories
DATA_DIR = Path(os.getenv("KAKEIBO_DATA_DIR", _PROJECT_ROOT / "data"))
EXPORTS_DIR = DATA_DIR / "exports"

# Database
DB_PATH = Path(
    os.getenv("KAKEIBO_DB_PATH", DATA_DIR / "kakeibo.db")
).resolve()

# Once-per-month rollover prompt flags
FLAGS_PATH = Path(
    os.getenv("KAKEIBO_FLAGS_PATH", DATA_DIR / "rollover_flags.json")
).resolve()

LOG_LEVEL = os.getenv("KAKEIBO_LOG_LEVEL", "INFO").upper()

# Seeded for an owner with no categories yet, in display order.
DEFAULT_CATEGORIES = (
    "食費",
    "住居",
    "交通",
    "光熱費",
    "通信",
    "日用品",
    "医療",
    "娯楽",
    "教育",
    "その他",
)


def ensure_data_directories() -> None:
    """Create all required data directories if they don't exist."""
    for directory in [DATA_DIR, EXPORTS_DIR]:
        directory.mkdir(parents=True, exist_ok=True)
