"""Configuration management for saladict-sync."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


def get_data_dir() -> Path:
    """Get the saladict-sync data directory.

    Priority:
    1. SALADICT_SYNC_DIR environment variable
    2. ~/.saladict-sync/
    """
    env_dir = os.environ.get("SALADICT_SYNC_DIR")
    if env_dir:
        return Path(env_dir)
    return Path.home() / ".saladict-sync"


@dataclass
class Config:
    """
    Application configuration.

    Loaded from environment variables with sensible defaults.
    Sync credentials are not part of it; they live in the ``sync``
    storage area under ``syncConfig``.
    """

    # Verbose logging, no other behavioral effect
    debug: bool = False

    # Storage settings
    db_path: Path | None = None

    # Transport settings
    request_timeout: float = 30.0

    @property
    def resolved_db_path(self) -> Path:
        """SQLite database path, defaulting into the data directory."""
        return self.db_path or get_data_dir() / "notebook.db"

    @classmethod
    def from_env(cls) -> Config:
        """Load configuration from environment variables."""

        def get_bool(key: str, default: bool) -> bool:
            value = os.getenv(key)
            if value is None:
                return default
            return value.lower() in ("true", "1", "yes")

        def get_float(key: str, default: float) -> float:
            value = os.getenv(key)
            if value is None:
                return default
            try:
                return float(value)
            except ValueError:
                return default

        db_path = os.getenv("SALADICT_SYNC_DB_PATH")

        return cls(
            debug=get_bool("SALADICT_SYNC_DEBUG", False),
            db_path=Path(db_path) if db_path else None,
            request_timeout=get_float("SALADICT_SYNC_TIMEOUT", 30.0),
        )


# Singleton config instance
_config: Config | None = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config.from_env()
    return _config


def reset_config() -> None:
    """Reset the global configuration (useful for testing)."""
    global _config
    _config = None
