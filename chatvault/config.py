"""
Store configuration.

StoreConfig holds the database location and the tunables of the persistence
layer. load_config() builds one from CHATVAULT_* environment variables on top
of the compiled defaults, and rejects out-of-range values.
"""

from __future__ import annotations

import os
import platform
from dataclasses import dataclass, field
from pathlib import Path

from chatvault.core.exceptions import ChatVaultError
from chatvault.core.validation import MAX_IMAGE_SIZE

MODELS_CACHE_TTL_SECONDS = 60 * 60


class ConfigError(ChatVaultError, ValueError):
    """Raised when config values are out of valid range."""


def _app_data_dir() -> Path:
    """Return the per-user application data directory.

    Windows: %APPDATA%/Chatvault
    macOS:   ~/Library/Application Support/Chatvault
    Linux:   $XDG_DATA_HOME/chatvault or ~/.local/share/chatvault
    """
    appdata = os.getenv("APPDATA")
    if appdata:
        return Path(appdata) / "Chatvault"

    if platform.system().lower() == "darwin":
        return Path.home() / "Library" / "Application Support" / "Chatvault"

    xdg = os.getenv("XDG_DATA_HOME")
    if xdg:
        return Path(xdg) / "chatvault"
    return Path.home() / ".local" / "share" / "chatvault"


def get_default_db_path(data_dir: Path | None = None) -> Path:
    """Get the default database path, optionally under a given directory."""
    return (data_dir if data_dir is not None else _app_data_dir()) / "chatvault.db"


@dataclass
class StoreConfig:
    """SQLite store configuration."""

    db_path: Path = field(default_factory=get_default_db_path)
    busy_timeout_ms: int = 5000
    wal_mode: bool = True
    max_image_size: int = MAX_IMAGE_SIZE
    models_cache_ttl_seconds: int = MODELS_CACHE_TTL_SECONDS

    def validate(self) -> list[str]:
        """Return list of validation error messages (empty = valid)."""
        errors: list[str] = []
        if not 0 <= self.busy_timeout_ms <= 600_000:
            errors.append(f"busy_timeout_ms: {self.busy_timeout_ms} not in [0, 600000]")
        if self.max_image_size <= 0:
            errors.append(f"max_image_size: {self.max_image_size} must be positive")
        if self.models_cache_ttl_seconds < 0:
            errors.append(
                f"models_cache_ttl_seconds: {self.models_cache_ttl_seconds} must not be negative"
            )
        return errors


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigError(f"{name}: expected an integer, got {raw!r}") from e


def load_config(db_path: Path | None = None) -> StoreConfig:
    """Build a StoreConfig from the environment. An explicit db_path wins."""
    if db_path is None:
        env_path = os.getenv("CHATVAULT_DB_PATH")
        db_path = Path(env_path).expanduser() if env_path else get_default_db_path()

    config = StoreConfig(
        db_path=db_path,
        busy_timeout_ms=_env_int("CHATVAULT_BUSY_TIMEOUT_MS", 5000),
        max_image_size=_env_int("CHATVAULT_MAX_IMAGE_SIZE", MAX_IMAGE_SIZE),
        models_cache_ttl_seconds=_env_int("CHATVAULT_MODELS_CACHE_TTL", MODELS_CACHE_TTL_SECONDS),
    )
    errors = config.validate()
    if errors:
        raise ConfigError("; ".join(errors))
    return config
