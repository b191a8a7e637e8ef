"""Unit tests for store configuration."""

from pathlib import Path

import pytest

from chatvault.config import (
    MODELS_CACHE_TTL_SECONDS,
    ConfigError,
    StoreConfig,
    get_default_db_path,
    load_config,
)
from chatvault.core.exceptions import ChatVaultError
from chatvault.core.validation import MAX_IMAGE_SIZE

_ENV_VARS = (
    "CHATVAULT_DB_PATH",
    "CHATVAULT_BUSY_TIMEOUT_MS",
    "CHATVAULT_MAX_IMAGE_SIZE",
    "CHATVAULT_MODELS_CACHE_TTL",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove CHATVAULT_* variables inherited from the environment."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestDefaults:
    """Tests for default values."""

    def test_store_config_defaults(self, tmp_path: Path) -> None:
        config = StoreConfig(db_path=tmp_path / "x.db")

        assert config.busy_timeout_ms == 5000
        assert config.wal_mode is True
        assert config.max_image_size == MAX_IMAGE_SIZE
        assert config.models_cache_ttl_seconds == MODELS_CACHE_TTL_SECONDS
        assert config.validate() == []

    def test_default_db_path_under_data_dir(self, tmp_path: Path) -> None:
        assert get_default_db_path(tmp_path) == tmp_path / "chatvault.db"

    def test_default_db_path_honours_xdg(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test that XDG_DATA_HOME is used on Linux."""
        monkeypatch.delenv("APPDATA", raising=False)
        monkeypatch.setattr("platform.system", lambda: "Linux")
        monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path))

        assert get_default_db_path() == tmp_path / "chatvault" / "chatvault.db"


class TestLoadConfig:
    """Tests for load_config."""

    def test_explicit_path_wins(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CHATVAULT_DB_PATH", str(tmp_path / "env.db"))

        config = load_config(tmp_path / "explicit.db")

        assert config.db_path == tmp_path / "explicit.db"

    def test_env_overrides(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CHATVAULT_DB_PATH", str(tmp_path / "env.db"))
        monkeypatch.setenv("CHATVAULT_BUSY_TIMEOUT_MS", "250")
        monkeypatch.setenv("CHATVAULT_MAX_IMAGE_SIZE", "1024")
        monkeypatch.setenv("CHATVAULT_MODELS_CACHE_TTL", "0")

        config = load_config()

        assert config.db_path == tmp_path / "env.db"
        assert config.busy_timeout_ms == 250
        assert config.max_image_size == 1024
        assert config.models_cache_ttl_seconds == 0

    def test_empty_env_value_uses_default(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CHATVAULT_BUSY_TIMEOUT_MS", "")

        assert load_config(Path("x.db")).busy_timeout_ms == 5000

    def test_non_integer_is_rejected(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CHATVAULT_BUSY_TIMEOUT_MS", "soon")

        with pytest.raises(ConfigError) as exc_info:
            load_config(Path("x.db"))

        assert "CHATVAULT_BUSY_TIMEOUT_MS" in str(exc_info.value)

    @pytest.mark.parametrize(
        ("name", "value"),
        [
            ("CHATVAULT_BUSY_TIMEOUT_MS", "-1"),
            ("CHATVAULT_BUSY_TIMEOUT_MS", "600001"),
            ("CHATVAULT_MAX_IMAGE_SIZE", "0"),
            ("CHATVAULT_MODELS_CACHE_TTL", "-5"),
        ],
    )
    def test_out_of_range_is_rejected(
        self, name: str, value: str, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv(name, value)

        with pytest.raises(ConfigError):
            load_config(Path("x.db"))

    def test_config_error_hierarchy(self) -> None:
        """Test that ConfigError is both a ChatVaultError and a ValueError."""
        assert issubclass(ConfigError, ChatVaultError)
        assert issubclass(ConfigError, ValueError)
