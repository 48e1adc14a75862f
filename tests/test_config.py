"""Tests for sleuth configuration."""

from pathlib import Path

import pytest
import yaml

from sleuth import config as config_module
from sleuth.config import (
    SearchConfig,
    SleuthConfig,
    StorageConfig,
    get_config_dir,
    get_data_dir,
    load_config,
    save_config,
)


@pytest.fixture(autouse=True)
def reset_global_config(monkeypatch):
    """load_config caches its result module-wide."""
    monkeypatch.setattr(config_module, "_config", None)


class TestSearchConfig:
    def test_defaults(self):
        search = SearchConfig()
        assert search.default_limit == 50
        assert search.max_limit == 100
        assert search.cache_ttl_seconds == 60
        assert search.suggestion_pool == 5
        assert search.max_suggestions == 5

    def test_validation(self):
        with pytest.raises(ValueError):
            SearchConfig(max_limit=0)  # Must be >= 1

        with pytest.raises(ValueError):
            SearchConfig(max_limit=500)  # Must be <= 100

        with pytest.raises(ValueError):
            SearchConfig(cache_ttl_seconds=0)

    def test_default_limit_within_max(self):
        with pytest.raises(ValueError, match="exceeds max_limit"):
            SearchConfig(default_limit=80, max_limit=20)


class TestStorageConfig:
    def test_defaults(self):
        storage = StorageConfig()
        assert storage.db_path is None
        assert storage.cache_path is None

    def test_expands_user(self):
        storage = StorageConfig(db_path="~/mail/messages.db")
        assert storage.db_path == Path.home() / "mail" / "messages.db"


class TestSleuthConfig:
    def test_empty_config(self):
        config = SleuthConfig()
        assert config.default_user == ""
        assert config.log_level == "WARNING"

    def test_log_level_normalized(self):
        assert SleuthConfig(log_level="debug").log_level == "DEBUG"

    def test_log_level_validation(self):
        with pytest.raises(ValueError, match="Unknown log level"):
            SleuthConfig(log_level="chatty")

    def test_get_user(self):
        config = SleuthConfig(default_user="u1")
        assert config.get_user() == "u1"
        assert config.get_user("u2") == "u2"

    def test_get_user_missing(self):
        with pytest.raises(ValueError, match="No user specified"):
            SleuthConfig().get_user(None)


class TestDirectories:
    def test_xdg_dirs(self, tmp_path, monkeypatch):
        monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
        monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
        assert get_config_dir() == tmp_path / "config" / "sleuth"
        assert get_data_dir() == tmp_path / "data" / "sleuth"

    def test_home_fallback(self, monkeypatch):
        monkeypatch.delenv("XDG_CONFIG_HOME", raising=False)
        monkeypatch.delenv("XDG_DATA_HOME", raising=False)
        assert get_config_dir() == Path.home() / ".config" / "sleuth"
        assert get_data_dir() == Path.home() / ".local" / "share" / "sleuth"


class TestLoadConfig:
    def test_load_nonexistent_file(self, tmp_path):
        """Loading a nonexistent config returns empty config."""
        config = load_config(tmp_path / "nonexistent.yaml")
        assert config.default_user == ""

    def test_load_empty_file(self, tmp_path):
        config_path = tmp_path / "config.yaml"
        config_path.write_text("")
        assert load_config(config_path).search.default_limit == 50

    def test_load_valid_config(self, tmp_path):
        """Load a valid YAML config file."""
        config_path = tmp_path / "config.yaml"
        config_data = {
            "default_user": "u1",
            "log_level": "info",
            "search": {
                "default_limit": 25,
                "cache_ttl_seconds": 120,
            },
            "storage": {
                "db_path": str(tmp_path / "messages.db"),
            },
        }

        with open(config_path, "w") as f:
            yaml.dump(config_data, f)

        config = load_config(config_path)

        assert config.default_user == "u1"
        assert config.log_level == "INFO"
        assert config.search.default_limit == 25
        assert config.search.cache_ttl_seconds == 120
        assert config.storage.db_path == tmp_path / "messages.db"

    def test_load_invalid_config(self, tmp_path):
        config_path = tmp_path / "config.yaml"
        config_path.write_text("search:\n  default_limit: 0\n")
        with pytest.raises(ValueError):
            load_config(config_path)

    def test_save_and_reload(self, tmp_path):
        config_path = tmp_path / "nested" / "config.yaml"
        config = SleuthConfig(default_user="u9", search=SearchConfig(max_suggestions=2))

        save_config(config, config_path)
        loaded = load_config(config_path)

        assert loaded.default_user == "u9"
        assert loaded.search.max_suggestions == 2
        assert loaded.storage.db_path is None
