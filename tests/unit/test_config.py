"""Test Settings loading and validation."""

import pytest

from spider_stats.core.config import Settings, load_settings
from spider_stats.core.enums import BusBackend, StoreBackend
from spider_stats.core.errors import ConfigError


class TestSettingsDefaults:
    def test_default_settings(self):
        settings = Settings()
        assert settings.bus == BusBackend.MEMORY
        assert settings.store == StoreBackend.MEMORY

    def test_statistics_defaults(self):
        settings = Settings()
        assert settings.statistics.topic == "statistics-service"
        assert settings.statistics.consumer_group == "statistics-center"
        assert settings.statistics.drain_timeout_seconds is None

    def test_redis_bus_defaults(self):
        settings = Settings()
        assert settings.redis_bus.max_handler_retries == 3
        assert settings.redis_bus.batch_size == 10


class TestEnvOverrides:
    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("SPIDER_STATS_STORE", "redis")
        assert Settings().store == StoreBackend.REDIS

    def test_nested_env(self, monkeypatch):
        monkeypatch.setenv("SPIDER_STATS_STATISTICS__TOPIC", "crawler-stats")
        assert Settings().statistics.topic == "crawler-stats"


class TestLoadSettings:
    def test_missing_file_uses_defaults(self, tmp_path):
        settings = load_settings(tmp_path / "missing.toml")
        assert settings.bus == BusBackend.MEMORY

    def test_toml_file(self, tmp_path):
        path = tmp_path / "stats.toml"
        path.write_text(
            'bus = "redis"\n'
            'store = "postgres"\n'
            "[statistics]\n"
            'topic = "spider-stats"\n'
            "drain_timeout_seconds = 5.0\n"
        )
        settings = load_settings(path)
        assert settings.bus == BusBackend.REDIS
        assert settings.store == StoreBackend.POSTGRES
        assert settings.statistics.topic == "spider-stats"
        assert settings.statistics.drain_timeout_seconds == 5.0

    def test_overrides_win(self, tmp_path):
        path = tmp_path / "stats.toml"
        path.write_text('store = "postgres"\n')
        settings = load_settings(path, overrides={"store": "memory"})
        assert settings.store == StoreBackend.MEMORY


class TestValidateBackends:
    def test_defaults_pass(self):
        Settings().validate_backends()  # Should not raise

    def test_empty_topic_rejected(self):
        settings = Settings(statistics={"topic": "  "})
        with pytest.raises(ConfigError, match="topic"):
            settings.validate_backends()

    def test_postgres_requires_asyncpg_url(self):
        settings = Settings(store="postgres", postgres_url="postgresql://u:p@h/db")
        with pytest.raises(ConfigError, match="asyncpg"):
            settings.validate_backends()

    def test_asyncpg_url_passes(self):
        Settings(store="postgres").validate_backends()  # Should not raise
