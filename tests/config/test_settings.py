"""Tests for engine settings and logging configuration."""

import pytest

from neo_storage.config.logging_config import LogFormat, LoggingConfig, get_log_level_from_verbosity
from neo_storage.config.settings import StorageEngineSettings, load_settings
from neo_storage.core.exceptions import ConfigurationError


class TestLoadSettings:

    def test_defaults(self):
        settings = load_settings(_env_file=None)

        assert settings.recycle_retention_days == 30
        assert settings.recycle_notify_days == 7
        assert settings.recycle_eviction_target_ratio == 0.9
        assert settings.database_schema == "storage"
        assert isinstance(settings, StorageEngineSettings)

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("NEO_STORAGE_RECYCLE_RETENTION_DAYS", "14")
        monkeypatch.setenv("NEO_STORAGE_SWEEP_BATCH_SIZE", "25")

        settings = load_settings(_env_file=None)

        assert settings.recycle_retention_days == 14
        assert settings.sweep_batch_size == 25

    def test_explicit_overrides_win(self, monkeypatch):
        monkeypatch.setenv("NEO_STORAGE_LOCK_TIMEOUT_SECONDS", "9")

        assert load_settings(_env_file=None, lock_timeout_seconds=0.5).lock_timeout_seconds == 0.5

    @pytest.mark.parametrize("overrides", [
        {"recycle_eviction_target_ratio": 0},
        {"recycle_eviction_target_ratio": 1.5},
        {"recycle_notify_days": 30},
        {"recycle_retention_days": 0},
        {"database_schema": "files; drop"},
    ])
    def test_invalid_values(self, overrides):
        with pytest.raises(ConfigurationError) as exc_info:
            load_settings(_env_file=None, **overrides)

        assert exc_info.value.details["errors"]


class TestLoggingConfig:

    def test_verbosity_mapping(self):
        assert get_log_level_from_verbosity("quiet") == "ERROR"
        assert get_log_level_from_verbosity("verbose") == "INFO"
        assert get_log_level_from_verbosity("unknown") == "WARNING"

    def test_explicit_level_and_format(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "debug")
        monkeypatch.setenv("LOG_FORMAT", "json")

        config = LoggingConfig.build()

        assert config["loggers"]["neo_storage"]["level"] == "DEBUG"
        assert config["formatters"]["default"]["format"].startswith('{"time"')
        assert config["loggers"]["neo_storage.infrastructure.locking"]["level"] == "DEBUG"
        assert config["loggers"]["asyncpg"]["level"] == "ERROR"

    def test_bad_values_fall_back(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "LOUD")
        monkeypatch.setenv("LOG_FORMAT", "xml")

        config = LoggingConfig.build()

        assert config["loggers"]["neo_storage"]["level"] == "WARNING"
        assert config["formatters"]["default"]["format"] == LoggingConfig.FORMATS[LogFormat.SIMPLE]
