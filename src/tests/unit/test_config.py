"""Unit tests for Config class configuration properties.

Each property is tested for:
- Default values when no environment variables set
- Environment variable overrides
- Invalid value handling (fallback to defaults with warning)
"""

import logging
from pathlib import Path

import pytest

from src.utils.config import Config, get_config, get_database_url, reset_config


class TestDatabaseLocation:
    """Tests for database location properties."""

    def setup_method(self):
        """Reset config singleton before each test."""
        reset_config()

    def teardown_method(self):
        """Clean up after each test."""
        reset_config()

    def test_production_uses_home_directory(self):
        """Production databases live under the user's home directory."""
        config = Config("production")
        assert config.database_path.parent == Path.home() / ".batch_qa_tracker"
        assert config.database_url.startswith("sqlite:///")

    def test_development_uses_project_data_dir(self):
        """Development databases live in the project's data/ directory."""
        config = Config("development")
        assert config.database_path.parent.name == "data"
        assert config.is_development
        assert not config.is_production

    def test_database_url_env_override(self, monkeypatch):
        """BATCH_QA_DATABASE_URL wins over the SQLite file."""
        monkeypatch.setenv("BATCH_QA_DATABASE_URL", "postgresql://qa@localhost/batch_qa")
        config = Config()
        assert config.database_url == "postgresql://qa@localhost/batch_qa"

    def test_get_database_url_uses_singleton(self, monkeypatch):
        """get_database_url reads the global configuration."""
        monkeypatch.setenv("BATCH_QA_DATABASE_URL", "sqlite:///:memory:")
        assert get_database_url() == "sqlite:///:memory:"


class TestQADefaults:
    """Tests for QA default properties."""

    def test_defaults(self):
        """Defaults apply when no environment variables are set."""
        config = Config()
        assert config.default_tolerance_percentage == 5.0
        assert config.cure_ppm_min == 110.0
        assert config.cure_ppm_target == 125.0
        assert config.cure_ppm_max == 125.0

    def test_env_overrides(self, monkeypatch):
        """QA defaults can be overridden via environment variables."""
        monkeypatch.setenv("BATCH_QA_DEFAULT_TOLERANCE", "2.5")
        monkeypatch.setenv("BATCH_QA_CURE_PPM_TARGET", "120")
        config = Config()
        assert config.default_tolerance_percentage == 2.5
        assert config.cure_ppm_target == 120.0

    def test_invalid_value_uses_default(self, monkeypatch, caplog):
        """Invalid values fall back to the default with a warning."""
        monkeypatch.setenv("BATCH_QA_CURE_PPM_MIN", "plenty")
        with caplog.at_level(logging.WARNING):
            assert Config().cure_ppm_min == 110.0
        assert "Invalid value for BATCH_QA_CURE_PPM_MIN" in caplog.text


class TestLogLevel:
    """Tests for the log level property."""

    def test_default_info(self):
        assert Config().log_level == "INFO"

    def test_env_override_is_case_insensitive(self, monkeypatch):
        monkeypatch.setenv("BATCH_QA_LOG_LEVEL", "debug")
        assert Config().log_level == "DEBUG"

    def test_invalid_uses_info(self, monkeypatch, caplog):
        monkeypatch.setenv("BATCH_QA_LOG_LEVEL", "chatty")
        with caplog.at_level(logging.WARNING):
            assert Config().log_level == "INFO"
        assert "Invalid log level" in caplog.text


class TestSingleton:
    """Tests for the configuration singleton."""

    def setup_method(self):
        reset_config()

    def teardown_method(self):
        reset_config()

    def test_environment_from_env(self, monkeypatch):
        monkeypatch.setenv("BATCH_QA_ENV", "development")
        assert get_config().environment == "development"

    def test_same_instance_returned(self):
        assert get_config() is get_config()

    def test_mismatched_environment_warns(self, caplog):
        get_config("production")
        with caplog.at_level(logging.WARNING):
            config = get_config("development")
        assert config.environment == "production"
        assert "Returning existing singleton" in caplog.text

    @pytest.mark.parametrize("environment", ["production", "development"])
    def test_repr(self, environment):
        assert f"environment='{environment}'" in repr(Config(environment))
