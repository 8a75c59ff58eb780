"""
Configuration management for the Batch QA Tracker application.

This module handles:
- Database location (SQLite file per environment, or an explicit URL)
- Environment-specific configuration (development vs. production)
- Logging level
- QA defaults (ingredient tolerance, cure ppm window)
"""

import logging
import os
from pathlib import Path
from typing import Optional

from .constants import (
    APP_NAME,
    APP_VERSION,
    DATABASE_FILENAME,
    DATABASE_VERSION,
    DEFAULT_CURE_PPM_MAX,
    DEFAULT_CURE_PPM_MIN,
    DEFAULT_CURE_PPM_TARGET,
    DEFAULT_TOLERANCE_PERCENTAGE,
)

logger = logging.getLogger(__name__)

ENV_PREFIX = "BATCH_QA_"


def _env_float(name: str, default: float) -> float:
    """Read a float from the environment, falling back to default on bad input."""
    raw = os.environ.get(f"{ENV_PREFIX}{name}")
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Invalid value for {ENV_PREFIX}{name}: '{raw}'. Using default {default}.")
        return default


class Config:
    """
    Application configuration manager.

    Handles database location, environment settings and QA defaults.
    """

    def __init__(self, environment: str = "production"):
        """
        Initialize configuration.

        Args:
            environment: Environment mode - 'production' or 'development'
        """
        self.environment = environment
        self._app_name = APP_NAME
        self._app_version = APP_VERSION
        self._database_version = DATABASE_VERSION

        if environment == "development":
            self._base_dir = self._get_project_data_dir()
        else:
            self._base_dir = self._get_user_data_dir()

        self._database_dir = self._base_dir
        self._database_path = self._database_dir / DATABASE_FILENAME
        self._database_url_override = os.environ.get(f"{ENV_PREFIX}DATABASE_URL")

    def _get_project_data_dir(self) -> Path:
        """
        Get the project's data directory for development.

        Returns:
            Path to project data/ directory
        """
        project_root = Path(__file__).parent.parent.parent
        return project_root / "data"

    def _get_user_data_dir(self) -> Path:
        """
        Get the per-user data directory for production.

        Returns:
            Path to ~/.batch_qa_tracker
        """
        return Path.home() / ".batch_qa_tracker"

    def ensure_directories(self) -> None:
        """Create the database directory if a file database is in use."""
        if self._database_url_override is None:
            self._database_dir.mkdir(parents=True, exist_ok=True)

    @property
    def app_name(self) -> str:
        """Application name."""
        return self._app_name

    @property
    def app_version(self) -> str:
        """Application version."""
        return self._app_version

    @property
    def database_version(self) -> str:
        """Database schema version."""
        return self._database_version

    @property
    def database_path(self) -> Path:
        """Full path to the SQLite database file."""
        return self._database_path

    @property
    def database_url(self) -> str:
        """
        SQLAlchemy database URL.

        BATCH_QA_DATABASE_URL wins over the per-environment SQLite file.

        Returns:
            Database URL string for SQLAlchemy
        """
        if self._database_url_override:
            return self._database_url_override
        db_path_str = str(self._database_path).replace("\\", "/")
        return f"sqlite:///{db_path_str}"

    @property
    def log_level(self) -> str:
        """Logging level name for the CLI (BATCH_QA_LOG_LEVEL, default INFO)."""
        level = os.environ.get(f"{ENV_PREFIX}LOG_LEVEL", "INFO").upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            logger.warning(f"Invalid log level '{level}'. Using INFO.")
            return "INFO"
        return level

    @property
    def default_tolerance_percentage(self) -> float:
        """Tolerance applied to recipe lines that do not declare one."""
        return _env_float("DEFAULT_TOLERANCE", DEFAULT_TOLERANCE_PERCENTAGE)

    @property
    def cure_ppm_min(self) -> float:
        """Lowest acceptable cure concentration in ppm."""
        return _env_float("CURE_PPM_MIN", DEFAULT_CURE_PPM_MIN)

    @property
    def cure_ppm_target(self) -> float:
        """Cure concentration recipes aim for, in ppm."""
        return _env_float("CURE_PPM_TARGET", DEFAULT_CURE_PPM_TARGET)

    @property
    def cure_ppm_max(self) -> float:
        """Highest acceptable cure concentration in ppm."""
        return _env_float("CURE_PPM_MAX", DEFAULT_CURE_PPM_MAX)

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == "production"

    def database_exists(self) -> bool:
        """
        Check if the SQLite database file exists.

        Returns:
            True for an explicit database URL, else whether the file exists
        """
        if self._database_url_override:
            return True
        return self._database_path.exists()

    def __repr__(self) -> str:
        """String representation of config."""
        return f"Config(environment='{self.environment}', database_url='{self.database_url}')"


_config_instance: Optional[Config] = None


def get_config(environment: Optional[str] = None) -> Config:
    """
    Get the global configuration instance.

    Once created, the singleton's environment cannot be changed by passing
    a different environment argument.

    Args:
        environment: Optional environment for initial creation. If None, uses
                    BATCH_QA_ENV or defaults to production. Ignored if
                    singleton already exists.

    Returns:
        Config instance
    """
    global _config_instance

    if _config_instance is None:
        if environment is None:
            environment = os.environ.get(f"{ENV_PREFIX}ENV", "production")
        _config_instance = Config(environment)
    elif environment is not None and environment != _config_instance.environment:
        logger.warning(
            f"get_config() called with environment='{environment}' but singleton "
            f"already exists with environment='{_config_instance.environment}'. "
            f"Returning existing singleton."
        )

    return _config_instance


def reset_config():
    """
    Reset the global configuration instance.

    Useful for testing.
    """
    global _config_instance
    _config_instance = None


def get_database_url() -> str:
    """
    Get the database URL.

    Returns:
        SQLAlchemy database URL string
    """
    return get_config().database_url
