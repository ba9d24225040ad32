"""Application Settings and Configuration.

This module provides application-wide settings that combine the database
configuration from the configuration manager with application defaults read
from the environment.
"""

import os
from typing import Optional

from clinireport import __version__
from clinireport.infrastructure.config_manager import ConfigManager, DatabaseConfig, get_database_config

# Application metadata
APP_NAME = "CliniReport"
APP_VERSION = __version__

# Rows shown per table by the inspection step
DEFAULT_PREVIEW_ROWS = 5

DEFAULT_REPORT_DIR = "reports"


class Settings:
    """Application settings loaded from configuration manager and environment.

    Security Impact:
        - Database credentials are managed via DatabaseConfig (SecretStr)
        - Sensitive values are never exposed in logs
    """

    def __init__(self):
        self._db_config: Optional[DatabaseConfig] = None
        self._config_manager: Optional[ConfigManager] = None

        self.app_name = os.getenv("CR_APP_NAME", APP_NAME)

        # Logging
        self.log_level = os.getenv("CR_LOG_LEVEL", "INFO")
        self.log_json = os.getenv("CR_LOG_JSON", "false").lower() == "true"

        # Inspection and report output
        self.preview_rows = int(os.getenv("CR_PREVIEW_ROWS", str(DEFAULT_PREVIEW_ROWS)))
        self.save_report = os.getenv("CR_SAVE_REPORT", "false").lower() == "true"
        self.report_dir = os.getenv("CR_REPORT_DIR", DEFAULT_REPORT_DIR)

    @property
    def db_config(self) -> DatabaseConfig:
        """Database configuration, loaded lazily on first access."""
        if self._db_config is None:
            self._db_config = get_database_config()
        return self._db_config

    @property
    def config_manager(self) -> ConfigManager:
        if self._config_manager is None:
            self._config_manager = ConfigManager.from_environment()
        return self._config_manager

    def get_db_path(self) -> str:
        """Get database path for DuckDB (':memory:' when unset)."""
        if self.db_config.db_type == "duckdb":
            return self.db_config.db_path or ":memory:"
        raise ValueError(f"Database type '{self.db_config.db_type}' does not use db_path")

    def reload(self) -> None:
        """Drop cached configuration so the next access re-reads the environment."""
        self.__init__()


# Global settings instance
settings = Settings()
