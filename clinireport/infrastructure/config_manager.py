"""Configuration Manager for Secure Credential Handling.

This module provides the configuration manager for database connection
settings. Clinical databases hold patient data, so credentials are treated as
secrets end to end.

Security Impact:
    - Credentials are never logged or exposed in error messages
    - Supports environment variables, a .env file and JSON config files
    - Validates configuration before use

Architecture:
    - Infrastructure layer, isolated from the domain
    - Type-safe configuration using Pydantic models
    - Fail-fast validation prevents runtime errors
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional
from urllib.parse import parse_qs, quote_plus, unquote, urlparse

from dotenv import load_dotenv
from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator

logger = logging.getLogger(__name__)

SUPPORTED_DB_TYPES = ("duckdb", "postgresql")

ENV_PREFIX = "CR_"


class DatabaseConfig(BaseModel):
    """Database configuration model with secure credential handling.

    Security Impact:
        - Passwords and connection strings are stored as SecretStr (never logged)
        - Connection strings are validated before use

    Parameters:
        db_type: Type of database ('duckdb' or 'postgresql')
        db_path: Path to database file (DuckDB only; ':memory:' for in-memory)
        host: Database host (PostgreSQL)
        port: Database port (PostgreSQL)
        database: Database name (PostgreSQL)
        username: Database username
        password: Database password (SecretStr - never logged)
        connection_string: Full connection string (SecretStr - never logged)
        ssl_mode: SSL mode for secure connections
        pool_size: Connection pool size
        max_overflow: Maximum connection pool overflow
    """

    db_type: str = Field("duckdb", description="Database type (duckdb, postgresql)")
    db_path: Optional[str] = Field(None, description="Path to database file (for DuckDB)")
    host: Optional[str] = Field(None, description="Database host")
    port: Optional[int] = Field(None, description="Database port")
    database: Optional[str] = Field(None, description="Database name")
    username: Optional[str] = Field(None, description="Database username")
    password: Optional[SecretStr] = Field(None, description="Database password (secret)")
    connection_string: Optional[SecretStr] = Field(None, description="Full connection string (secret)")
    ssl_mode: Optional[str] = Field(None, description="SSL mode (require, prefer, disable)")
    pool_size: int = Field(default=5, ge=1, description="Connection pool size")
    max_overflow: int = Field(default=10, ge=0, description="Maximum connection pool overflow")

    @field_validator("db_type")
    @classmethod
    def validate_db_type(cls, v: str) -> str:
        """Validate database type."""
        if v.lower() not in SUPPORTED_DB_TYPES:
            raise ValueError(f"Unsupported database type: {v}. Supported: {list(SUPPORTED_DB_TYPES)}")
        return v.lower()

    @field_validator("db_path")
    @classmethod
    def validate_db_path(cls, v: Optional[str]) -> Optional[str]:
        """Validate the database directory exists (the file may not exist yet)."""
        if v is None or v == ":memory:":
            return v

        db_path_obj = Path(v)
        if not db_path_obj.parent.exists():
            raise ValueError(f"Database directory does not exist: {db_path_obj.parent}")

        return str(db_path_obj)

    @staticmethod
    def _parse_postgresql_connection_string(conn_str: str) -> Dict[str, Any]:
        """Parse a PostgreSQL connection string into individual components.

        Supports postgresql:// and postgres:// schemes with an optional
        ?sslmode= query parameter.
        """
        parsed = urlparse(conn_str)

        if parsed.scheme not in ('postgresql', 'postgres'):
            raise ValueError(f"Unsupported connection string scheme: {parsed.scheme}")

        query_params = parse_qs(parsed.query)
        return {
            'host': parsed.hostname,
            'port': parsed.port,
            'database': parsed.path.lstrip('/') or None,
            'username': unquote(parsed.username) if parsed.username else None,
            'password': unquote(parsed.password) if parsed.password else None,
            'ssl_mode': query_params['sslmode'][0] if 'sslmode' in query_params else None,
        }

    @model_validator(mode='after')
    def sync_connection_string_and_fields(self) -> 'DatabaseConfig':
        """Keep connection_string and the individual fields in sync.

        The connection string always wins: when present, its components
        override the individual fields. When absent, it is built from them.
        """
        if self.db_type != "postgresql":
            return self

        if self.connection_string:
            try:
                parsed = self._parse_postgresql_connection_string(self.connection_string.get_secret_value())
            except ValueError as e:
                logger.warning(f"Failed to parse connection string, using as-is: {str(e)}")
                return self

            for field_name in ('host', 'port', 'database', 'username', 'ssl_mode'):
                if parsed.get(field_name):
                    setattr(self, field_name, parsed[field_name])
            if parsed.get('password'):
                self.password = SecretStr(parsed['password'])

        elif self.host and self.database:
            self.connection_string = SecretStr(self._build_connection_string())

        return self

    def _build_connection_string(self, scheme: str = "postgresql") -> str:
        """Construct a URL-encoded connection string from the individual fields."""
        password_part = ""
        if self.password:
            password_part = f":{quote_plus(self.password.get_secret_value())}"

        username_part = quote_plus(self.username) if self.username else ""
        credentials = f"{username_part}{password_part}@" if (username_part or password_part) else ""

        ssl_part = f"?sslmode={self.ssl_mode}" if self.ssl_mode else ""

        return f"{scheme}://{credentials}{self.host}:{self.port or 5432}/{self.database}{ssl_part}"

    def get_connection_string(self) -> str:
        """Get connection string for database.

        Security Impact:
            - Password is retrieved from SecretStr but not logged
        """
        if self.connection_string:
            return self.connection_string.get_secret_value()

        if self.db_type == "duckdb":
            return self.db_path or ":memory:"

        if not all([self.host, self.database]):
            raise ValueError(f"{self.db_type} requires host and database")
        return self._build_connection_string()

    def describe(self) -> str:
        """Human-readable target without credentials."""
        if self.db_type == "duckdb":
            return f"duckdb:{self.db_path or ':memory:'}"
        return f"postgresql://{self.host}:{self.port or 5432}/{self.database}"


class ConfigManager:
    """Configuration manager for database credentials and settings.

    Security Impact:
        - Credentials are loaded from trusted sources
        - No credential data is logged or exposed
        - Configuration is validated before use

    Example Usage:
        ```python
        config = ConfigManager.from_environment()
        db_config = config.get_database_config()

        config = ConfigManager.from_file("config.json")
        db_config = config.get_database_config()
        ```
    """

    def __init__(self, config_data: Dict[str, Any]):
        self._config_data = config_data
        self._database_config: Optional[DatabaseConfig] = None

    @classmethod
    def from_environment(cls, env_file: Optional[Path] = None) -> 'ConfigManager':
        """Load configuration from environment variables.

        Environment Variables:
            - CR_DB_TYPE: Database type (duckdb, postgresql)
            - CR_DB_PATH: Path to database file (for DuckDB)
            - CR_DB_HOST: Database host
            - CR_DB_PORT: Database port
            - CR_DB_NAME: Database name
            - CR_DB_USER: Database username
            - CR_DB_PASSWORD: Database password (secret)
            - CR_DB_CONNECTION_STRING: Full connection string (secret)
            - CR_DB_SSL_MODE: SSL mode

        Parameters:
            env_file: .env file to load first (defaults to the project root .env).
                Variables already set in the environment are not overridden.
        """
        env_path = env_file or Path(__file__).parent.parent.parent / ".env"
        if env_path.exists():
            load_dotenv(env_path)
            logger.debug(f"Loaded environment variables from {env_path}")

        def env(name: str) -> Optional[str]:
            return os.getenv(f"{ENV_PREFIX}{name}") or None

        port = env("DB_PORT")
        config_data = {
            "database": {
                "db_type": env("DB_TYPE") or "duckdb",
                "db_path": env("DB_PATH"),
                "host": env("DB_HOST"),
                "port": int(port) if port else None,
                "database": env("DB_NAME"),
                "username": env("DB_USER"),
                "password": env("DB_PASSWORD"),
                "connection_string": env("DB_CONNECTION_STRING"),
                "ssl_mode": env("DB_SSL_MODE"),
            }
        }

        return cls(config_data)

    @classmethod
    def from_file(cls, config_path: str) -> 'ConfigManager':
        """Load configuration from a JSON file.

        Security Impact:
            - Warns when the file is readable by group/others (credential files should be 600)

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config file is not valid JSON
        """
        config_file = Path(config_path)
        if not config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        if config_file.stat().st_mode & 0o077 != 0:
            logger.warning(
                f"Configuration file has overly permissive permissions: {config_path}. "
                "Consider setting to 600 for credential files."
            )

        try:
            with open(config_file, 'r', encoding='utf-8') as f:
                config_data = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in configuration file: {str(e)}")

        return cls(config_data)

    def get_database_config(self) -> DatabaseConfig:
        """Get the validated database configuration (cached)."""
        if self._database_config is None:
            db_config_data = dict(self._config_data.get("database", {}))
            db_config_data = {k: v for k, v in db_config_data.items() if v is not None}
            self._database_config = DatabaseConfig(**db_config_data)

        return self._database_config

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value using dot notation (e.g. "database.host")."""
        value = self._config_data

        for k in key.split("."):
            if isinstance(value, dict):
                value = value.get(k)
            else:
                return default

        return value if value is not None else default


def get_database_config() -> DatabaseConfig:
    """Load the database configuration from the environment.

    Defaults to an in-memory DuckDB database if nothing is configured.
    """
    return ConfigManager.from_environment().get_database_config()
