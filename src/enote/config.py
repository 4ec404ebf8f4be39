"""Configuration module for the ENote backend."""

import logging
import os
from pathlib import Path
from typing import Any, Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

from enote import __version__
from enote.exceptions import ConfigurationError, ErrorCode

# Load environment variables from the project root .env file.
# Anchored to __file__ so it works regardless of the process CWD.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

# User-level config, lives alongside the default database
_USER_ENV = Path.home() / ".enote" / ".env"
load_dotenv(_USER_ENV)


logger = logging.getLogger(__name__)

# Keys of the key-value settings source and the config field each one feeds
SETTINGS_KEYS = {
    "datasource.url": "database_url",
    "datasource.max-connections": "max_connections",
    "datasource.min-connections": "min_connections",
    "datasource.connect_timeout": "connect_timeout",
    "datasource.acquire-timeout": "acquire_timeout",
    "datasource.idle-time": "idle_timeout",
    "datasource.max-lifetime": "max_lifetime",
}


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


class ENoteConfig(BaseModel):
    """Configuration for the ENote backend."""

    # Base directory for relative paths
    base_dir: Path = Field(
        default_factory=lambda: Path(os.getenv("ENOTE_BASE_DIR", "."))
    )
    # Database configuration. database_url wins over database_path when set.
    database_path: Path = Field(
        default_factory=lambda: Path(
            os.getenv("ENOTE_DATABASE_PATH", "data/db/enote.db")
        )
    )
    database_url: Optional[str] = Field(
        default_factory=lambda: os.getenv("ENOTE_DATABASE_URL") or None
    )
    # Connection pool configuration (timeouts in seconds)
    max_connections: int = Field(
        default_factory=lambda: int(os.getenv("ENOTE_MAX_CONNECTIONS", "20"))
    )
    min_connections: int = Field(
        default_factory=lambda: int(os.getenv("ENOTE_MIN_CONNECTIONS", "2"))
    )
    connect_timeout: int = Field(
        default_factory=lambda: int(os.getenv("ENOTE_CONNECT_TIMEOUT", "10"))
    )
    acquire_timeout: int = Field(
        default_factory=lambda: int(os.getenv("ENOTE_ACQUIRE_TIMEOUT", "5"))
    )
    idle_timeout: int = Field(
        default_factory=lambda: int(os.getenv("ENOTE_IDLE_TIMEOUT", "300"))
    )
    max_lifetime: int = Field(
        default_factory=lambda: int(os.getenv("ENOTE_MAX_LIFETIME", "1800"))
    )
    # Mirror notes into an FTS5 index (SQLite only)
    fts_enabled: bool = Field(
        default_factory=lambda: _env_flag("ENOTE_FTS_ENABLED", "true")
    )
    # Debug mode exposes storage/internal error details to the caller
    debug: bool = Field(default_factory=lambda: _env_flag("ENOTE_DEBUG", "false"))
    # Logging configuration
    log_dir: Optional[Path] = Field(
        default_factory=lambda: (
            Path(os.getenv("ENOTE_LOG_DIR")) if os.getenv("ENOTE_LOG_DIR") else None
        )
    )
    log_level: str = Field(
        default_factory=lambda: os.getenv("ENOTE_LOG_LEVEL", "INFO").upper()
    )
    # Server configuration
    server_name: str = Field(default=os.getenv("ENOTE_SERVER_NAME", "enote"))
    server_version: str = Field(default=__version__)

    @model_validator(mode="after")
    def _validate_pool_config(self) -> "ENoteConfig":
        """Validate connection pool settings."""
        if self.min_connections < 1:
            raise ValueError("min_connections must be >= 1")
        if self.max_connections < self.min_connections:
            raise ValueError("max_connections must be >= min_connections")
        for name in ("connect_timeout", "acquire_timeout", "idle_timeout", "max_lifetime"):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be >= 1 second")
        return self

    @classmethod
    def from_settings(cls, settings: Mapping[str, Any], **overrides: Any) -> "ENoteConfig":
        """Build a config from a flat key-value settings source.

        Recognised keys are listed in SETTINGS_KEYS (``datasource.url``,
        ``datasource.max-connections`` ...). Absent keys fall back to the
        environment/default values; unknown keys are ignored.

        Raises:
            ConfigurationError: If a value cannot be converted or the
                resulting pool settings are inconsistent.
        """
        values = dict(overrides)
        for key, field_name in SETTINGS_KEYS.items():
            if key in settings and settings[key] is not None:
                values[field_name] = settings[key]
        try:
            return cls(**values)
        except ValueError as e:
            raise ConfigurationError(
                f"Invalid datasource settings: {e}",
                code=ErrorCode.CONFIG_INVALID,
            ) from e

    def get_absolute_path(self, path: Path) -> Path:
        """Convert a relative path to an absolute path based on base_dir."""
        if path.is_absolute():
            return path
        return self.base_dir / path

    def get_db_url(self) -> str:
        """Get the database URL, defaulting to a SQLite file."""
        if self.database_url:
            return self.database_url
        db_path = self.get_absolute_path(self.database_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        return f"sqlite:///{db_path}"


# Create a global config instance
config = ENoteConfig()
