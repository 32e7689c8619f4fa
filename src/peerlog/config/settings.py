"""Application settings loaded from dbconfig.yaml and PEERLOG_* environment variables."""

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import AliasChoices, BaseModel, Field, ValidationError, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from peerlog.domain.exceptions import ConfigError

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "PEERLOG_CONFIG"
CONFIG_FILE_NAME = "dbconfig.yaml"


class DatabaseSettings(BaseModel):
    """Store location, pool bounds and durability mode."""

    # Hey future me - EXECUTION_DB_PATH is the key older dbconfig.yaml files use.
    # load_settings() lower-cases file keys, so the file spelling arrives as
    # execution_db_path; the upper-case form is for direct construction.
    path: Path = Field(
        validation_alias=AliasChoices("path", "execution_db_path", "EXECUTION_DB_PATH")
    )
    max_open_connections: int = Field(default=1000, ge=1)
    max_idle_connections: int = Field(default=500, ge=1)
    wal_mode: bool = True
    busy_timeout_ms: int = Field(default=5000, ge=0)
    echo: bool = False

    @model_validator(mode="after")
    def _check_pool_bounds(self) -> "DatabaseSettings":
        if self.max_idle_connections > self.max_open_connections:
            raise ValueError(
                "max_idle_connections cannot exceed max_open_connections "
                f"({self.max_idle_connections} > {self.max_open_connections})"
            )
        return self

    @property
    def url(self) -> str:
        """SQLAlchemy async URL for the store file."""
        return f"sqlite+aiosqlite:///{self.path}"


class RetrySettings(BaseModel):
    """Bounds for retrying writes that hit "database is locked"."""

    max_attempts: int = Field(default=3, ge=1)
    initial_delay: float = Field(default=0.1, ge=0)
    backoff_factor: float = Field(default=2.0, ge=1.0)
    max_delay: float = Field(default=1.0, ge=0)


class Settings(BaseSettings):
    """Top-level settings.

    Precedence (highest first): PEERLOG_* environment variables, then values
    passed to the constructor (which is how the YAML file is fed in).
    """

    model_config = SettingsConfigDict(
        env_prefix="PEERLOG_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    app_name: str = "peerlog"
    log_level: str = "INFO"
    log_json_format: bool = False
    database: DatabaseSettings
    retry: RetrySettings = Field(default_factory=RetrySettings)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return env_settings, init_settings


def find_config_file(config_file: str | Path | None = None) -> Path:
    """Locate the YAML config file.

    Search order: explicit argument, $PEERLOG_CONFIG, ./dbconfig.yaml,
    ../dbconfig.yaml.

    Raises:
        ConfigError: If no candidate exists.
    """
    if config_file is not None:
        candidates = [Path(config_file)]
    elif os.environ.get(CONFIG_ENV_VAR):
        candidates = [Path(os.environ[CONFIG_ENV_VAR])]
    else:
        candidates = [Path.cwd() / CONFIG_FILE_NAME, Path.cwd().parent / CONFIG_FILE_NAME]

    for candidate in candidates:
        if candidate.is_file():
            return candidate

    searched = ", ".join(str(c) for c in candidates)
    raise ConfigError(f"Configuration file not found (searched: {searched})")


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        with path.open(encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except OSError as exc:
        raise ConfigError(f"Unable to read configuration file '{path}': {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in configuration file '{path}': {exc}") from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(
            f"Configuration file '{path}' must contain a mapping, got {type(data).__name__}"
        )
    return data


def _lower_keys(data: Any) -> Any:
    """Lower-case mapping keys at every level; config keys are case-insensitive."""
    if isinstance(data, dict):
        return {
            (key.lower() if isinstance(key, str) else key): _lower_keys(value)
            for key, value in data.items()
        }
    return data


def load_settings(config_file: str | Path | None = None) -> Settings:
    """Discover, parse and validate settings.

    Raises:
        ConfigError: If the file is missing, unreadable, or fails validation.
    """
    path = find_config_file(config_file)
    data = _lower_keys(_read_yaml(path))

    try:
        settings = Settings(**data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration in '{path}': {exc}") from exc

    logger.debug("Loaded settings from %s (database: %s)", path, settings.database.path)
    return settings
