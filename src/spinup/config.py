"""Spinup configuration using pydantic-settings.

Configuration hierarchy:
- DockerConfig: Container runtime connection settings
- PortConfig: Host port range and probe behavior
- RuntimeConfig: Naming, images and host layout
- StorageConfig: Metadata database settings
- BackupConfig: Backup destination policy
- LoggingConfig: Logging behavior
- SpinupConfig: Main config aggregating all sub-configs

Environment variable prefix: SPINUP_
Example: SPINUP_PORTS_RANGE_MIN=20000
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DockerConfig(BaseSettings):
    """Docker runtime connection configuration."""

    model_config = SettingsConfigDict(env_prefix="SPINUP_DOCKER_")

    host: str = Field(
        default="unix:///var/run/docker.sock",
        description="Docker daemon socket or TCP address",
    )
    api_timeout: float = Field(default=30.0, description="Docker API call timeout (seconds)")
    image_pull_timeout: float = Field(default=600.0, description="Image pull timeout (seconds)")
    pull_missing_images: bool = Field(
        default=True,
        description="Pull the engine image before container creation when absent locally",
    )


class PortConfig(BaseSettings):
    """Host port allocation configuration.

    Ports are scanned from range_min up to (not including) range_max.
    """

    model_config = SettingsConfigDict(env_prefix="SPINUP_PORTS_")

    range_min: int = Field(default=15000, ge=1, le=65535)
    range_max: int = Field(default=15100, ge=2, le=65536)
    probe_host: str = Field(default="localhost", description="Host dialed by the port probe")
    probe_timeout: float = Field(default=3.0, gt=0, description="Port probe timeout (seconds)")

    @model_validator(mode="after")
    def _check_range(self) -> "PortConfig":
        if self.range_min >= self.range_max:
            raise ValueError(
                f"port range is empty: range_min={self.range_min} range_max={self.range_max}"
            )
        return self


class RuntimeConfig(BaseSettings):
    """Runtime resource configuration.

    These settings define naming conventions, engine images and host layout.
    """

    model_config = SettingsConfigDict(env_prefix="SPINUP_RUNTIME_")

    architecture: Literal["amd64", "arm64v8", "arm32v7"] = Field(
        default="amd64",
        description="Architecture tag attached to provisioned instances",
    )
    project_dir: Path = Field(
        default=Path("/var/lib/spinup"),
        description="Root directory for per-host spinup state",
    )
    container_prefix: str = Field(
        default="spinup-postgres-",
        description="Prefix for engine container names",
    )
    postgres_image: str = Field(default="postgres:latest", description="Postgres engine image")
    postgres_port: int = Field(default=5432, description="Port postgres listens on in-container")
    postgres_data_dir: str = Field(
        default="/var/lib/postgresql/data",
        description="Mount target for the instance volume",
    )
    start_containers: bool = Field(
        default=True,
        description="Start containers after creation (otherwise leave them created)",
    )
    public_hostname: str = Field(
        default="localhost",
        description="Host name returned to clients in provisioning responses",
    )


class StorageConfig(BaseSettings):
    """Metadata database configuration."""

    model_config = SettingsConfigDict(env_prefix="SPINUP_STORAGE_")

    database_url: str | None = Field(
        default=None,
        description="SQLAlchemy async URL (defaults to sqlite under project_dir)",
    )
    operation_timeout: float = Field(
        default=3.0,
        gt=0,
        description="Deadline for a single persistence transaction (seconds)",
    )
    echo: bool = Field(default=False, description="Enable SQL query logging")


class BackupConfig(BaseSettings):
    """Backup destination policy."""

    model_config = SettingsConfigDict(env_prefix="SPINUP_BACKUP_")

    supported_providers: list[str] = Field(
        default=["AWS"],
        description="Destination providers accepted for backup schedules",
    )


class LoggingConfig(BaseSettings):
    """Logging configuration.

    Supports both text and JSON formats for different environments:
    - text: Human-readable for local development
    - json: Structured logging for production (log aggregation)
    """

    model_config = SettingsConfigDict(env_prefix="SPINUP_LOGGING_")

    level: str = Field(default="INFO", description="Log level (DEBUG, INFO, WARNING, ERROR)")
    format: str = Field(default="text", description="Log format (text, json)")
    service_name: str = Field(default="spinup", description="Service identifier in logs")


class SpinupConfig(BaseSettings):
    """Main configuration aggregating all sub-configs.

    Environment variable prefix: SPINUP_
    Sub-configs use their own prefixes (SPINUP_DOCKER_, SPINUP_PORTS_, etc.)
    """

    model_config = SettingsConfigDict(
        env_prefix="SPINUP_",
        env_nested_delimiter="__",
    )

    docker: DockerConfig = Field(default_factory=DockerConfig)
    ports: PortConfig = Field(default_factory=PortConfig)
    runtime: RuntimeConfig = Field(default_factory=RuntimeConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    backup: BackupConfig = Field(default_factory=BackupConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @property
    def database_url(self) -> str:
        if self.storage.database_url:
            return self.storage.database_url
        return f"sqlite+aiosqlite:///{self.runtime.project_dir / 'spinup.db'}"


@lru_cache
def get_config() -> SpinupConfig:
    """Load configuration once for process bootstrap.

    Components never call this; they receive config objects explicitly.
    """
    return SpinupConfig()
