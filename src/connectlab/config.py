"""Configuration settings and loading."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from connectlab.errors import ConfigurationError, ErrorContext


class Settings(BaseSettings):
    """Settings for one ephemeral test environment."""

    model_config = SettingsConfigDict(
        env_prefix="CONNECTLAB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    port_range_start: int = 10000
    port_range_end: int = 60000
    port_attempts: int = 100
    check_bindable: bool = True

    network_prefix: str = "connectlab"
    docker_timeout: float = 120.0
    request_timeout: float = 5.0

    broker_image: str = "docker.redpanda.com/redpandadata/redpanda:v23.2.18"
    broker_timeout: float = 60.0
    broker_poll_interval: float = 0.1

    connect_image: str = "docker.cloudsmith.io/redpanda/connectors-unsupported/connectors:v1.0.0-3d7ab4d"
    connect_timeout: float = 300.0
    connect_poll_interval: float = 0.5
    connect_heap_opts: str = "-Xms512M -Xmx512M"
    connect_log_level: str = "info"

    target_image: str = "kennethreitz/httpbin"
    target_timeout: float = 60.0
    target_poll_interval: float = 0.1

    cluster_name: str = "redpanda_connect"

    @field_validator(
        "docker_timeout",
        "request_timeout",
        "broker_timeout",
        "connect_timeout",
        "target_timeout",
        "broker_poll_interval",
        "connect_poll_interval",
        "target_poll_interval",
    )
    @classmethod
    def validate_positive(cls, v: float, info: Any) -> float:
        if v <= 0:
            raise ConfigurationError(
                message=f"{info.field_name} must be positive",
                context=ErrorContext(extra={"field": info.field_name, "value": v}),
            )
        return v

    @model_validator(mode="after")
    def validate_port_range(self) -> Settings:
        if not 0 < self.port_range_start < self.port_range_end <= 65536:
            raise ConfigurationError(
                message=(
                    f"Invalid port range [{self.port_range_start}, {self.port_range_end})"
                ),
                context=ErrorContext(
                    extra={"start": self.port_range_start, "end": self.port_range_end}
                ),
            )
        if self.port_attempts < 1:
            raise ConfigurationError(
                message="port_attempts must be at least 1",
                context=ErrorContext(extra={"value": self.port_attempts}),
            )
        return self


class ConnectCluster(BaseModel):
    """A named Kafka Connect cluster and its base URL."""

    name: str
    url: str


class ConnectConfig(BaseModel):
    """Registry of Kafka Connect clusters the control plane talks to."""

    enabled: bool = False
    clusters: list[ConnectCluster] = Field(default_factory=list)

    def cluster(self, name: str) -> ConnectCluster | None:
        for cluster in self.clusters:
            if cluster.name == name:
                return cluster
        return None


def load_settings(config_path: str | Path | None = None) -> Settings:
    """Load settings from an optional YAML file and the environment.

    Priority: env vars > config file > defaults

    Raises:
        ConfigurationError: If the file cannot be parsed or is not a mapping.
    """
    file_data: dict[str, Any] = {}

    if config_path is not None:
        config_path = Path(config_path)
        if not config_path.exists():
            raise ConfigurationError(
                message=f"Configuration file not found: {config_path}",
                context=ErrorContext(extra={"path": str(config_path)}),
            )
        try:
            with open(config_path) as f:
                loaded = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(
                message=f"Failed to parse YAML configuration: {e}",
                context=ErrorContext(extra={"path": str(config_path)}),
                cause=e,
            ) from e
        if loaded is None:
            loaded = {}
        if not isinstance(loaded, dict):
            raise ConfigurationError(
                message=f"Configuration must be a YAML object, got {type(loaded).__name__}",
                context=ErrorContext(extra={"path": str(config_path)}),
            )
        file_data = loaded

    # Environment variables win over the file.
    env_settings = Settings()
    merged = {k: v for k, v in file_data.items() if k not in env_settings.model_fields_set}
    if not merged:
        return env_settings
    return Settings.model_validate({**env_settings.model_dump(), **merged})


__all__ = ["ConnectCluster", "ConnectConfig", "Settings", "load_settings"]
