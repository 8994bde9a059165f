"""
Configuration management for fleetdock.

Uses Pydantic Settings for environment variable validation and type safety.
"""

from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from fleetdock.runtime.models import HostDescriptor


class DockerHostsConfig(BaseSettings):
    """Runtime endpoint configuration."""

    hosts: str = Field(
        default="local=unix:///var/run/docker.sock",
        description="Comma-separated name=uri pairs (unix://, tcp://, ssh://)"
    )
    timeout: int = Field(
        default=60,
        ge=1,
        description="Per-request timeout towards each endpoint in seconds"
    )
    use_ssh_client: bool = Field(
        default=True,
        description="Tunnel ssh:// endpoints through the system ssh binary"
    )

    @field_validator("hosts")
    @classmethod
    def validate_hosts(cls, v: str) -> str:
        """Validate every entry is a name=uri pair with a unique name."""
        seen = set()
        for item in v.split(","):
            item = item.strip()
            if not item:
                continue
            name, sep, uri = item.partition("=")
            if not sep or not name.strip() or not uri.strip():
                raise ValueError(f"Invalid host entry '{item}', expected name=uri")
            if name.strip() in seen:
                raise ValueError(f"Duplicate host name '{name.strip()}'")
            seen.add(name.strip())
        return v

    def descriptors(self) -> List[HostDescriptor]:
        """
        Parse the configured hosts into descriptors.

        Returns:
            Host descriptors in configuration order
        """
        result = []
        for item in self.hosts.split(","):
            item = item.strip()
            if not item:
                continue
            name, _, uri = item.partition("=")
            result.append(HostDescriptor(name=name.strip(), endpoint_uri=uri.strip()))
        return result

    class Config:
        env_prefix = "DOCKER_"


class AlertsConfig(BaseSettings):
    """Alert monitor configuration."""

    enabled: bool = Field(
        default=False,
        description="Enable periodic alert monitoring"
    )
    cpu_threshold: float = Field(
        default=80.0,
        ge=0.0,
        description="CPU percent above which a cpu_threshold alert is raised"
    )
    memory_threshold: float = Field(
        default=90.0,
        ge=0.0,
        le=100.0,
        description="Memory percent above which a memory_threshold alert is raised"
    )
    check_interval: float = Field(
        default=30.0,
        ge=1.0,
        description="Seconds between two scans"
    )
    webhook_url: Optional[str] = Field(
        default=None,
        description="Webhook receiving a JSON envelope for every new alert"
    )
    webhook_timeout: float = Field(
        default=10.0,
        gt=0.0,
        description="Webhook request timeout in seconds"
    )
    history_size: int = Field(
        default=100,
        ge=1,
        description="Number of alerts kept in memory"
    )

    class Config:
        env_prefix = "ALERTS_"


class AppConfig(BaseSettings):
    """Main application configuration."""

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)"
    )
    read_only: bool = Field(
        default=False,
        alias="READONLY_MODE",
        description="Disable mutating operations (reconcile, start, stop, remove)"
    )

    # Nested configurations
    docker: DockerHostsConfig = Field(default_factory=DockerHostsConfig)
    alerts: AlertsConfig = Field(default_factory=AlertsConfig)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v = v.upper()
        if v not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        populate_by_name = True
        extra = "ignore"


# Global config instance
_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """
    Get the global configuration instance.

    Lazily loads configuration on first access.

    Returns:
        AppConfig: The global configuration instance
    """
    global _config
    if _config is None:
        _config = AppConfig(
            docker=DockerHostsConfig(),
            alerts=AlertsConfig(),
        )
    return _config


def reload_config() -> AppConfig:
    """
    Reload configuration from environment variables.

    Useful for testing or when environment changes.

    Returns:
        AppConfig: The reloaded configuration instance
    """
    global _config
    _config = None
    return get_config()
