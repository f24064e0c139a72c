"""Configuration management for swapdeploy."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from swapdeploy.constants import (
    DEFAULT_COMMAND_TIMEOUT,
    DEFAULT_HEALTH_PATH,
    DEFAULT_MAX_RETRIES,
    DEFAULT_PROBE_TIMEOUT_SECONDS,
    DEFAULT_PULL_TIMEOUT,
    DEFAULT_RESTART_POLICY,
    DEFAULT_RETRY_INTERVAL_SECONDS,
)


class Settings(BaseSettings):
    """Deployment defaults loaded from ``SWAPDEPLOY_*`` environment variables.

    Command-line flags override these per run.
    """

    model_config = SettingsConfigDict(
        env_prefix="SWAPDEPLOY_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Container runtime
    docker_binary: str = Field(default="docker", description="Container runtime CLI")
    pull_timeout: int = Field(
        default=DEFAULT_PULL_TIMEOUT, gt=0, description="Seconds allowed for an image pull"
    )
    command_timeout: int = Field(
        default=DEFAULT_COMMAND_TIMEOUT,
        gt=0,
        description="Seconds allowed for run/stop/rm/inspect/prune",
    )

    # Health checks
    health_path: str = Field(default=DEFAULT_HEALTH_PATH, description="Health endpoint path")
    max_retries: int = Field(default=DEFAULT_MAX_RETRIES, gt=0, description="Probe attempts")
    retry_interval: float = Field(
        default=DEFAULT_RETRY_INTERVAL_SECONDS, ge=0, description="Seconds between probes"
    )
    probe_timeout: float = Field(
        default=DEFAULT_PROBE_TIMEOUT_SECONDS, gt=0, description="Per-probe timeout in seconds"
    )

    # Promoted instance
    restart_policy: str | None = Field(
        default=DEFAULT_RESTART_POLICY, description="Restart policy for the promoted container"
    )
    prune_label: str | None = Field(
        default=None, description="Label filter for post-promotion image prune"
    )

    # Application
    environment: str = Field(default="production", description="Environment name")
    log_level: str = Field(default="INFO", description="Logging level")

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment.lower() == "development"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
