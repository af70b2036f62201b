"""Configuration management for the KubeFoundry engine."""

import os
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AuthMode(str, Enum):
    """Authentication mode for Kubernetes API."""

    AUTO = "auto"
    KUBECONFIG = "kubeconfig"
    TOKEN = "token"


class LogLevel(str, Enum):
    """Logging level."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


class KubeFoundryConfig(BaseSettings):
    """Configuration for the KubeFoundry engine.

    Configuration is loaded from environment variables with KUBEFOUNDRY_ prefix.
    """

    model_config = SettingsConfigDict(
        env_prefix="KUBEFOUNDRY_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Authentication settings
    auth_mode: AuthMode = Field(
        default=AuthMode.AUTO,
        description="Authentication mode: auto, kubeconfig, or token",
    )
    kubeconfig_path: Path | None = Field(
        default=None,
        description="Path to kubeconfig file (defaults to ~/.kube/config)",
    )
    kubeconfig_context: str | None = Field(
        default=None,
        description="Kubeconfig context to use",
    )
    api_server: str | None = Field(
        default=None,
        description="Kubernetes API server URL (for token auth)",
    )
    api_token: str | None = Field(
        default=None,
        description="Kubernetes API token (for token auth)",
    )

    # Provider settings
    default_provider: str = Field(
        default="kaito",
        description="Provider id used when a request does not name one",
    )
    kaito_version: str | None = Field(
        default=None,
        description="Pinned KAITO operator version, used when GitHub lookup fails",
    )
    version_cache_ttl_seconds: int = Field(
        default=3600,
        ge=1,
        description="How long a fetched operator version stays fresh",
    )
    github_timeout: float = Field(
        default=10.0,
        gt=0,
        description="Timeout in seconds for GitHub release lookups",
    )

    # Retry policy for cluster calls
    retry_max_attempts: int = Field(
        default=3,
        ge=0,
        le=10,
        description="Maximum retries for transient Kubernetes API failures",
    )
    retry_initial_delay: float = Field(
        default=0.5,
        ge=0,
        description="Initial backoff delay in seconds",
    )
    retry_max_delay: float = Field(
        default=5.0,
        ge=0,
        description="Upper bound for backoff delay in seconds",
    )
    retry_backoff_factor: float = Field(
        default=2.0,
        ge=1,
        description="Exponential backoff multiplier",
    )

    # Logging
    log_level: LogLevel = Field(
        default=LogLevel.INFO,
        description="Logging level",
    )

    @field_validator("kubeconfig_path", mode="before")
    @classmethod
    def resolve_kubeconfig_path(cls, v: str | Path | None) -> Path | None:
        """Resolve kubeconfig path, defaulting to standard location."""
        if v is None:
            return None
        return Path(v).expanduser().resolve()

    @property
    def effective_kubeconfig_path(self) -> Path:
        """Get the effective kubeconfig path, with default."""
        if self.kubeconfig_path:
            return self.kubeconfig_path
        env_path = os.environ.get("KUBECONFIG")
        if env_path:
            return Path(env_path).expanduser().resolve()
        return Path.home() / ".kube" / "config"

    def validate_auth_config(self) -> list[str]:
        """Validate authentication configuration and return any warnings."""
        warnings = []

        if self.auth_mode == AuthMode.TOKEN:
            if not self.api_server:
                raise ValueError("api_server is required when auth_mode is 'token'")
            if not self.api_token:
                raise ValueError("api_token is required when auth_mode is 'token'")

        if self.auth_mode == AuthMode.KUBECONFIG and not self.effective_kubeconfig_path.exists():
            raise ValueError(f"Kubeconfig file not found: {self.effective_kubeconfig_path}")

        if self.auth_mode == AuthMode.AUTO:
            if Path("/var/run/secrets/kubernetes.io/serviceaccount/token").exists():
                warnings.append("Running in-cluster, will use service account")
            elif not self.effective_kubeconfig_path.exists():
                warnings.append(
                    f"No kubeconfig found at {self.effective_kubeconfig_path}, "
                    "will attempt in-cluster auth"
                )

        return warnings


# Global configuration instance
_config: KubeFoundryConfig | None = None


def get_config() -> KubeFoundryConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = KubeFoundryConfig()
    return _config


def configure(**kwargs: Any) -> KubeFoundryConfig:
    """Configure the global settings.

    This should be called before get_config() if you want to override defaults.
    """
    global _config
    _config = KubeFoundryConfig(**kwargs)
    return _config
