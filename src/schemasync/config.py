"""
Configuration system for schemasync using Pydantic.
"""

import os
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Union

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError


class GatewayConfig(BaseModel):
    """HTTP settings for talking to the remote schema store."""

    timeout: int = Field(30, description="Request timeout in seconds")
    max_retries: int = Field(2, description="Maximum number of retries")
    retry_delay: float = Field(1.0, description="Base retry delay in seconds")
    user_agent: str = Field("schemasync/0.1", description="User-Agent header")


class ReconcileConfig(BaseModel):
    """Diff and task execution settings."""

    default_acl: Dict[str, Dict[str, bool]] = Field(
        default_factory=lambda: {"*": {"read": True, "write": True}},
        description="Default ACL for new classes that do not declare one",
    )
    fetch_concurrency: int = Field(
        4, description="Parallel remote schema fetches while diffing"
    )
    task_concurrency: int = Field(
        1, description="Parallel tasks within one class after it exists"
    )
    allowed_internal_classes: List[str] = Field(
        default_factory=lambda: ["_User"],
        description="Internal (underscore-prefixed) classes push may touch",
    )

    @field_validator("fetch_concurrency", "task_concurrency")
    @classmethod
    def check_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("concurrency must be at least 1")
        return v

    @field_validator("default_acl")
    @classmethod
    def check_default_acl(
        cls, v: Dict[str, Dict[str, bool]]
    ) -> Dict[str, Dict[str, bool]]:
        for subject, access in v.items():
            unknown = set(access) - {"read", "write"}
            if unknown:
                raise ValueError(f"unknown ACL capability for {subject}: {unknown}")
            if not any(access.values()):
                raise ValueError(f"ACL entry for {subject} grants nothing")
        return v


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        "WARNING", description="Log level"
    )
    format: str = Field(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log format for the file handler",
    )
    file: Optional[str] = Field(None, description="Log file path")
    max_size: int = Field(10485760, description="Max log file size in bytes")  # 10MB
    backup_count: int = Field(5, description="Number of backup log files")


class SchemaSyncConfig(BaseSettings):
    """Main schemasync configuration."""

    # Remote store
    console_url: Optional[str] = Field(None, description="Console base URL")
    app_id: Optional[str] = Field(None, description="Application id")
    access_token: Optional[str] = Field(None, description="Console access token")

    gateway: GatewayConfig = Field(
        default_factory=GatewayConfig, description="Gateway configuration"
    )
    reconcile: ReconcileConfig = Field(
        default_factory=ReconcileConfig, description="Reconciliation configuration"
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description="Logging configuration"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="LEANCLOUD_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    @classmethod
    def from_yaml(cls, path: Union[str, Path], **overrides: Any) -> "SchemaSyncConfig":
        """Load configuration from a YAML file."""
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}

            # Expand environment variables in the data
            data = cls._expand_env_vars(data)
            data.update({k: v for k, v in overrides.items() if v is not None})

            return cls(**data)
        except FileNotFoundError:
            raise ConfigurationError(f"Configuration file not found: {path}")
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in configuration file: {e}")
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}")

    @classmethod
    def load(
        cls, path: Optional[Union[str, Path]] = None, **overrides: Any
    ) -> "SchemaSyncConfig":
        """Load from YAML when a path is given, otherwise from the environment."""
        if path:
            return cls.from_yaml(path, **overrides)
        try:
            return cls(**{k: v for k, v in overrides.items() if v is not None})
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}")

    @classmethod
    def _expand_env_vars(cls, data: Any) -> Any:
        """Recursively expand environment variables in configuration data."""
        if isinstance(data, dict):
            return {k: cls._expand_env_vars(v) for k, v in data.items()}
        elif isinstance(data, list):
            return [cls._expand_env_vars(item) for item in data]
        elif isinstance(data, str):
            return os.path.expandvars(data)
        else:
            return data

    def require_credentials(self) -> None:
        """Fail unless everything needed to reach the remote store is set."""
        if not self.console_url:
            raise ConfigurationError("no console url provided")
        if not self.app_id:
            raise ConfigurationError("no app id provided")
        if not self.access_token:
            raise ConfigurationError("no access token provided")

    def to_yaml(self, path: Union[str, Path]) -> None:
        """Save configuration to a YAML file."""
        with open(path, "w", encoding="utf-8") as f:
            yaml.dump(
                self.model_dump(exclude_none=True),
                f,
                default_flow_style=False,
                indent=2,
                sort_keys=False,
            )
