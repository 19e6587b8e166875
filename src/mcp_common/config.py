"""Configuration management for the MCP Gateway.

Supports YAML configuration files and environment variable overrides.
Configuration is loaded once and cached for performance.
"""

import os
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ElicitationPolicy(str, Enum):
    """How a tool call behaves after asking the client for input."""
    FIRE_AND_FORGET = "fire_and_forget"
    AWAIT_RESPONSE = "await_response"


class ServerSettings(BaseSettings):
    """HTTP server and protocol identity."""
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8080)
    name: str = Field(default="mcp-gateway")
    version: str = Field(default="1.0.0")
    protocol_version: str = Field(default="2025-06-18")
    enable_audit: bool = Field(default=True)
    audit_log_path: str = Field(default="logs/audit.log")

    model_config = SettingsConfigDict(
        env_prefix="MCP_SERVER_",
        env_file=".env",
        extra="ignore"
    )


class OAuthSettings(BaseSettings):
    """Token authority configuration."""
    issuer: str = Field(default="http://localhost:8080", description="Issuer URL advertised in metadata")
    jwt_secret: Optional[str] = Field(default=None, description="HMAC signing secret, at least 32 bytes")
    token_expiration_seconds: int = Field(default=3600, gt=0)

    model_config = SettingsConfigDict(
        env_prefix="MCP_OAUTH_",
        env_file=".env",
        extra="ignore"
    )


class SessionSettings(BaseSettings):
    """Session lifecycle configuration."""
    timeout_minutes: float = Field(default=30, gt=0)
    sweep_interval_seconds: int = Field(default=300, gt=0)

    model_config = SettingsConfigDict(
        env_prefix="MCP_SESSION_",
        env_file=".env",
        extra="ignore"
    )


class ElicitationSettings(BaseSettings):
    """Elicitation sub-protocol configuration."""
    policy: ElicitationPolicy = Field(default=ElicitationPolicy.FIRE_AND_FORGET)
    timeout_seconds: float = Field(default=60, gt=0)

    model_config = SettingsConfigDict(
        env_prefix="MCP_ELICITATION_",
        env_file=".env",
        extra="ignore"
    )


class Settings(BaseSettings):
    """Main application settings."""
    environment: str = Field(default="development")
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")

    # Component settings
    server: ServerSettings = Field(default_factory=ServerSettings)
    oauth: OAuthSettings = Field(default_factory=OAuthSettings)
    session: SessionSettings = Field(default_factory=SessionSettings)
    elicitation: ElicitationSettings = Field(default_factory=ElicitationSettings)

    model_config = SettingsConfigDict(
        env_prefix="MCP_",
        env_file=".env",
        extra="ignore"
    )

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Settings":
        """Load settings from a YAML file."""
        return cls(**load_yaml_config(path))


def load_yaml_config(path: str | Path) -> dict[str, Any]:
    """Load a YAML configuration file."""
    path = Path(path)
    if not path.exists():
        return {}

    with open(path) as f:
        return yaml.safe_load(f) or {}


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    config_path = os.environ.get("MCP_CONFIG_PATH", "config/settings.yaml")
    return Settings.from_yaml(config_path)
