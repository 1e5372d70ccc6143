# src/kimo/core/config.py
"""Configuration schema and loading for the kimo server and agent.

Uses Pydantic for validation with frozen (immutable) models.
Configuration precedence: CLI > YAML file > defaults.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator

from kimo.contracts.types import Address


class MysqlConfig(BaseModel):
    """Connection settings for the MySQL process list source."""

    model_config = {"frozen": True, "extra": "forbid"}

    dsn: str = Field(
        default="mysql+pymysql://root@127.0.0.1:3306/information_schema",
        description="SQLAlchemy URL of the MySQL server to inspect",
    )
    connect_timeout: float = Field(
        default=5.0,
        gt=0,
        description="Connection timeout in seconds",
    )
    read_timeout: float = Field(
        default=10.0,
        gt=0,
        description="Query read timeout in seconds",
    )


class TCPProxyConfig(BaseModel):
    """Connection settings for the TCP proxy management port."""

    model_config = {"frozen": True, "extra": "forbid"}

    mgmt_address: str = Field(
        default="127.0.0.1:3307",
        description="host:port of the TCP proxy management listener",
    )
    connect_timeout: float = Field(
        default=2.0,
        gt=0,
        description="Connection timeout in seconds",
    )
    read_timeout: float = Field(
        default=5.0,
        gt=0,
        description="Read timeout in seconds",
    )

    @field_validator("mgmt_address")
    @classmethod
    def validate_mgmt_address(cls, value: str) -> str:
        """Ensure the management address is host:port."""
        Address.parse(value)
        return value


class AgentClientConfig(BaseModel):
    """How the server reaches agents on client hosts."""

    model_config = {"frozen": True, "extra": "forbid"}

    port: int = Field(
        default=3333,
        gt=0,
        le=65535,
        description="Port the agents listen on",
    )
    connect_timeout: float = Field(
        default=2.0,
        gt=0,
        description="Per-attempt connection timeout in seconds",
    )
    read_timeout: float = Field(
        default=5.0,
        gt=0,
        description="Per-attempt response read timeout in seconds",
    )
    max_concurrency: int | None = Field(
        default=None,
        gt=0,
        description="Upper bound on concurrent agent calls (unbounded when unset)",
    )


class ServerConfig(BaseModel):
    """Aggregator server configuration."""

    model_config = {"frozen": True, "extra": "forbid"}

    host: str = Field(
        default="127.0.0.1",
        description="Host address to bind to",
    )
    port: int = Field(
        default=3322,
        gt=0,
        le=65535,
        description="Port to listen on",
    )
    request_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Deadline for one correlation request in seconds",
    )
    mysql: MysqlConfig = Field(default_factory=MysqlConfig)
    tcpproxy: TCPProxyConfig = Field(default_factory=TCPProxyConfig)
    agent: AgentClientConfig = Field(default_factory=AgentClientConfig)


class AgentConfig(BaseModel):
    """Agent configuration (one agent runs on every client host)."""

    model_config = {"frozen": True, "extra": "forbid"}

    host: str = Field(
        default="0.0.0.0",
        description="Host address to bind to",
    )
    port: int = Field(
        default=3333,
        gt=0,
        le=65535,
        description="Port to listen on",
    )


class KimoConfig(BaseModel):
    """Top-level configuration shared by the server and agent commands."""

    model_config = {"frozen": True, "extra": "forbid"}

    debug: bool = Field(
        default=False,
        description="Enable DEBUG logging",
    )
    json_logs: bool = Field(
        default=False,
        description="Emit JSON logs instead of console output",
    )
    server: ServerConfig = Field(default_factory=ServerConfig)
    agent: AgentConfig = Field(default_factory=AgentConfig)


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep merge two dicts, with override taking precedence.

    Returns a new dict; inputs are not mutated.
    """
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_config(
    *,
    config_file: Path | None = None,
    cli_overrides: dict[str, Any] | None = None,
) -> KimoConfig:
    """Load kimo configuration with precedence handling.

    Precedence (highest to lowest):
    1. cli_overrides - Direct overrides from CLI flags
    2. config_file - User's YAML configuration file
    3. defaults - Built-in Pydantic defaults

    Raises:
        FileNotFoundError: If config_file does not exist.
        yaml.YAMLError: If the YAML is malformed.
        ValueError: If the YAML is not a mapping.
        pydantic.ValidationError: If the final config fails validation.
    """
    config_dict: dict[str, Any] = {}

    if config_file is not None:
        if not config_file.exists():
            raise FileNotFoundError(f"Config file not found: {config_file}")
        with config_file.open() as f:
            loaded = yaml.safe_load(f) or {}
        if not isinstance(loaded, dict):
            raise ValueError(f"Config file {config_file} must be a YAML mapping, got {type(loaded).__name__}")
        config_dict = deep_merge(config_dict, loaded)

    if cli_overrides is not None:
        config_dict = deep_merge(config_dict, cli_overrides)

    return KimoConfig(**config_dict)
