"""Core infrastructure: configuration and logging."""

from kimo.core.config import (
    AgentClientConfig,
    AgentConfig,
    KimoConfig,
    MysqlConfig,
    ServerConfig,
    TCPProxyConfig,
    deep_merge,
    load_config,
)
from kimo.core.logging import configure_logging, get_logger

__all__ = [
    "AgentClientConfig",
    "AgentConfig",
    "KimoConfig",
    "MysqlConfig",
    "ServerConfig",
    "TCPProxyConfig",
    "configure_logging",
    "deep_merge",
    "get_logger",
    "load_config",
]
