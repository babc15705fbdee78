"""Configuration module for se-stats-exporter.

This module provides:
- Pydantic models for configuration validation
- YAML config file loading and discovery
- Default configuration values
- Environment variable expansion
- Clear error messages for config issues
"""

from se_stats_exporter.config.defaults import DEFAULT_CONFIG
from se_stats_exporter.config.loader import (
    CollectorConfig,
    Config,
    ConfigError,
    ConfigKeyError,
    ConfigSyntaxError,
    ConfigValidationError,
    LoggingConfig,
    SentryConfig,
    ServerConfig,
    UpstreamConfig,
    get_config_path,
    load_config,
)

__all__ = [
    "Config",
    "CollectorConfig",
    "ConfigError",
    "ConfigKeyError",
    "ConfigSyntaxError",
    "ConfigValidationError",
    "LoggingConfig",
    "SentryConfig",
    "ServerConfig",
    "UpstreamConfig",
    "DEFAULT_CONFIG",
    "get_config_path",
    "load_config",
]
