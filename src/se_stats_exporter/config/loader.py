"""Configuration loading and validation for se-stats-exporter.

This module provides:
- Pydantic models for configuration validation
- YAML config file discovery and loading
- Environment variable expansion in config values
- Merging of config file with defaults
- Clear, user-friendly error messages for config issues
"""

from copy import deepcopy
from difflib import get_close_matches
import os
from pathlib import Path
import re
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
import yaml

from se_stats_exporter.config.defaults import DEFAULT_CONFIG
from se_stats_exporter.models.base import ExportName
from se_stats_exporter.upstream.models import UpstreamSchema


class ConfigError(Exception):
    """Base exception for configuration errors.

    Provides user-friendly error messages with context about what went wrong
    and suggestions for how to fix it.

    Attributes:
        message: The main error message
        file_path: Path to the config file (if applicable)
        line_number: Line number where the error occurred (if known)
        suggestion: Helpful suggestion for fixing the error
    """

    def __init__(
        self,
        message: str,
        *,
        file_path: str | None = None,
        line_number: int | None = None,
        column: int | None = None,
        suggestion: str | None = None,
        context_lines: list[str] | None = None,
    ) -> None:
        self.message = message
        self.file_path = file_path
        self.line_number = line_number
        self.column = column
        self.suggestion = suggestion
        self.context_lines = context_lines
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format the error message with context and suggestions."""
        parts = []

        if self.file_path:
            location = f"Error in {self.file_path}"
            if self.line_number:
                location += f" line {self.line_number}"
            parts.append(location + ":")
        else:
            parts.append("Configuration error:")

        parts.append(f"  {self.message}")

        if self.context_lines and self.column:
            parts.append("")
            for line in self.context_lines:
                parts.append(f"    {line}")
            pointer = " " * (self.column + 3) + "^"
            parts.append(pointer)

        if self.suggestion:
            parts.append("")
            parts.append(f"  Suggestion: {self.suggestion}")

        return "\n".join(parts)


class ConfigSyntaxError(ConfigError):
    """Error for YAML syntax issues."""

    pass


class ConfigValidationError(ConfigError):
    """Error for configuration value validation failures."""

    pass


class ConfigKeyError(ConfigError):
    """Error for unknown or invalid configuration keys."""

    pass


# Known valid configuration keys at each level for suggestions
VALID_KEYS: dict[tuple[str, ...], set[str]] = {
    (): {"upstream", "collector", "server", "logging", "sentry"},
    ("upstream",): {"schema", "base_url", "channel", "timeout", "token"},
    ("collector",): {
        "interval",
        "backoff",
        "backoff_factor",
        "max_backoff_multiplier",
        "exports",
        "prefix",
    },
    ("server",): {"host", "port", "graceful_shutdown_timeout"},
    ("logging",): {"level", "format", "file"},
    ("sentry",): {"dsn", "environment", "traces_sample_rate", "failure_threshold"},
}

# Environment variable pattern: ${VAR} or ${VAR:-default}
ENV_VAR_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)(?::-([^}]*))?\}")


def _suggest_key(unknown_key: str, valid_keys: set[str]) -> str | None:
    """Suggest a similar valid key for an unknown key.

    Args:
        unknown_key: The key that was not recognized
        valid_keys: Set of valid key names

    Returns:
        A suggestion message, or None if no good match found
    """
    matches = get_close_matches(unknown_key, sorted(valid_keys), n=1, cutoff=0.6)
    if matches:
        return f"Did you mean '{matches[0]}'?"
    return None


def _get_type_description(value: Any) -> str:
    """Get a human-readable type description for a value."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "integer"
    if isinstance(value, float):
        return "number"
    if isinstance(value, str):
        return f'string "{value}"'
    if isinstance(value, list):
        return "list"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__


def _format_pydantic_error(
    error: ValidationError,
    config_data: dict[str, Any],
    file_path: str | None = None,
) -> ConfigError:
    """Convert a Pydantic ValidationError to a user-friendly ConfigValidationError.

    Args:
        error: The Pydantic validation error
        config_data: The original config data for context
        file_path: Path to the config file

    Returns:
        A ConfigKeyError for unknown keys, otherwise a ConfigValidationError
    """
    first_error = error.errors()[0]
    loc = tuple(first_error.get("loc", ()))
    msg = first_error.get("msg", "Invalid value")
    error_type = first_error.get("type", "")
    ctx = first_error.get("ctx", {}) or {}

    path = ".".join(str(part) for part in loc)

    # Walk to the offending value; list indexes come from collector.exports
    actual_value: Any = config_data
    for key in loc:
        if isinstance(actual_value, dict):
            actual_value = actual_value.get(key)
        elif isinstance(actual_value, list) and isinstance(key, int):
            actual_value = actual_value[key] if key < len(actual_value) else None
        else:
            break

    suggestion = None

    if error_type in ("literal_error", "enum"):
        expected = ctx.get("expected", "")
        message = f"Invalid value for '{path}': got {_get_type_description(actual_value)}"
        suggestion = f"Expected one of: {expected}"

    elif error_type in ("greater_than", "greater_than_equal", "less_than_equal"):
        limit = ctx.get("gt", ctx.get("ge", ctx.get("le")))
        message = f"Value for '{path}' is out of range: {actual_value}"
        if error_type.startswith("greater"):
            suggestion = f"Value must be at least {limit}"
        else:
            suggestion = f"Value must be at most {limit}"

    elif error_type in ("int_parsing", "float_parsing", "int_type", "float_type"):
        message = f"Invalid number for '{path}': got {_get_type_description(actual_value)}"
        suggestion = "Please provide a valid number"

    elif error_type in ("bool_type", "bool_parsing"):
        message = f"Expected boolean for '{path}': got {_get_type_description(actual_value)}"
        suggestion = "Use 'true' or 'false'"

    elif error_type == "extra_forbidden":
        unknown_key = str(loc[-1]) if loc else "unknown"
        message = f"Unknown configuration key '{path}'"
        valid = VALID_KEYS.get(loc[:-1])
        if valid:
            suggestion = _suggest_key(unknown_key, valid)
        if not suggestion:
            suggestion = "Check the documentation for valid configuration options"
        return ConfigKeyError(message, file_path=file_path, suggestion=suggestion)

    else:
        message = f"Invalid value for '{path}': {msg}" if path else str(msg)

    return ConfigValidationError(message, file_path=file_path, suggestion=suggestion)


def _format_yaml_error(
    error: yaml.YAMLError,
    file_path: str | None = None,
    content: str | None = None,
) -> ConfigSyntaxError:
    """Convert a YAML error to a user-friendly ConfigSyntaxError.

    Args:
        error: The YAML error
        file_path: Path to the config file
        content: The file content for context

    Returns:
        A ConfigSyntaxError with helpful message and context
    """
    line_number = None
    column = None
    context_lines = None
    suggestion = None

    mark = getattr(error, "problem_mark", None)
    if mark is not None:
        line_number = mark.line + 1
        column = mark.column + 1
        if content:
            lines = content.splitlines()
            if 0 <= mark.line < len(lines):
                context_lines = [lines[mark.line]]

    error_str = str(error).lower()

    if "could not find expected ':'" in error_str:
        suggestion = "Check for missing colons after keys (e.g., 'key: value')"
    elif "found character" in error_str and "tab" in error_str:
        suggestion = "Use spaces instead of tabs for indentation"
    elif "mapping values are not allowed" in error_str:
        suggestion = "Check your indentation - make sure nested keys are properly indented"

    message = "Invalid YAML syntax"
    problem = getattr(error, "problem", None)
    if problem:
        message = f"YAML syntax error: {problem}"

    return ConfigSyntaxError(
        message,
        file_path=file_path,
        line_number=line_number,
        column=column,
        context_lines=context_lines,
        suggestion=suggestion,
    )


def expand_env_vars(value: Any) -> Any:
    """Recursively expand environment variables in config values.

    Supports ${VAR} and ${VAR:-default} syntax.

    Args:
        value: The value to expand (string, dict, list, or other)

    Returns:
        The value with environment variables expanded
    """
    if isinstance(value, str):

        def replace_env_var(match: re.Match[str]) -> str:
            var_name = match.group(1)
            default_value = match.group(2)
            env_value = os.environ.get(var_name)
            if env_value is not None:
                return env_value
            if default_value is not None:
                return default_value
            return match.group(0)  # Keep original if not found and no default

        return ENV_VAR_PATTERN.sub(replace_env_var, value)
    if isinstance(value, dict):
        return {k: expand_env_vars(v) for k, v in value.items()}
    if isinstance(value, list):
        return [expand_env_vars(item) for item in value]
    return value


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep merge two dictionaries, with override taking precedence.

    Args:
        base: Base dictionary with defaults
        override: Dictionary with overriding values

    Returns:
        Merged dictionary
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


# Pydantic Configuration Models


class UpstreamConfig(BaseModel):
    """Upstream statistics source."""

    model_config = ConfigDict(extra="forbid")

    schema_: UpstreamSchema = Field(default=UpstreamSchema.CHATSTATS, alias="schema")
    base_url: str = "https://api.streamelements.com/kappa/v2"
    channel: str = Field(default="global", min_length=1)
    timeout: float = Field(default=5.0, gt=0, le=600)
    token: str | None = None

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Require an http(s) URL."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("Must start with http:// or https://")
        return v.rstrip("/")


class CollectorConfig(BaseModel):
    """Polling loop configuration."""

    model_config = ConfigDict(extra="forbid")

    interval: float = Field(default=10.0, ge=0.1, le=3600)
    backoff: bool = True
    backoff_factor: float = Field(default=2.0, ge=1.0, le=10.0)
    max_backoff_multiplier: float = Field(default=4.0, ge=1.0, le=10.0)
    exports: list[ExportName] = Field(
        default_factory=lambda: [
            ExportName.BTTV,
            ExportName.FFZ,
            ExportName.TWITCH,
            ExportName.CHANNEL,
            ExportName.CHATTER,
        ]
    )
    prefix: str = Field(default="se", pattern=r"^[a-zA-Z_][a-zA-Z0-9_]*$")

    @field_validator("exports", mode="before")
    @classmethod
    def split_exports(cls, v: Any) -> Any:
        """Accept a comma-separated string, case-insensitively."""
        if isinstance(v, str):
            v = v.split(",")
        if isinstance(v, list):
            return [item.strip().lower() if isinstance(item, str) else item for item in v if item != ""]
        return v


class ServerConfig(BaseModel):
    """Exposition server configuration."""

    model_config = ConfigDict(extra="forbid")

    host: str = "0.0.0.0"
    port: int = Field(default=9001, ge=0, le=65535)
    graceful_shutdown_timeout: float = Field(default=10.0, ge=0, le=300)


class LoggingConfig(BaseModel):
    """Logging configuration."""

    model_config = ConfigDict(extra="forbid")

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: Literal["rich", "plain"] = "rich"
    file: str | None = None

    @field_validator("level", mode="before")
    @classmethod
    def upper_level(cls, v: Any) -> Any:
        """Accept lower-case level names."""
        return v.upper() if isinstance(v, str) else v


class SentryConfig(BaseModel):
    """Error reporting configuration."""

    model_config = ConfigDict(extra="forbid")

    dsn: str | None = None
    environment: str = "production"
    traces_sample_rate: float = Field(default=0.0, ge=0.0, le=1.0)
    failure_threshold: int = Field(default=5, ge=1)

    @property
    def enabled(self) -> bool:
        """Whether error reporting is configured."""
        return bool(self.dsn)


class Config(BaseModel):
    """Main configuration model for se-stats-exporter.

    This model validates and holds all configuration for the application.
    Configuration is loaded from YAML files and can be overridden by CLI flags.
    """

    model_config = ConfigDict(extra="forbid")

    upstream: UpstreamConfig = Field(default_factory=UpstreamConfig)
    collector: CollectorConfig = Field(default_factory=CollectorConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    sentry: SentryConfig = Field(default_factory=SentryConfig)

    @model_validator(mode="after")
    def check_timeout_below_interval(self) -> "Config":
        """The fetch timeout must be strictly shorter than the polling interval."""
        if self.upstream.timeout >= self.collector.interval:
            raise ValueError(
                f"upstream.timeout ({self.upstream.timeout}s) must be shorter than "
                f"collector.interval ({self.collector.interval}s)"
            )
        return self


def get_config_path(custom_path: str | None = None) -> Path | None:
    """Determine the configuration file path.

    Checks locations in this order:
    1. Custom path (if provided via --config flag)
    2. SESTATS_CONFIG_PATH environment variable
    3. ~/.config/se-stats-exporter/config.yaml (XDG standard)

    Args:
        custom_path: Optional custom config path from CLI

    Returns:
        Path to config file if found, None otherwise

    Raises:
        FileNotFoundError: If custom_path is given but does not exist
    """
    if custom_path:
        path = Path(custom_path).expanduser()
        if path.exists():
            return path
        raise FileNotFoundError(f"Config file not found: {custom_path}")

    env_path = os.environ.get("SESTATS_CONFIG_PATH")
    if env_path:
        path = Path(env_path).expanduser()
        if path.exists():
            return path
        return None

    xdg_path = Path.home() / ".config" / "se-stats-exporter" / "config.yaml"
    if xdg_path.exists():
        return xdg_path

    return None


def load_config(
    config_path: str | None = None,
    cli_overrides: dict[str, Any] | None = None,
) -> Config:
    """Load and validate configuration.

    Configuration is merged in this order (later overrides earlier):
    1. Default configuration
    2. Config file (if found)
    3. CLI overrides (if provided)

    Environment variables in config values are expanded using ${VAR} syntax.

    Args:
        config_path: Optional custom config file path
        cli_overrides: Optional dict of CLI argument overrides

    Returns:
        Validated Config object

    Raises:
        FileNotFoundError: If custom config path doesn't exist
        ConfigSyntaxError: If config file has invalid YAML syntax
        ConfigValidationError: If config values are invalid
    """
    config_data = deepcopy(DEFAULT_CONFIG)
    resolved_path: Path | None = None

    path = get_config_path(config_path)
    if path:
        resolved_path = path
        file_content = path.read_text()
        try:
            file_config = yaml.safe_load(file_content) or {}
        except yaml.YAMLError as e:
            raise _format_yaml_error(e, str(path), file_content) from e

        if not isinstance(file_config, dict):
            raise ConfigValidationError(
                "Top level of the config file must be a mapping",
                file_path=str(path),
            )
        config_data = deep_merge(config_data, file_config)

    if cli_overrides:
        config_data = deep_merge(config_data, cli_overrides)

    config_data = expand_env_vars(config_data)

    try:
        return Config(**config_data)
    except ValidationError as e:
        raise _format_pydantic_error(
            e,
            config_data,
            str(resolved_path) if resolved_path else None,
        ) from e
