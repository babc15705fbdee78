"""Default configuration values for se-stats-exporter.

This module defines the default configuration used when no config file exists
or when config values are not specified. All configuration options are documented
here for reference.

Environment Variables:
    SESTATS_CONFIG_PATH: Override default config file path
    SESTATS_EXPORT, SESTATS_ADDRESS, SESTATS_INTERVAL: CLI flag defaults
    Any config value can reference environment variables using ${VAR} syntax

Config File Locations (in order of precedence):
    1. Path specified via --config CLI flag
    2. Path specified via SESTATS_CONFIG_PATH environment variable
    3. ~/.config/se-stats-exporter/config.yaml (XDG default)
"""

from typing import Any

DEFAULT_CONFIG: dict[str, Any] = {
    # Upstream statistics source
    "upstream": {
        "schema": "chatstats",  # "chatstats" (StreamElements) or "flat"
        "base_url": "https://api.streamelements.com/kappa/v2",
        "channel": "global",  # Channel whose stats are exported
        "timeout": 5.0,  # Seconds per fetch, must be below collector.interval
        "token": None,  # Optional bearer token
    },
    # Polling loop
    "collector": {
        "interval": 10.0,  # Seconds between collections
        "backoff": True,  # Slow down while upstream keeps failing
        "backoff_factor": 2.0,
        "max_backoff_multiplier": 4.0,  # Never wait more than 4x interval
        "exports": ["bttv", "ffz", "twitch", "channel", "chatter"],
        "prefix": "se",  # Metric name prefix
    },
    # Exposition server
    "server": {
        "host": "0.0.0.0",
        "port": 9001,
        "graceful_shutdown_timeout": 10.0,  # Seconds to drain requests on exit
    },
    # Logging configuration
    "logging": {
        "level": "INFO",  # DEBUG, INFO, WARNING, ERROR
        "format": "rich",  # "rich" console output or "plain" lines
        "file": None,  # Optional log file path
    },
    # Error reporting (disabled unless a DSN is set)
    "sentry": {
        "dsn": None,
        "environment": "production",
        "traces_sample_rate": 0.0,
        "failure_threshold": 5,  # Report after this many consecutive failures
    },
}
