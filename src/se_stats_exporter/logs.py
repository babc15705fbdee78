"""Logging setup for se-stats-exporter.

Console output goes through rich's RichHandler by default; ``format: plain``
switches to single-line records, which suits container log collectors.
An optional log file always receives plain lines.
"""

import logging
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

from se_stats_exporter.config import LoggingConfig

PLAIN_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"

# Loggers that are too chatty at INFO
_NOISY_LOGGERS = ("httpx", "httpcore")


def configure_logging(config: LoggingConfig, console: Console | None = None) -> logging.Logger:
    """Configure the root logger from the logging config section.

    Replaces any handlers installed by a previous call, so it is safe to
    call more than once.

    Args:
        config: Logging configuration
        console: Console for rich output (stderr if not provided)

    Returns:
        The package logger
    """
    level = getattr(logging, config.level)
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    handlers: list[logging.Handler] = []
    if config.format == "rich":
        handlers.append(
            RichHandler(
                console=console or Console(stderr=True),
                show_path=False,
                rich_tracebacks=True,
                markup=False,
            )
        )
    else:
        stream = logging.StreamHandler()
        stream.setFormatter(logging.Formatter(PLAIN_FORMAT))
        handlers.append(stream)

    if config.file:
        path = Path(config.file).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(PLAIN_FORMAT))
        handlers.append(file_handler)

    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    return logging.getLogger("se_stats_exporter")
