"""Command-line interface for se-stats-exporter.

This module provides:
- Typer-based CLI application
- Config file loading with CLI and environment overrides
- The ``serve`` command (default): poll upstream and expose /metrics
- The ``once`` command: collect a single time and print the exposition

Usage:
    se-stats-exporter                       # serve (default)
    se-stats-exporter serve -a 0.0.0.0:9001 # explicit serve
    se-stats-exporter once                  # print metrics once and exit

Examples:
    # Export emotes and chatters of one channel every 30 seconds
    se-stats-exporter --channel mychannel --export bttv,twitch,chatter --interval 30

    # Use a custom configuration file
    se-stats-exporter --config ~/.config/se-stats-exporter/custom.yaml

    # Check what would be exported
    se-stats-exporter once
"""

import asyncio
from pathlib import Path
from typing import Annotated, Any

from rich.console import Console
from rich.markup import escape
import typer

from se_stats_exporter import __version__
from se_stats_exporter.collectors import CollectionResult, CollectionScheduler, StatsCollector
from se_stats_exporter.config import Config, ConfigError, load_config
from se_stats_exporter.config.loader import deep_merge
from se_stats_exporter.errors import StartupError, StartupErrorKind
from se_stats_exporter.formatters import PrometheusFormatter
from se_stats_exporter.logs import configure_logging
from se_stats_exporter.models.base import ExportName, Snapshot
from se_stats_exporter.sentry import FailureReporter, init_sentry, set_exporter_context
from se_stats_exporter.server import create_app, parse_address, serve
from se_stats_exporter.store import SnapshotStore
from se_stats_exporter.upstream import UpstreamClient, UpstreamSchema

# Create the main Typer app
app = typer.Typer(
    name="se-stats-exporter",
    help="Prometheus exporter for StreamElements chat statistics",
    no_args_is_help=False,
    add_completion=True,
    rich_markup_mode="rich",
)

# User-facing errors go to stderr so `once` output stays clean
console = Console(stderr=True)


def version_callback(value: bool) -> None:
    """Display version and exit."""
    if value:
        typer.echo(f"se-stats-exporter version {__version__}")
        raise typer.Exit()


def build_cli_overrides(
    address: str | None = None,
    interval: float | None = None,
    timeout: float | None = None,
    export: str | None = None,
    channel: str | None = None,
    schema: UpstreamSchema | None = None,
    base_url: str | None = None,
    log_level: str | None = None,
) -> dict[str, Any]:
    """Build config override dict from CLI flags.

    Args:
        address: Listen address as HOST:PORT
        interval: Polling interval override
        timeout: Upstream timeout override
        export: Comma-separated statistic groups
        channel: Channel whose stats are exported
        schema: Upstream payload schema
        base_url: Upstream API root
        log_level: Logging level

    Returns:
        Dictionary of config overrides

    Raises:
        ValueError: If address is not HOST:PORT
    """
    overrides: dict[str, Any] = {}

    if address is not None:
        host, port = parse_address(address)
        overrides["server"] = {"host": host, "port": port}

    upstream: dict[str, Any] = {}
    if timeout is not None:
        upstream["timeout"] = timeout
    if channel is not None:
        upstream["channel"] = channel
    if schema is not None:
        upstream["schema"] = schema.value
    if base_url is not None:
        upstream["base_url"] = base_url
    if upstream:
        overrides["upstream"] = upstream

    collector: dict[str, Any] = {}
    if interval is not None:
        collector["interval"] = interval
    if export is not None:
        collector["exports"] = export
    if collector:
        overrides["collector"] = collector

    if log_level is not None:
        overrides["logging"] = {"level": log_level}

    return overrides


# Common options
ConfigOption = Annotated[
    Path | None,
    typer.Option(
        "--config",
        "-c",
        help="Path to custom config file",
        envvar="SESTATS_CONFIG_PATH",
        exists=False,  # We handle existence check ourselves
    ),
]

AddressOption = Annotated[
    str | None,
    typer.Option(
        "--address",
        "-a",
        help="Address to listen on, as HOST:PORT [default: 0.0.0.0:9001]",
        envvar="SESTATS_ADDRESS",
    ),
]

IntervalOption = Annotated[
    float | None,
    typer.Option(
        "--interval",
        "-i",
        help="Polling interval in seconds [default: 10]",
        envvar="SESTATS_INTERVAL",
        min=0.1,
        max=3600,
    ),
]

TimeoutOption = Annotated[
    float | None,
    typer.Option(
        "--timeout",
        "-t",
        help="Upstream timeout in seconds, shorter than the interval [default: 5]",
        min=0.01,
    ),
]

ExportOption = Annotated[
    str | None,
    typer.Option(
        "--export",
        "-e",
        help=(
            "Comma-separated statistics to export: bttv, ffz, twitch, hashtag, "
            "command, chatter, channel, total_messages [default: bttv,ffz,twitch,channel,chatter]"
        ),
        envvar="SESTATS_EXPORT",
    ),
]

ChannelOption = Annotated[
    str | None,
    typer.Option(
        "--channel",
        help="Channel whose statistics are exported [default: global]",
    ),
]

SchemaOption = Annotated[
    UpstreamSchema | None,
    typer.Option(
        "--schema",
        help="Upstream payload schema [default: chatstats]",
    ),
]

BaseUrlOption = Annotated[
    str | None,
    typer.Option(
        "--base-url",
        help="Upstream API root URL",
    ),
]

LogLevelOption = Annotated[
    str | None,
    typer.Option(
        "--log-level",
        "-l",
        help="Logging level: DEBUG, INFO, WARNING, ERROR",
    ),
]

VersionOption = Annotated[
    bool | None,
    typer.Option(
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
]


def _load(ctx: typer.Context, config: Path | None, overrides: dict[str, Any]) -> tuple[Config, str | None]:
    """Load configuration, merging group-level and command-level flags.

    Exits with code 1 on any configuration problem.
    """
    parent = ctx.obj or {}
    config_path = str(config) if config else parent.get("config_path")
    merged = deep_merge(parent.get("overrides", {}), overrides)

    try:
        return load_config(config_path=config_path, cli_overrides=merged), config_path
    except FileNotFoundError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1) from e
    except ConfigError as e:
        console.print(f"[red]Configuration error:[/red] {escape(str(e))}")
        raise typer.Exit(1) from e


def _overrides_or_exit(**flags: Any) -> dict[str, Any]:
    try:
        return build_cli_overrides(**flags)
    except ValueError as e:
        console.print(f"[red]Configuration error:[/red] {escape(str(e))}")
        raise typer.Exit(1) from e


def build_collector(config: Config) -> StatsCollector:
    """Create the upstream client and collector described by the config."""
    client = UpstreamClient(
        config.upstream.base_url,
        channel=config.upstream.channel,
        schema=config.upstream.schema_,
        timeout=config.upstream.timeout,
        token=config.upstream.token,
        fetch_top_channels=ExportName.CHANNEL in config.collector.exports,
    )
    return StatsCollector(client, exports=config.collector.exports, prefix=config.collector.prefix)


def build_scheduler(config: Config, store: SnapshotStore) -> CollectionScheduler:
    """Create the scheduler described by the config.

    Raises:
        StartupError: INVALID_CONFIG if the scheduler settings are rejected
    """
    collector = build_collector(config)
    try:
        return CollectionScheduler(
            collector,
            store,
            config.collector.interval,
            backoff=config.collector.backoff,
            backoff_factor=config.collector.backoff_factor,
            max_backoff_multiplier=config.collector.max_backoff_multiplier,
        )
    except ValueError as e:
        raise StartupError(StartupErrorKind.INVALID_CONFIG, str(e)) from e


def run_exporter(config: Config, config_path: str | None = None) -> None:
    """Run the exporter until SIGINT or SIGTERM.

    Args:
        config: Validated configuration object
        config_path: Path of the custom config file, if any

    Raises:
        StartupError: If the scheduler cannot be built or the port is taken
    """
    configure_logging(config.logging)

    store = SnapshotStore()
    scheduler = build_scheduler(config, store)

    if init_sentry(config.sentry, debug=config.logging.level == "DEBUG"):
        set_exporter_context(config, config_path=config_path)
        scheduler.add_callback(FailureReporter(config.sentry.failure_threshold))

    formatter = PrometheusFormatter(prefix=config.collector.prefix)
    application = create_app(store, scheduler, formatter)

    asyncio.run(
        serve(
            application,
            config.server.host,
            config.server.port,
            graceful_shutdown_timeout=config.server.graceful_shutdown_timeout,
            log_level=config.logging.level,
        )
    )


async def collect_once(config: Config) -> tuple[CollectionResult, Snapshot]:
    """Run a single collection cycle.

    Returns:
        The CollectionResult and the resulting Snapshot
    """
    store = SnapshotStore()
    scheduler = build_scheduler(config, store)
    try:
        result = await scheduler.collect_once()
    finally:
        await scheduler.collector.aclose()
    return result, store.read()


def _serve_or_exit(config: Config, config_path: str | None) -> None:
    try:
        run_exporter(config, config_path)
    except StartupError as e:
        console.print(f"[red]Startup error:[/red] {escape(str(e))}")
        raise typer.Exit(1) from e


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    config: ConfigOption = None,
    address: AddressOption = None,
    interval: IntervalOption = None,
    timeout: TimeoutOption = None,
    export: ExportOption = None,
    channel: ChannelOption = None,
    schema: SchemaOption = None,
    base_url: BaseUrlOption = None,
    log_level: LogLevelOption = None,
    version: VersionOption = None,
) -> None:
    """se-stats-exporter - StreamElements chat statistics for Prometheus.

    Polls the StreamElements chat statistics API on an interval and serves
    the latest values on /metrics. Without a command, runs `serve`.

    Examples:

        se-stats-exporter                          Serve on 0.0.0.0:9001

        se-stats-exporter -e bttv,chatter -i 30    Export fewer groups, less often

        se-stats-exporter once                     Print metrics once and exit
    """
    overrides = _overrides_or_exit(
        address=address,
        interval=interval,
        timeout=timeout,
        export=export,
        channel=channel,
        schema=schema,
        base_url=base_url,
        log_level=log_level,
    )
    ctx.obj = {"config_path": str(config) if config else None, "overrides": overrides}

    # Only run if no subcommand was invoked
    if ctx.invoked_subcommand is not None:
        return

    cfg, config_path = _load(ctx, None, {})
    _serve_or_exit(cfg, config_path)


@app.command("serve")
def serve_command(
    ctx: typer.Context,
    config: ConfigOption = None,
    address: AddressOption = None,
    interval: IntervalOption = None,
    timeout: TimeoutOption = None,
    export: ExportOption = None,
    channel: ChannelOption = None,
    schema: SchemaOption = None,
    base_url: BaseUrlOption = None,
    log_level: LogLevelOption = None,
) -> None:
    """Poll upstream and serve /metrics until interrupted."""
    overrides = _overrides_or_exit(
        address=address,
        interval=interval,
        timeout=timeout,
        export=export,
        channel=channel,
        schema=schema,
        base_url=base_url,
        log_level=log_level,
    )
    cfg, config_path = _load(ctx, config, overrides)
    _serve_or_exit(cfg, config_path)


@app.command("once")
def once_command(
    ctx: typer.Context,
    config: ConfigOption = None,
    interval: IntervalOption = None,
    timeout: TimeoutOption = None,
    export: ExportOption = None,
    channel: ChannelOption = None,
    schema: SchemaOption = None,
    base_url: BaseUrlOption = None,
    log_level: LogLevelOption = None,
) -> None:
    """Collect once, print the Prometheus exposition and exit.

    Exits with code 1 if the collection fails.
    """
    overrides = _overrides_or_exit(
        interval=interval,
        timeout=timeout,
        export=export,
        channel=channel,
        schema=schema,
        base_url=base_url,
        log_level=log_level,
    )
    cfg, _ = _load(ctx, config, overrides)
    configure_logging(cfg.logging, console=console)

    try:
        result, snapshot = asyncio.run(collect_once(cfg))
    except StartupError as e:
        console.print(f"[red]Startup error:[/red] {escape(str(e))}")
        raise typer.Exit(1) from e

    if not result.success:
        console.print(f"[red]Collection failed:[/red] {escape(result.error or '')}")
        raise typer.Exit(1)

    typer.echo(PrometheusFormatter(prefix=cfg.collector.prefix).format(snapshot), nl=False)


def cli_main() -> None:
    """Entry point for the CLI application."""
    app()
