"""HTTP exposition server.

Serves the latest Snapshot to Prometheus scrapers. Handlers only read from
the SnapshotStore; they never trigger a collection, so scrapes stay fast and
concurrent scrapes never contend with the collector.

Endpoints:
    GET /metrics  Prometheus text exposition
    GET /healthz  Liveness probe
    GET /         Landing page linking to /metrics
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Iterator
import contextlib
import errno
import logging
import signal
import socket

from fastapi import FastAPI
from fastapi.responses import HTMLResponse, PlainTextResponse, Response
import uvicorn

from se_stats_exporter import __version__
from se_stats_exporter.collectors.scheduler import CollectionScheduler
from se_stats_exporter.errors import StartupError, StartupErrorKind
from se_stats_exporter.formatters import CONTENT_TYPE, PrometheusFormatter
from se_stats_exporter.store import SnapshotStore

logger = logging.getLogger(__name__)

INDEX_HTML = """<html>
<head><title>StreamElements Stats Exporter</title></head>
<body>
<h1>StreamElements Stats Exporter</h1>
<p>Version {version}</p>
<p><a href="/metrics">Metrics</a></p>
</body>
</html>
"""


def create_app(
    store: SnapshotStore,
    scheduler: CollectionScheduler | None = None,
    formatter: PrometheusFormatter | None = None,
) -> FastAPI:
    """Build the FastAPI application.

    When a scheduler is given, the app lifespan starts it on startup and
    stops it (cancelling any in-flight fetch) on shutdown.

    Args:
        store: Store the handlers read from
        scheduler: Optional scheduler tied to the app lifespan
        formatter: Formatter for /metrics (defaults to prefix "se")

    Returns:
        The configured FastAPI app
    """
    formatter = formatter or PrometheusFormatter()

    @contextlib.asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if scheduler is not None:
            await scheduler.start()
        try:
            yield
        finally:
            if scheduler is not None:
                await scheduler.stop()

    app = FastAPI(
        title="se-stats-exporter",
        version=__version__,
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.store = store
    app.state.scheduler = scheduler

    @app.get("/metrics")
    def metrics() -> Response:
        snapshot = store.read()
        try:
            body = formatter.format(snapshot)
        except Exception:
            logger.exception("Failed to render metrics")
            return PlainTextResponse("failed to render metrics\n", status_code=500)
        return Response(content=body, media_type=CONTENT_TYPE)

    @app.get("/healthz")
    def healthz() -> PlainTextResponse:
        return PlainTextResponse("ok\n")

    @app.get("/")
    def index() -> HTMLResponse:
        return HTMLResponse(INDEX_HTML.format(version=__version__))

    return app


def parse_address(address: str) -> tuple[str, int]:
    """Split ``host:port`` (``[v6]:port`` for IPv6) into its parts.

    Raises:
        ValueError: If the port is missing or not a valid number
    """
    host, sep, port_text = address.rpartition(":")
    if not sep or not port_text.isdigit():
        raise ValueError(f"Expected HOST:PORT, got {address!r}")
    port = int(port_text)
    if port > 65535:
        raise ValueError(f"Port out of range: {port}")
    host = host.strip("[]") or "0.0.0.0"
    return host, port


def bind_socket(host: str, port: int) -> socket.socket:
    """Bind the listening socket before the server starts.

    Binding up front turns an occupied port into a StartupError instead of
    an error logged from inside the server.

    Raises:
        StartupError: PORT_IN_USE if the address cannot be bound
    """
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    sock = socket.socket(family, socket.SOCK_STREAM)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    try:
        sock.bind((host, port))
    except OSError as e:
        sock.close()
        reason = "address already in use" if e.errno == errno.EADDRINUSE else (e.strerror or str(e))
        raise StartupError(
            StartupErrorKind.PORT_IN_USE,
            f"Cannot listen on {host}:{port}: {reason}",
        ) from e
    sock.set_inheritable(True)
    return sock


class _Server(uvicorn.Server):
    """uvicorn server whose signal handling is installed by ``serve``.

    uvicorn re-raises captured signals once it has shut down; a SIGINT
    would then surface as KeyboardInterrupt after a clean exit.
    """

    @contextlib.contextmanager
    def capture_signals(self) -> Iterator[None]:
        yield


async def serve(
    app: FastAPI,
    host: str,
    port: int,
    *,
    graceful_shutdown_timeout: float = 10.0,
    log_level: str = "info",
) -> None:
    """Serve the app until SIGINT or SIGTERM.

    In-flight requests are drained for up to ``graceful_shutdown_timeout``
    seconds, then the app lifespan stops the scheduler.

    Raises:
        StartupError: PORT_IN_USE if the address cannot be bound
    """
    sock = bind_socket(host, port)
    config = uvicorn.Config(
        app,
        log_level=log_level.lower(),
        log_config=None,
        access_log=False,
        timeout_graceful_shutdown=graceful_shutdown_timeout,
    )
    server = _Server(config)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError, RuntimeError):
            loop.add_signal_handler(sig, server.handle_exit, sig, None)

    logger.info("Listening on http://%s:%d/metrics", host, port)
    try:
        await server.serve(sockets=[sock])
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError, RuntimeError):
                loop.remove_signal_handler(sig)
        sock.close()
    logger.info("Server stopped")
