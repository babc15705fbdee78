"""Error taxonomy for se-stats-exporter.

Three families of errors exist:

- FetchError: raised by the upstream client when a fetch fails
- TransformError: raised while mapping upstream state into metrics
- StartupError: fatal problems detected before the server accepts connections

Fetch and transform errors are always recovered by the collection scheduler.
Only StartupError is allowed to end the process.
"""

from enum import Enum


class FetchErrorKind(str, Enum):
    """Reasons an upstream fetch can fail."""

    TIMEOUT = "timeout"
    CONNECTION_REFUSED = "connection_refused"
    AUTH_FAILURE = "auth_failure"
    MALFORMED_RESPONSE = "malformed_response"


class TransformErrorKind(str, Enum):
    """Reasons upstream state can fail to map into metrics."""

    UNEXPECTED_SHAPE = "unexpected_shape"
    OUT_OF_RANGE = "out_of_range"


class StartupErrorKind(str, Enum):
    """Reasons the exporter can fail to start."""

    PORT_IN_USE = "port_in_use"
    INVALID_CONFIG = "invalid_config"


class ExporterError(Exception):
    """Base class for all exporter errors.

    Attributes:
        kind: The specific failure reason (an enum member of the subclass)
        message: Human-readable description
    """

    def __init__(self, kind: Enum, message: str) -> None:
        self.kind = kind
        self.message = message
        super().__init__(f"{kind.value}: {message}")


class FetchError(ExporterError):
    """Upstream fetch failed."""

    kind: FetchErrorKind

    def __init__(self, kind: FetchErrorKind, message: str) -> None:
        super().__init__(kind, message)


class TransformError(ExporterError):
    """Upstream state could not be converted into a MetricSet."""

    kind: TransformErrorKind

    def __init__(self, kind: TransformErrorKind, message: str) -> None:
        super().__init__(kind, message)


class StartupError(ExporterError):
    """Fatal error before the exposition server starts serving."""

    kind: StartupErrorKind

    def __init__(self, kind: StartupErrorKind, message: str) -> None:
        super().__init__(kind, message)
