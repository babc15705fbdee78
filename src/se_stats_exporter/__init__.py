"""se-stats-exporter - Prometheus exporter for StreamElements chat statistics."""

__version__ = "0.2.0"

__all__ = ["__version__"]
