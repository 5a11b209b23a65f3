from .base import HttpMetric, MetricsBackend
from .logged import LoggingBackend
from .memory import InMemoryBackend
from .prometheus import PrometheusBackend

__all__ = [
    "HttpMetric",
    "MetricsBackend",
    "InMemoryBackend",
    "LoggingBackend",
    "PrometheusBackend",
]
