from .backends import (
    HttpMetric,
    InMemoryBackend,
    LoggingBackend,
    MetricsBackend,
    PrometheusBackend,
)
from .client import build_async_client, build_client, create_backend
from .errors import (
    BackendNotSupportedError,
    HttpPerfError,
    InstrumentationError,
    MetricBackendError,
    MetricStateError,
)
from .estimators import (
    default_request_content_length,
    default_response_content_length,
    serialize_headers,
)
from .tracker import CallTracker
from .transport import AsyncInstrumentedTransport, InstrumentedTransport
from .types import (
    CallOutcome,
    FailureInfo,
    HttpMethod,
    PendingCall,
    RequestInfo,
    ResponseInfo,
    normalize_url,
)

__all__ = [
    "AsyncInstrumentedTransport",
    "BackendNotSupportedError",
    "CallOutcome",
    "CallTracker",
    "FailureInfo",
    "HttpMethod",
    "HttpMetric",
    "HttpPerfError",
    "InMemoryBackend",
    "InstrumentationError",
    "InstrumentedTransport",
    "LoggingBackend",
    "MetricBackendError",
    "MetricStateError",
    "MetricsBackend",
    "PendingCall",
    "PrometheusBackend",
    "RequestInfo",
    "ResponseInfo",
    "build_async_client",
    "build_client",
    "create_backend",
    "default_request_content_length",
    "default_response_content_length",
    "normalize_url",
    "serialize_headers",
]
