class HttpPerfError(Exception):
    """Base exception for httpperf."""

    pass


class BackendNotSupportedError(HttpPerfError):
    pass


class InstrumentationError(HttpPerfError):
    """Raised inside the tracker; never reaches the HTTP caller."""

    pass


class MetricBackendError(InstrumentationError):
    pass


class MetricStateError(MetricBackendError):
    pass
