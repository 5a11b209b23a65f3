from __future__ import annotations

import time
from abc import ABC, abstractmethod
from typing import Hashable, Optional

from ..errors import MetricStateError
from ..types import CallOutcome, HttpMethod


class HttpMetric:
    """
    One timed HTTP call, named by its route and tagged with its method.

    The tracker sets the payload/response fields while the call is in flight;
    stop() derives the duration and hands the finished CallOutcome to the
    backend.
    """

    def __init__(
        self,
        backend: "MetricsBackend",
        *,
        url: str,
        method: HttpMethod,
    ) -> None:
        self._backend = backend
        self.url = url
        self.method = method
        self.correlation_key: Optional[Hashable] = None
        self.request_payload_size: Optional[int] = None
        self.response_payload_size: Optional[int] = None
        self.response_content_type: Optional[str] = None
        self.http_response_code: Optional[int] = None
        self.error: Optional[str] = None
        self.started_at: Optional[float] = None
        self._t0: Optional[float] = None
        self._stopped = False

    @property
    def running(self) -> bool:
        return self._t0 is not None and not self._stopped

    def start(self) -> None:
        if self._t0 is not None:
            raise MetricStateError(f"Metric for {self.url} already started")
        self.started_at = time.time()
        self._t0 = time.perf_counter()

    def stop(self) -> CallOutcome:
        if self._t0 is None:
            raise MetricStateError(f"Metric for {self.url} was never started")
        if self._stopped:
            raise MetricStateError(f"Metric for {self.url} already stopped")
        duration_ms = (time.perf_counter() - self._t0) * 1000.0
        self._stopped = True

        assert self.started_at is not None
        outcome = CallOutcome(
            correlation_key=self.correlation_key,
            route=self.url,
            method=self.method,
            started_at=self.started_at,
            duration_ms=duration_ms,
            request_payload_size=self.request_payload_size,
            response_payload_size=self.response_payload_size,
            response_content_type=self.response_content_type,
            status_code=self.http_response_code,
            error=self.error,
        )
        self._backend.report(outcome)
        return outcome


class MetricsBackend(ABC):
    """
    Metrics sink interface.

    Backends should:
    - Hand out HttpMetric records via new_http_metric()
    - Accept finished CallOutcome objects in report()
    - Be safe to call from several threads at once
    """

    name: str

    def new_http_metric(self, url: str, method: HttpMethod) -> HttpMetric:
        return HttpMetric(self, url=url, method=method)

    @abstractmethod
    def report(self, outcome: CallOutcome) -> None:
        """Record a finished call."""
        raise NotImplementedError
