from __future__ import annotations

import threading
import weakref
from typing import Callable, Dict, NamedTuple, Optional, Sequence

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Histogram

from .base import MetricsBackend
from ..types import CallOutcome

LATENCY_BUCKETS = (0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0)
SIZE_BUCKETS = (100, 500, 1000, 5000, 10000, 50000, 100000, 500000, 1000000)

LABELS = ("route", "method", "status")


class _Families(NamedTuple):
    calls_total: Counter
    duration_seconds: Histogram
    request_bytes: Histogram
    response_bytes: Histogram


# registry -> namespace -> families; a registry accepts each name only once
_shared: "weakref.WeakKeyDictionary[CollectorRegistry, Dict[str, _Families]]" = weakref.WeakKeyDictionary()
_shared_lock = threading.Lock()


def _families(
    namespace: str,
    registry: CollectorRegistry,
    latency_buckets: Sequence[float],
    size_buckets: Sequence[float],
) -> _Families:
    with _shared_lock:
        by_namespace = _shared.setdefault(registry, {})
        existing = by_namespace.get(namespace)
        if existing is not None:
            return existing

        families = _Families(
            calls_total=Counter(
                "http_client_calls_total",
                "Completed outbound HTTP calls",
                LABELS,
                namespace=namespace,
                registry=registry,
            ),
            duration_seconds=Histogram(
                "http_client_duration_seconds",
                "Outbound HTTP call duration in seconds",
                LABELS,
                namespace=namespace,
                buckets=tuple(latency_buckets),
                registry=registry,
            ),
            request_bytes=Histogram(
                "http_client_request_size_bytes",
                "Estimated outbound request payload size",
                LABELS,
                namespace=namespace,
                buckets=tuple(size_buckets),
                registry=registry,
            ),
            response_bytes=Histogram(
                "http_client_response_size_bytes",
                "Estimated inbound response payload size",
                LABELS,
                namespace=namespace,
                buckets=tuple(size_buckets),
                registry=registry,
            ),
        )
        by_namespace[namespace] = families
        return families


class PrometheusBackend(MetricsBackend):
    """
    Exports client call latency and payload sizes as Prometheus metrics.

    Backends built for the same registry and namespace share one set of
    metric families, so several clients can report into the default
    registry. Bucket arguments only apply to the first backend of a pair.

    The route is used as a label as-is. Routes that embed IDs (/items/42)
    produce one series per ID; pass route_label to template them, e.g.
    ``route_label=lambda route: re.sub(r"/\\d+", "/{id}", route)``.
    """

    name = "prometheus"

    def __init__(
        self,
        *,
        namespace: str = "httpperf",
        registry: Optional[CollectorRegistry] = None,
        latency_buckets: Sequence[float] = LATENCY_BUCKETS,
        size_buckets: Sequence[float] = SIZE_BUCKETS,
        route_label: Optional[Callable[[str], str]] = None,
    ) -> None:
        registry = registry if registry is not None else REGISTRY
        families = _families(namespace, registry, latency_buckets, size_buckets)

        self.calls_total = families.calls_total
        self.duration_seconds = families.duration_seconds
        self.request_bytes = families.request_bytes
        self.response_bytes = families.response_bytes
        self._route_label = route_label

    @staticmethod
    def _status_label(outcome: CallOutcome) -> str:
        if outcome.status_code is not None:
            return str(outcome.status_code)
        return "error"

    def report(self, outcome: CallOutcome) -> None:
        route = self._route_label(outcome.route) if self._route_label else outcome.route
        labels = (route, outcome.method.value, self._status_label(outcome))

        self.calls_total.labels(*labels).inc()
        self.duration_seconds.labels(*labels).observe(outcome.duration_ms / 1000.0)
        if outcome.request_payload_size is not None:
            self.request_bytes.labels(*labels).observe(outcome.request_payload_size)
        if outcome.response_payload_size is not None:
            self.response_bytes.labels(*labels).observe(outcome.response_payload_size)
