from __future__ import annotations

import itertools
import logging
import threading
import time
from typing import Callable, Dict, Hashable, Optional, TypeVar

from .backends.base import HttpMetric, MetricsBackend
from .errors import InstrumentationError, MetricBackendError
from .estimators import (
    RequestContentLength,
    ResponseContentLength,
    default_request_content_length,
    default_response_content_length,
)
from .types import (
    FailureInfo,
    HttpMethod,
    PendingCall,
    RequestInfo,
    ResponseInfo,
    normalize_url,
    strip_query,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CallTracker:
    """
    Correlates request-start events with their completion and times them.

    Every public hook is best-effort: instrumentation problems are logged at
    debug level and never raised to the code issuing the HTTP call.

    The correlation map is the only shared state. Each hook does a single
    insert or pop under one lock; estimation and backend work happen outside
    it.
    """

    def __init__(
        self,
        backend: MetricsBackend,
        *,
        request_content_length: RequestContentLength = default_request_content_length,
        response_content_length: ResponseContentLength = default_response_content_length,
        pending_ttl: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if pending_ttl is not None and pending_ttl <= 0:
            raise ValueError("pending_ttl must be a positive number of seconds")

        self.backend = backend
        self.request_content_length = request_content_length
        self.response_content_length = response_content_length
        self.pending_ttl = pending_ttl
        self._clock = clock

        self._pending: Dict[Hashable, PendingCall] = {}
        self._lock = threading.Lock()
        self._keys = itertools.count(1)
        self._last_sweep = clock()

    # -- correlation map ----------------------------------------------------

    def new_key(self) -> int:
        with self._lock:
            return next(self._keys)

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def is_pending(self, correlation_key: Hashable) -> bool:
        with self._lock:
            return correlation_key in self._pending

    def _insert(self, call: PendingCall) -> None:
        with self._lock:
            previous = self._pending.get(call.correlation_key)
            self._pending[call.correlation_key] = call
        if previous is not None:
            logger.debug(
                "Replaced in-flight call %s %s under duplicate key %r",
                previous.method.value,
                previous.route,
                call.correlation_key,
            )

    def _pop(self, correlation_key: Hashable) -> Optional[PendingCall]:
        with self._lock:
            return self._pending.pop(correlation_key, None)

    # -- lifecycle hooks ----------------------------------------------------

    def on_request_start(self, request: RequestInfo) -> None:
        url = getattr(request, "url", None)
        try:
            self._maybe_sweep()
            self._start(request)
        except InstrumentationError as e:
            logger.debug("Not tracking request to %s: %s", url, e, exc_info=True)
        except Exception:
            logger.debug("Not tracking request to %s", url, exc_info=True)

    def on_response_success(self, response: ResponseInfo, correlation_key: Hashable) -> None:
        try:
            call = self._pop(correlation_key)
            if call is None:
                return
            self._finish(call, response=response, error=None)
        except InstrumentationError as e:
            logger.debug("Dropped metric for key %r: %s", correlation_key, e, exc_info=True)
        except Exception:
            logger.debug("Dropped metric for key %r", correlation_key, exc_info=True)

    def on_request_failure(self, failure: FailureInfo, correlation_key: Hashable) -> None:
        try:
            call = self._pop(correlation_key)
            if call is None:
                return
            error = type(failure.error).__name__ if failure.error is not None else None
            self._finish(call, response=failure.response, error=error)
        except InstrumentationError as e:
            logger.debug("Dropped metric for key %r: %s", correlation_key, e, exc_info=True)
        except Exception:
            logger.debug("Dropped metric for key %r", correlation_key, exc_info=True)

    def cancel(self, correlation_key: Hashable) -> bool:
        """Forget an in-flight call without reporting it."""
        call = self._pop(correlation_key)
        if call is None:
            return False
        logger.debug("Cancelled tracking of %s %s", call.method.value, call.route)
        return True

    def evict_abandoned(self, now: Optional[float] = None) -> int:
        """Drop calls that have been pending for longer than pending_ttl."""
        if self.pending_ttl is None:
            return 0
        now = self._clock() if now is None else now
        cutoff = now - self.pending_ttl

        with self._lock:
            self._last_sweep = now
            expired = [k for k, c in self._pending.items() if c.tracked_at <= cutoff]
            evicted = [self._pending.pop(k) for k in expired]

        for call in evicted:
            logger.debug(
                "Evicted abandoned call %s %s (key %r)",
                call.method.value,
                call.route,
                call.correlation_key,
            )
        return len(evicted)

    # -- internals ----------------------------------------------------------

    def _maybe_sweep(self) -> None:
        if self.pending_ttl is None:
            return
        now = self._clock()
        if now - self._last_sweep >= self.pending_ttl:
            self.evict_abandoned(now)

    def _start(self, request: RequestInfo) -> None:
        route = self._route(request.url)
        method = HttpMethod.parse(request.method)
        size = self._estimate(self.request_content_length, request, route)

        metric = self._backend_call(
            "create", lambda: self.backend.new_http_metric(route, method)
        )
        metric.correlation_key = request.correlation_key
        metric.request_payload_size = size
        self._backend_call("start", metric.start)

        self._insert(
            PendingCall(
                correlation_key=request.correlation_key,
                route=route,
                method=method,
                started_at=metric.started_at if metric.started_at is not None else time.time(),
                tracked_at=self._clock(),
                metric=metric,
                request_payload_size=size,
            )
        )

    def _finish(
        self,
        call: PendingCall,
        *,
        response: Optional[ResponseInfo],
        error: Optional[str],
    ) -> None:
        metric: HttpMetric = call.metric
        metric.error = error

        if response is not None:
            size = self._estimate(self.response_content_length, response, call.route)
            if size is not None:
                metric.response_payload_size = size
            content_type = response.resolved_content_type()
            if content_type is not None:
                metric.response_content_type = content_type
            if response.status_code is not None:
                metric.http_response_code = response.status_code

        self._backend_call("stop", metric.stop)

    @staticmethod
    def _route(url: str) -> str:
        try:
            return normalize_url(url)
        except ValueError:
            logger.debug("Falling back to raw route for %r", url, exc_info=True)
            return strip_query(url)

    @staticmethod
    def _estimate(estimator: Callable[[T], Optional[int]], descriptor: T, route: str) -> Optional[int]:
        try:
            size = estimator(descriptor)
        except Exception:
            logger.debug("Omitting payload size for %s", route, exc_info=True)
            return None
        if size is None:
            return None
        if isinstance(size, bool) or not isinstance(size, int) or size < 0:
            logger.debug("Ignoring invalid payload size %r for %s", size, route)
            return None
        return size

    @staticmethod
    def _backend_call(action: str, fn: Callable[[], T]) -> T:
        try:
            return fn()
        except MetricBackendError:
            raise
        except Exception as e:
            raise MetricBackendError(f"Metrics backend failed to {action} metric") from e
