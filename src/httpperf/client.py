from __future__ import annotations

import os
from typing import Any, Dict, Optional, Type

import httpx

from .backends import InMemoryBackend, LoggingBackend, MetricsBackend, PrometheusBackend
from .errors import BackendNotSupportedError
from .tracker import CallTracker
from .transport import DEFAULT_MAX_CAPTURE_BYTES, AsyncInstrumentedTransport, InstrumentedTransport

BACKEND_ENV = "HTTPPERF_BACKEND"
DISABLED_ENV = "HTTPPERF_DISABLED"
PENDING_TTL_ENV = "HTTPPERF_PENDING_TTL"

DEFAULT_BACKEND = "logging"

BACKENDS: Dict[str, Type[MetricsBackend]] = {
    "memory": InMemoryBackend,
    "logging": LoggingBackend,
    "prometheus": PrometheusBackend,
}


def create_backend(name: Optional[str] = None, **kwargs: Any) -> MetricsBackend:
    backend_name = (name or os.getenv(BACKEND_ENV) or DEFAULT_BACKEND).strip().lower()

    backend_cls = BACKENDS.get(backend_name)
    if backend_cls is None:
        raise BackendNotSupportedError(
            f"Backend '{backend_name}' is not supported. Supported: {sorted(BACKENDS.keys())}"
        )
    return backend_cls(**kwargs)


def instrumentation_disabled() -> bool:
    return (os.getenv(DISABLED_ENV) or "").strip().lower() in {"1", "true", "yes"}


def pending_ttl_from_env() -> Optional[float]:
    raw = (os.getenv(PENDING_TTL_ENV) or "").strip()
    if not raw:
        return None
    try:
        ttl = float(raw)
    except ValueError:
        raise ValueError(f"{PENDING_TTL_ENV} must be a number of seconds, got {raw!r}") from None
    if ttl <= 0:
        raise ValueError(f"{PENDING_TTL_ENV} must be positive, got {raw!r}")
    return ttl


def _resolve_tracker(
    backend: Optional[MetricsBackend],
    tracker: Optional[CallTracker],
) -> CallTracker:
    if backend is not None and tracker is not None:
        raise ValueError("Pass either backend=... or tracker=..., not both")
    if tracker is not None:
        return tracker
    return CallTracker(
        backend if backend is not None else create_backend(),
        pending_ttl=pending_ttl_from_env(),
    )


def build_client(
    *,
    backend: Optional[MetricsBackend] = None,
    tracker: Optional[CallTracker] = None,
    transport: Optional[httpx.BaseTransport] = None,
    max_capture_bytes: int = DEFAULT_MAX_CAPTURE_BYTES,
    **client_kwargs: Any,
) -> httpx.Client:
    """
    Build an httpx.Client whose calls are reported to a metrics backend.

    With HTTPPERF_DISABLED set, a plain client is returned.
    """
    if instrumentation_disabled():
        return httpx.Client(transport=transport, **client_kwargs)

    call_tracker = _resolve_tracker(backend, tracker)
    return httpx.Client(
        transport=InstrumentedTransport(call_tracker, transport, max_capture_bytes=max_capture_bytes),
        **client_kwargs,
    )


def build_async_client(
    *,
    backend: Optional[MetricsBackend] = None,
    tracker: Optional[CallTracker] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    max_capture_bytes: int = DEFAULT_MAX_CAPTURE_BYTES,
    **client_kwargs: Any,
) -> httpx.AsyncClient:
    if instrumentation_disabled():
        return httpx.AsyncClient(transport=transport, **client_kwargs)

    call_tracker = _resolve_tracker(backend, tracker)
    return httpx.AsyncClient(
        transport=AsyncInstrumentedTransport(
            call_tracker, transport, max_capture_bytes=max_capture_bytes
        ),
        **client_kwargs,
    )
