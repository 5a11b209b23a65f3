"""
Shared fixtures and test utilities for httpperf test suite.
"""
import pytest
import httpx

from httpperf.backends import InMemoryBackend, MetricsBackend
from httpperf.tracker import CallTracker
from httpperf.types import FailureInfo, RequestInfo, ResponseInfo


# ============================================================================
# Sample Descriptors
# ============================================================================

SAMPLE_URL = "https://api.example.com/v1/items?page=2#top"


# ============================================================================
# Backend Test Doubles
# ============================================================================

class ExplodingBackend(MetricsBackend):
    """Backend that fails at a chosen step: create, start or report."""

    name = "exploding"

    def __init__(self, *, fail_on="create"):
        self.fail_on = fail_on
        self.reported = []

    def new_http_metric(self, url, method):
        if self.fail_on == "create":
            raise RuntimeError("backend unavailable")
        metric = super().new_http_metric(url, method)
        if self.fail_on == "start":
            metric.start = _raise
        return metric

    def report(self, outcome):
        if self.fail_on == "report":
            raise RuntimeError("upload failed")
        self.reported.append(outcome)


def _raise(*args, **kwargs):
    raise RuntimeError("boom")


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def memory_backend():
    return InMemoryBackend()


@pytest.fixture
def tracker(memory_backend):
    return CallTracker(memory_backend)


@pytest.fixture
def exploding_backend():
    """
    Factory fixture for a failing backend.

    Usage:
        backend = exploding_backend(fail_on="start")
    """
    def _make(fail_on="create"):
        return ExplodingBackend(fail_on=fail_on)
    return _make


@pytest.fixture
def make_request():
    """
    Factory fixture to create RequestInfo descriptors.

    Usage:
        req = make_request(key=1, method="post", body="hello")
    """
    def _make(key=1, url=SAMPLE_URL, method="GET", headers=None, body=None):
        return RequestInfo(
            correlation_key=key,
            url=url,
            method=method,
            headers=headers if headers is not None else {},
            body=body,
        )
    return _make


@pytest.fixture
def make_response():
    """
    Factory fixture to create ResponseInfo descriptors.

    Usage:
        resp = make_response(200, body='{"ok": true}', headers={"Content-Type": "application/json"})
    """
    def _make(status_code=200, body=None, headers=None, content_type=None):
        return ResponseInfo(
            status_code=status_code,
            headers=headers if headers is not None else {},
            body=body,
            content_type=content_type,
        )
    return _make


@pytest.fixture
def make_failure():
    def _make(error=None, response=None):
        return FailureInfo(
            error=error if error is not None else httpx.ConnectError("refused"),
            response=response,
        )
    return _make


@pytest.fixture
def mock_transport():
    """
    Build an httpx.MockTransport from a handler or a canned response.

    Usage:
        transport = mock_transport(text="ok", status_code=200)
        transport = mock_transport(handler=lambda request: httpx.Response(204))
    """
    def _make(handler=None, status_code=200, **response_kwargs):
        if handler is None:
            def handler(request):
                return httpx.Response(status_code, **response_kwargs)
        return httpx.MockTransport(handler)
    return _make
