"""
Tests for LoggingBackend.
"""

import logging

from httpperf.backends import LoggingBackend
from httpperf.types import CallOutcome, HttpMethod


def _outcome(**overrides):
    fields = dict(
        correlation_key=1,
        route="https://api.example.com/items",
        method=HttpMethod.GET,
        started_at=0.0,
        duration_ms=12.34,
        request_payload_size=None,
        response_payload_size=512,
        status_code=200,
    )
    fields.update(overrides)
    return CallOutcome(**fields)


class TestLoggingBackend:
    """Tests for the access-log style backend."""

    def test_logs_one_line_per_outcome(self, caplog):
        backend = LoggingBackend()

        with caplog.at_level(logging.INFO, logger="httpperf.access"):
            backend.report(_outcome())

        (record,) = caplog.records
        assert record.name == "httpperf.access"
        assert record.levelno == logging.INFO
        assert record.getMessage() == "GET https://api.example.com/items 200 12.3ms - 512"

    def test_failure_logs_error_name(self, caplog):
        backend = LoggingBackend()

        with caplog.at_level(logging.INFO, logger="httpperf.access"):
            backend.report(_outcome(status_code=None, response_payload_size=None, error="ConnectTimeout"))

        assert caplog.records[0].getMessage() == "GET https://api.example.com/items ConnectTimeout 12.3ms - -"

    def test_custom_logger_and_level(self, caplog):
        backend = LoggingBackend(logger="myapp.http", level=logging.DEBUG)

        with caplog.at_level(logging.DEBUG, logger="myapp.http"):
            backend.report(_outcome(method=HttpMethod.UNKNOWN))

        (record,) = caplog.records
        assert record.name == "myapp.http"
        assert record.levelno == logging.DEBUG
        assert record.getMessage().startswith("unknown ")

    def test_accepts_logger_instance(self, caplog):
        logger = logging.getLogger("instance.logger")
        backend = LoggingBackend(logger=logger)

        with caplog.at_level(logging.INFO, logger="instance.logger"):
            backend.report(_outcome())

        assert caplog.records[0].name == "instance.logger"
