from __future__ import annotations

import logging
from typing import Optional, Union

from .base import MetricsBackend
from ..types import CallOutcome


def _or_dash(value: object) -> str:
    return "-" if value is None else str(value)


class LoggingBackend(MetricsBackend):
    """Writes one access-log style line per finished call."""

    name = "logging"

    def __init__(
        self,
        *,
        logger: Optional[Union[logging.Logger, str]] = None,
        level: int = logging.INFO,
    ) -> None:
        if isinstance(logger, logging.Logger):
            self._logger = logger
        else:
            self._logger = logging.getLogger(logger or "httpperf.access")
        self._level = level

    def report(self, outcome: CallOutcome) -> None:
        status = outcome.status_code if outcome.status_code is not None else outcome.error
        self._logger.log(
            self._level,
            "%s %s %s %.1fms %s %s",
            outcome.method.value,
            outcome.route,
            _or_dash(status),
            outcome.duration_ms,
            _or_dash(outcome.request_payload_size),
            _or_dash(outcome.response_payload_size),
        )
