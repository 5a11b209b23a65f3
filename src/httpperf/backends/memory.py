from __future__ import annotations

import threading
from typing import List

from .base import MetricsBackend
from ..types import CallOutcome


class InMemoryBackend(MetricsBackend):
    """Keeps every reported outcome in a list. Handy in tests and notebooks."""

    name = "memory"

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._outcomes: List[CallOutcome] = []

    @property
    def outcomes(self) -> List[CallOutcome]:
        with self._lock:
            return list(self._outcomes)

    def report(self, outcome: CallOutcome) -> None:
        with self._lock:
            self._outcomes.append(outcome)

    def clear(self) -> None:
        with self._lock:
            self._outcomes.clear()
