"""
tests/helpers.py

Constants and fakes shared across test modules.
"""

from __future__ import annotations

import threading
from datetime import datetime, timezone

from app.domain.financials import MetricSet

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)

CPT_GEOMETRY = {
    "type": "Polygon",
    "coordinates": [[[18.3, -34.3], [18.9, -34.3], [18.9, -33.5], [18.3, -33.5], [18.3, -34.3]]],
}


class FakeClock:
    """Settable UTC clock."""

    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class FakeAggregator:
    """
    Stand-in for MetricAggregator.

    ``outcomes`` is consumed one entry per call; an exception instance is
    raised, a MetricSet is returned. The last entry repeats. When
    ``gate`` is set, each call blocks until the gate opens.
    """

    def __init__(self, *outcomes, gate: threading.Event | None = None) -> None:
        self._outcomes = list(outcomes)
        self._gate = gate
        self._lock = threading.Lock()
        self.calls: list[tuple[str, int]] = []
        self.entered = threading.Event()

    def aggregate(self, municipality_code: str, year: int) -> MetricSet:
        with self._lock:
            self.calls.append((municipality_code, year))
            index = min(len(self.calls), len(self._outcomes)) - 1
            outcome = self._outcomes[index]
        self.entered.set()
        if self._gate is not None:
            self._gate.wait(timeout=5)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome
