"""
tests/test_metric_aggregator.py

Unit tests for MetricAggregator with a scripted in-memory gateway.
"""

from __future__ import annotations

import logging
import threading
from decimal import Decimal

import pytest

from app.connectors.base import GatewayClientError, GatewayServerError, GatewayTransportError
from app.domain.cubes import AuditQuery, CubeQuery
from app.domain.financials import (
    AuditOutcome,
    FactParseFailure,
    FactParseResult,
    FactParseSuccess,
    FactRecord,
)
from app.services.metric_aggregator import MetricAggregator


def _cells(cube: str, *rows: tuple[str, str, str]) -> FactParseSuccess:
    return FactParseSuccess(
        cube=cube,
        records=tuple(FactRecord(item_code=i, amount_type=t, amount=Decimal(a)) for i, t, a in rows),
    )


def _opinions(*labels: str) -> FactParseSuccess:
    return FactParseSuccess(
        cube="audit_opinions",
        records=tuple(FactRecord(item_code=None, amount_type=None, amount=None, label=l) for l in labels),
    )


Outcome = FactParseResult | Exception


class ScriptedGateway:
    """
    Returns canned results per cube and records every call.

    A list of outcomes is consumed one per call, the last entry repeating.
    When ``barrier`` is set, every fetch waits on it before answering.
    """

    def __init__(
        self,
        cubes: dict[str, Outcome | list[Outcome]],
        audit: Outcome,
        *,
        barrier: threading.Barrier | None = None,
    ) -> None:
        self._cubes = cubes
        self._audit = audit
        self._barrier = barrier
        self._lock = threading.Lock()
        self.cube_calls: list[str] = []
        self.audit_calls = 0

    def fetch_cube(self, query: CubeQuery, municipality_code: str, year: int) -> FactParseResult:
        with self._lock:
            self.cube_calls.append(query.cube)
            outcome = self._cubes.get(query.cube, FactParseSuccess(cube=query.cube, records=()))
            if isinstance(outcome, list):
                outcome = outcome.pop(0) if len(outcome) > 1 else outcome[0]
        return self._answer(outcome)

    def fetch_audit_opinions(self, query: AuditQuery, municipality_code: str, year: int) -> FactParseResult:
        with self._lock:
            self.audit_calls += 1
        return self._answer(self._audit)

    def _answer(self, outcome: Outcome) -> FactParseResult:
        if self._barrier is not None:
            self._barrier.wait(timeout=5)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@pytest.fixture()
def full_gateway() -> ScriptedGateway:
    return ScriptedGateway(
        cubes={
            "incexp_v2": _cells(
                "incexp_v2",
                ("0200", "AUDA", "300000000"),
                ("1400", "AUDA", "200000000"),
                ("3000", "AUDA", "480000000"),
                ("0200", "ORGB", "1"),
            ),
            "capital_v2": _cells("capital_v2", ("4100", "AUDA", "80000000")),
            "financial_position_v2": _cells("financial_position_v2", ("0500", "AUDA", "120000000")),
        },
        audit=_opinions("Unqualified - No findings"),
    )


class TestAggregate:
    def test_builds_complete_metric_set(self, full_gateway: ScriptedGateway) -> None:
        metrics = MetricAggregator(full_gateway).aggregate("CPT", 2023)
        assert metrics.year == 2023
        assert metrics.revenue == Decimal("500000000")
        assert metrics.expenditure == Decimal("480000000")
        assert metrics.capital_expenditure == Decimal("80000000")
        assert metrics.debt == Decimal("120000000")
        assert metrics.audit_outcome is AuditOutcome.CLEAN

    def test_shared_cube_is_fetched_once(self, full_gateway: ScriptedGateway) -> None:
        MetricAggregator(full_gateway).aggregate("CPT", 2023)
        assert sorted(full_gateway.cube_calls) == ["capital_v2", "financial_position_v2", "incexp_v2"]
        assert full_gateway.audit_calls == 1

    def test_missing_metric_is_none_not_zero(self) -> None:
        gateway = ScriptedGateway(
            cubes={"incexp_v2": _cells("incexp_v2", ("3000", "AUDA", "10"))},
            audit=_opinions(),
        )
        metrics = MetricAggregator(gateway).aggregate("BUF", 2023)
        assert metrics.revenue is None
        assert metrics.expenditure == Decimal("10")
        assert metrics.capital_expenditure is None
        assert metrics.debt is None
        assert metrics.audit_outcome is None

    def test_parse_failure_only_nulls_that_cube(self, full_gateway: ScriptedGateway, caplog) -> None:
        full_gateway._cubes["incexp_v2"] = FactParseFailure(
            cube="incexp_v2",
            reason="aggregate body has no 'cells' list",
            raw_payload={"error": "unexpected"},
        )
        with caplog.at_level(logging.ERROR, logger="app.services.metric_aggregator"):
            metrics = MetricAggregator(full_gateway).aggregate("CPT", 2023)

        assert metrics.revenue is None
        assert metrics.expenditure is None
        assert metrics.capital_expenditure == Decimal("80000000")
        assert metrics.debt == Decimal("120000000")
        assert "unexpected" in caplog.text
        assert "cube=incexp_v2" in caplog.text

    def test_unknown_audit_label_is_unavailable(self, full_gateway: ScriptedGateway) -> None:
        full_gateway._audit = _opinions("Something new")
        metrics = MetricAggregator(full_gateway).aggregate("CPT", 2023)
        assert metrics.audit_outcome is AuditOutcome.UNAVAILABLE

    def test_audit_parse_failure_is_none(self, full_gateway: ScriptedGateway) -> None:
        full_gateway._audit = FactParseFailure(cube="audit_opinions", reason="bad", raw_payload=[])
        metrics = MetricAggregator(full_gateway).aggregate("CPT", 2023)
        assert metrics.audit_outcome is None
        assert metrics.revenue == Decimal("500000000")

    def test_gateway_errors_propagate(self, full_gateway: ScriptedGateway) -> None:
        full_gateway._cubes["capital_v2"] = GatewayServerError(
            "upstream failed", source="municipal_money", status_code=502
        )
        with pytest.raises(GatewayServerError):
            MetricAggregator(full_gateway, max_attempts=1).aggregate("CPT", 2023)


class TestConcurrentFetch:
    def test_cube_and_audit_fetches_overlap(self, full_gateway: ScriptedGateway) -> None:
        # Three distinct cubes plus the audit query; a sequential caller
        # would break the barrier on its first wait.
        full_gateway._barrier = threading.Barrier(4)
        metrics = MetricAggregator(full_gateway).aggregate("CPT", 2023)
        assert metrics.revenue == Decimal("500000000")
        assert metrics.audit_outcome is AuditOutcome.CLEAN
        assert len(full_gateway.cube_calls) == 3

    def test_first_failure_in_query_order_is_raised(self, full_gateway: ScriptedGateway) -> None:
        full_gateway._cubes["incexp_v2"] = GatewayClientError("bad cut", source="municipal_money", status_code=400)
        full_gateway._cubes["capital_v2"] = GatewayClientError("bad cut", source="municipal_money", status_code=404)
        with pytest.raises(GatewayClientError) as info:
            MetricAggregator(full_gateway).aggregate("CPT", 2023)
        assert info.value.status_code == 400


class TestPerFetchRetry:
    @pytest.fixture()
    def sleeps(self) -> list[float]:
        return []

    def test_retry_refetches_only_the_failed_cube(self, full_gateway: ScriptedGateway, sleeps) -> None:
        capital = full_gateway._cubes["capital_v2"]
        full_gateway._cubes["capital_v2"] = [
            GatewayServerError("upstream failed", source="municipal_money", status_code=502),
            capital,
        ]

        metrics = MetricAggregator(full_gateway, max_attempts=3, sleep=sleeps.append).aggregate("CPT", 2023)

        assert metrics.capital_expenditure == Decimal("80000000")
        assert full_gateway.cube_calls.count("capital_v2") == 2
        assert full_gateway.cube_calls.count("incexp_v2") == 1
        assert full_gateway.cube_calls.count("financial_position_v2") == 1
        assert full_gateway.audit_calls == 1
        assert sleeps == [0.5]

    def test_attempts_are_bounded_with_exponential_backoff(self, full_gateway: ScriptedGateway, sleeps) -> None:
        full_gateway._cubes["capital_v2"] = GatewayTransportError("timeout", source="municipal_money")
        aggregator = MetricAggregator(full_gateway, max_attempts=3, sleep=sleeps.append)

        with pytest.raises(GatewayTransportError):
            aggregator.aggregate("CPT", 2023)
        assert full_gateway.cube_calls.count("capital_v2") == 3
        assert sleeps == [0.5, 1.0]

    def test_audit_fetch_is_retried(self, full_gateway: ScriptedGateway, sleeps) -> None:
        attempts = iter([GatewayTransportError("timeout", source="municipal_money"), _opinions("Qualified")])

        def flaky_audit(query, municipality_code, year):
            full_gateway.audit_calls += 1
            outcome = next(attempts)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome

        full_gateway.fetch_audit_opinions = flaky_audit
        metrics = MetricAggregator(full_gateway, sleep=sleeps.append).aggregate("CPT", 2023)

        assert metrics.audit_outcome is AuditOutcome.QUALIFIED
        assert full_gateway.audit_calls == 2
        assert len(full_gateway.cube_calls) == 3

    def test_client_error_is_not_retried(self, full_gateway: ScriptedGateway, sleeps) -> None:
        full_gateway._cubes["capital_v2"] = GatewayClientError("bad cut", source="municipal_money", status_code=400)
        with pytest.raises(GatewayClientError):
            MetricAggregator(full_gateway, max_attempts=3, sleep=sleeps.append).aggregate("CPT", 2023)
        assert full_gateway.cube_calls.count("capital_v2") == 1
        assert sleeps == []

    def test_max_attempts_must_be_positive(self, full_gateway: ScriptedGateway) -> None:
        with pytest.raises(ValueError):
            MetricAggregator(full_gateway, max_attempts=0)
