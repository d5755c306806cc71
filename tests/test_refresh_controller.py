"""
tests/test_refresh_controller.py

Tests for the cache-aside refresh controller.

The gateway side is a FakeAggregator; the store is either an in-memory
fake (for concurrency and error injection) or the real SQLite-backed
FinancialCacheStore.

Coverage
--------
- Fresh cache served without a gateway call
- Missing and stale rows refreshed and written through
- Gateway failures after the aggregator's retries fall back
- Serve-stale and no-data fallbacks
- Conflict on insert retried as update
- Storage unavailability propagates
- Exactly one gateway call and one row for concurrent requests
- REFRESHING reported while a refresh is in flight
- Batch refresh of stale keys
"""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from app.connectors.base import GatewayClientError, GatewayServerError
from app.domain.financials import CachedFinancials, MetricSet, RefreshState, ScoreResult
from app.services.refresh_controller import RefreshController, RefreshFailedNoDataError
from db.repositories.errors import CacheConflictError, CacheUnavailableError
from db.repositories.financial_cache_repository import FinancialCacheStore
from scoring.engine import score
from tests.helpers import NOW, FakeAggregator

OLD_SCORES = ScoreResult(10.0, 10.0, 10.0, 10.0, 10.0)


def _server_error() -> GatewayServerError:
    return GatewayServerError("upstream failed", source="municipal_money", status_code=502)


class InMemoryStore:
    """Thread-safe dict-backed stand-in for FinancialCacheStore."""

    def __init__(self) -> None:
        self.rows: dict[tuple[str, int], CachedFinancials] = {}
        self.upserts = 0
        self.conflicts_to_raise = 0
        self.unavailable = False
        self._lock = threading.Lock()

    def seed(self, code: str, metrics: MetricSet, scores: ScoreResult, fetched_at: datetime) -> None:
        self.rows[(code, metrics.year)] = CachedFinancials(code, metrics, scores, fetched_at)

    def get(self, municipality_code: str, year: int) -> CachedFinancials | None:
        if self.unavailable:
            raise CacheUnavailableError("connection refused")
        with self._lock:
            return self.rows.get((municipality_code, year))

    def upsert(self, municipality_code, metrics, scores, fetched_at) -> CachedFinancials:
        with self._lock:
            if self.conflicts_to_raise:
                self.conflicts_to_raise -= 1
                raise CacheConflictError("duplicate key")
            self.upserts += 1
            cached = CachedFinancials(municipality_code, metrics, scores, fetched_at)
            self.rows[(municipality_code, metrics.year)] = cached
            return cached


@pytest.fixture()
def store() -> InMemoryStore:
    return InMemoryStore()


def _controller(store, aggregator, clock, **kwargs) -> RefreshController:
    return RefreshController(store, aggregator, clock=clock, **kwargs)


# ---------------------------------------------------------------------------
# Cache-aside paths
# ---------------------------------------------------------------------------


class TestCacheAside:
    def test_fresh_row_is_served_without_gateway_call(self, store, clock, cpt_metrics) -> None:
        store.seed("CPT", cpt_metrics, OLD_SCORES, NOW - timedelta(hours=1))
        aggregator = FakeAggregator(cpt_metrics)

        snapshot = _controller(store, aggregator, clock).get_financials("CPT", 2023)

        assert snapshot.state is RefreshState.SERVING_CACHED
        assert snapshot.stale is False
        assert snapshot.scores == OLD_SCORES
        assert aggregator.calls == []

    def test_missing_row_is_fetched_scored_and_stored(self, store, clock, cpt_metrics) -> None:
        aggregator = FakeAggregator(cpt_metrics)

        snapshot = _controller(store, aggregator, clock).get_financials("CPT", 2023, 4_600_000)

        assert aggregator.calls == [("CPT", 2023)]
        assert snapshot.state is RefreshState.SERVING_CACHED
        assert snapshot.scores == score(cpt_metrics, 4_600_000)
        assert snapshot.fetched_at == NOW
        assert store.rows[("CPT", 2023)].scores.overall_score == 60.94

    def test_stale_row_is_refreshed(self, store, clock, cpt_metrics) -> None:
        store.seed("CPT", MetricSet(year=2023), OLD_SCORES, NOW - timedelta(hours=25))
        aggregator = FakeAggregator(cpt_metrics)

        snapshot = _controller(store, aggregator, clock).get_financials("CPT", 2023, 4_600_000)

        assert len(aggregator.calls) == 1
        assert snapshot.metrics == cpt_metrics
        assert store.rows[("CPT", 2023)].fetched_at == NOW

    def test_ttl_boundary_counts_as_stale(self, store, clock, cpt_metrics) -> None:
        store.seed("CPT", cpt_metrics, OLD_SCORES, NOW - timedelta(hours=24))
        aggregator = FakeAggregator(cpt_metrics)
        _controller(store, aggregator, clock).get_financials("CPT", 2023)
        assert len(aggregator.calls) == 1

    def test_custom_ttl(self, store, clock, cpt_metrics) -> None:
        store.seed("CPT", cpt_metrics, OLD_SCORES, NOW - timedelta(hours=2))
        aggregator = FakeAggregator(cpt_metrics)
        _controller(store, aggregator, clock, ttl=timedelta(hours=1)).get_financials("CPT", 2023)
        assert len(aggregator.calls) == 1


# ---------------------------------------------------------------------------
# Failure handling
# ---------------------------------------------------------------------------


class TestFailures:
    def test_gateway_error_is_not_retried_by_controller(self, store, clock) -> None:
        aggregator = FakeAggregator(GatewayClientError("bad cut", source="municipal_money", status_code=400))
        controller = _controller(store, aggregator, clock)

        with pytest.raises(RefreshFailedNoDataError) as info:
            controller.get_financials("CPT", 2023)
        assert len(aggregator.calls) == 1
        assert "GatewayClientError" in info.value.reason

    def test_failure_with_stale_row_serves_stale(self, store, clock, cpt_metrics) -> None:
        stale_at = NOW - timedelta(days=3)
        store.seed("CPT", cpt_metrics, OLD_SCORES, stale_at)
        aggregator = FakeAggregator(_server_error())

        snapshot = _controller(store, aggregator, clock).get_financials("CPT", 2023)

        assert snapshot.state is RefreshState.REFRESH_FAILED_SERVE_STALE
        assert snapshot.stale is True
        assert snapshot.fetched_at == stale_at
        assert snapshot.scores == OLD_SCORES
        assert "GatewayServerError" in snapshot.failure_reason
        assert store.upserts == 0

    def test_failure_without_row_is_no_data(self, store, clock) -> None:
        aggregator = FakeAggregator(_server_error())
        with pytest.raises(RefreshFailedNoDataError) as info:
            _controller(store, aggregator, clock).get_financials("CPT", 2023)
        assert info.value.municipality_code == "CPT"
        assert info.value.year == 2023
        assert store.rows == {}

    def test_insert_conflict_is_retried_as_update(self, store, clock, cpt_metrics) -> None:
        store.conflicts_to_raise = 1
        snapshot = _controller(store, FakeAggregator(cpt_metrics), clock).get_financials("CPT", 2023)
        assert snapshot.state is RefreshState.SERVING_CACHED
        assert store.upserts == 1

    def test_storage_unavailable_propagates(self, store, clock, cpt_metrics) -> None:
        store.unavailable = True
        aggregator = FakeAggregator(cpt_metrics)
        with pytest.raises(CacheUnavailableError):
            _controller(store, aggregator, clock).get_financials("CPT", 2023)
        assert aggregator.calls == []


# ---------------------------------------------------------------------------
# Single flight
# ---------------------------------------------------------------------------


class TestSingleFlight:
    def test_concurrent_requests_share_one_refresh(self, store, clock, cpt_metrics) -> None:
        gate = threading.Event()
        aggregator = FakeAggregator(cpt_metrics, gate=gate)
        controller = _controller(store, aggregator, clock)
        workers = 8

        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = [pool.submit(controller.get_financials, "CPT", 2023, 4_600_000) for _ in range(workers)]
            assert aggregator.entered.wait(timeout=5)
            gate.set()
            snapshots = [f.result(timeout=5) for f in futures]

        assert len(aggregator.calls) == 1
        assert store.upserts == 1
        assert len(store.rows) == 1
        assert {s.scores for s in snapshots} == {score(cpt_metrics, 4_600_000)}

    def test_followers_share_leader_failure(self, store, clock) -> None:
        gate = threading.Event()
        aggregator = FakeAggregator(_server_error(), gate=gate)
        controller = _controller(store, aggregator, clock)

        with ThreadPoolExecutor(max_workers=4) as pool:
            futures = [pool.submit(controller.get_financials, "CPT", 2023) for _ in range(4)]
            assert aggregator.entered.wait(timeout=5)
            gate.set()
            errors = [f.exception(timeout=5) for f in futures]

        assert all(isinstance(e, RefreshFailedNoDataError) for e in errors)
        # A late follower may start its own refresh after the leader failed.
        assert 1 <= len(aggregator.calls) <= 4

    def test_distinct_keys_refresh_independently(self, store, clock, cpt_metrics) -> None:
        aggregator = FakeAggregator(cpt_metrics)
        controller = _controller(store, aggregator, clock)

        controller.get_financials("CPT", 2023)
        controller.get_financials("BUF", 2023)

        assert aggregator.calls == [("CPT", 2023), ("BUF", 2023)]
        assert set(store.rows) == {("CPT", 2023), ("BUF", 2023)}

    def test_in_flight_map_is_cleared(self, store, clock, cpt_metrics) -> None:
        controller = _controller(store, FakeAggregator(cpt_metrics), clock)
        controller.get_financials("CPT", 2023)
        assert controller._in_flight == {}

    def test_refreshing_state_is_reported_while_in_flight(self, store, clock, cpt_metrics) -> None:
        gate = threading.Event()
        aggregator = FakeAggregator(cpt_metrics, gate=gate)
        controller = _controller(store, aggregator, clock)
        assert controller.in_flight_state("CPT", 2023) is None

        with ThreadPoolExecutor(max_workers=1) as pool:
            future = pool.submit(controller.get_financials, "CPT", 2023)
            assert aggregator.entered.wait(timeout=5)
            assert controller.in_flight_state("CPT", 2023) is RefreshState.REFRESHING
            assert controller.in_flight_state("BUF", 2023) is None
            gate.set()
            snapshot = future.result(timeout=5)

        assert snapshot.state is RefreshState.SERVING_CACHED
        assert controller.in_flight_state("CPT", 2023) is None


# ---------------------------------------------------------------------------
# Batch refresh
# ---------------------------------------------------------------------------


class TestRefreshStale:
    def test_summary_counts(self, store, clock, cpt_metrics) -> None:
        store.seed("CPT", cpt_metrics, OLD_SCORES, NOW - timedelta(days=2))
        store.seed("BUF", MetricSet(year=2023), OLD_SCORES, NOW - timedelta(days=2))
        aggregator = FakeAggregator(cpt_metrics, _server_error())
        controller = _controller(store, aggregator, clock)

        summary = controller.refresh_stale(
            [("CPT", 2023), ("BUF", 2023), ("JHB", 2023)],
            population_for=lambda code: 4_600_000 if code == "CPT" else None,
        )

        assert summary == {"refreshed": 1, "served_stale": 1, "failed": 1}
        assert store.rows[("CPT", 2023)].scores.overall_score == 60.94


# ---------------------------------------------------------------------------
# Real store
# ---------------------------------------------------------------------------


class TestWithSQLiteStore:
    def test_refresh_writes_one_row_and_serves_it(self, seeded_factory, clock, cpt_metrics) -> None:
        store = FinancialCacheStore(seeded_factory)
        aggregator = FakeAggregator(cpt_metrics)
        controller = _controller(store, aggregator, clock)

        first = controller.get_financials("CPT", 2023, 4_600_000)
        second = controller.get_financials("CPT", 2023, 4_600_000)

        assert len(aggregator.calls) == 1
        assert first.scores == second.scores
        assert second.metrics.revenue == Decimal("500000000")
        assert len(store.list_for_municipality("CPT")) == 1

    def test_stale_row_replaced_after_clock_moves(self, seeded_factory, clock, cpt_metrics) -> None:
        store = FinancialCacheStore(seeded_factory)
        aggregator = FakeAggregator(MetricSet(year=2023), cpt_metrics)
        controller = _controller(store, aggregator, clock)

        controller.get_financials("CPT", 2023, 4_600_000)
        clock.now = NOW + timedelta(hours=25)
        refreshed = controller.get_financials("CPT", 2023, 4_600_000)

        assert len(aggregator.calls) == 2
        assert refreshed.scores.overall_score == 60.94
        assert store.get("CPT", 2023).fetched_at == NOW + timedelta(hours=25)
