"""
app/services/refresh_controller.py

Cache-aside controller for municipality financials.

Per (municipality_code, year) request:

    cached and fresh            → SERVING_CACHED
    missing or stale            → REFRESHING
        gateway + score + upsert succeed → SERVING_CACHED
        refresh fails, stale row exists  → REFRESH_FAILED_SERVE_STALE
        refresh fails, nothing cached    → REFRESH_FAILED_NO_DATA (raised)

At most one refresh per key is in flight inside this process. Later
callers for the same key block on the leader's future and share its
outcome, including its exception. Distinct keys refresh independently.

Storage failures (``CacheUnavailableError``) are never masked.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable
from concurrent.futures import Future
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from app.connectors.base import GatewayError
from app.domain.financials import (
    CachedFinancials,
    FinancialSnapshot,
    MetricSet,
    RefreshState,
    ScoreResult,
)
from app.services.metric_aggregator import MetricAggregator
from db.repositories.errors import CacheConflictError
from db.repositories.financial_cache_repository import FinancialCacheStore
from scoring.engine import score as default_scorer

logger = logging.getLogger(__name__)

Population = float | int | Decimal | None
Scorer = Callable[[MetricSet, Population], ScoreResult]
RefreshKey = tuple[str, int]


class RefreshFailedNoDataError(RuntimeError):
    """
    Raised when a refresh fails and there is no cached row to fall back on.
    """

    def __init__(self, municipality_code: str, year: int, reason: str) -> None:
        super().__init__(f"No financial data available for {municipality_code}/{year}: {reason}")
        self.municipality_code = municipality_code
        self.year = year
        self.reason = reason


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _snapshot(
    cached: CachedFinancials,
    state: RefreshState,
    *,
    stale: bool = False,
    failure_reason: str | None = None,
) -> FinancialSnapshot:
    return FinancialSnapshot(
        municipality_code=cached.municipality_code,
        metrics=cached.metrics,
        scores=cached.scores,
        fetched_at=cached.fetched_at,
        state=state,
        stale=stale,
        failure_reason=failure_reason,
    )


class RefreshController:
    """
    Decides between serving the cache and refreshing from Municipal Money.

    Parameters
    ----------
    store:
        Cache store; its session factory is the only database handle used.
    aggregator:
        Builds a MetricSet from the gateway, retrying each cube fetch on
        its own.
    scorer:
        Pure scoring function, ``scoring.engine.score`` by default.
    ttl:
        Maximum age of a cached row before it is refreshed.
    clock:
        Injected for tests.
    """

    def __init__(
        self,
        store: FinancialCacheStore,
        aggregator: MetricAggregator,
        *,
        scorer: Scorer = default_scorer,
        ttl: timedelta = timedelta(hours=24),
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._aggregator = aggregator
        self._scorer = scorer
        self._ttl = ttl
        self._clock = clock

        self._lock = threading.Lock()
        self._in_flight: dict[RefreshKey, Future[FinancialSnapshot]] = {}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def is_fresh(self, cached: CachedFinancials | None) -> bool:
        if cached is None:
            return False
        return self._clock() - cached.fetched_at < self._ttl

    def in_flight_state(self, municipality_code: str, year: int) -> RefreshState | None:
        """
        Return ``REFRESHING`` while a refresh for the key runs in this
        process, otherwise None.
        """
        with self._lock:
            running = (municipality_code, year) in self._in_flight
        return RefreshState.REFRESHING if running else None

    def get_financials(
        self,
        municipality_code: str,
        year: int,
        population: Population = None,
    ) -> FinancialSnapshot:
        """
        Return financials for one municipality-year, refreshing when needed.

        Raises
        ------
        RefreshFailedNoDataError
            Refresh failed and nothing is cached for the key.
        CacheUnavailableError
            The cache store could not be reached.
        """
        cached = self._store.get(municipality_code, year)
        if self.is_fresh(cached):
            logger.debug("Serving cached financials municipality=%s year=%s", municipality_code, year)
            return _snapshot(cached, RefreshState.SERVING_CACHED)

        return self._refresh_single_flight(municipality_code, year, population)

    def refresh_stale(
        self,
        keys: Iterable[RefreshKey],
        population_for: Callable[[str], Population] | None = None,
    ) -> dict[str, int]:
        """
        Refresh every stale key in ``keys``; fresh keys are left alone.

        Per-key refresh failures are counted and logged. Storage failures
        abort the batch.
        """
        summary = {"refreshed": 0, "served_stale": 0, "failed": 0}
        for municipality_code, year in keys:
            population = population_for(municipality_code) if population_for else None
            try:
                snapshot = self.get_financials(municipality_code, year, population)
            except RefreshFailedNoDataError as exc:
                summary["failed"] += 1
                logger.warning(
                    "Scheduled refresh failed municipality=%s year=%s reason=%s",
                    municipality_code,
                    year,
                    exc.reason,
                )
                continue

            summary["served_stale" if snapshot.stale else "refreshed"] += 1
        logger.info("Scheduled refresh complete summary=%s", summary)
        return summary

    # ------------------------------------------------------------------
    # Refresh path
    # ------------------------------------------------------------------

    def _refresh_single_flight(
        self,
        municipality_code: str,
        year: int,
        population: Population,
    ) -> FinancialSnapshot:
        key = (municipality_code, year)
        with self._lock:
            future = self._in_flight.get(key)
            is_leader = future is None
            if is_leader:
                future = Future()
                self._in_flight[key] = future

        if not is_leader:
            logger.debug(
                "Joining in-flight refresh municipality=%s year=%s state=%s",
                municipality_code,
                year,
                RefreshState.REFRESHING.value,
            )
            return future.result()

        try:
            snapshot = self._refresh(municipality_code, year, population)
        except BaseException as exc:
            future.set_exception(exc)
            raise
        else:
            future.set_result(snapshot)
            return snapshot
        finally:
            with self._lock:
                self._in_flight.pop(key, None)

    def _refresh(
        self,
        municipality_code: str,
        year: int,
        population: Population,
    ) -> FinancialSnapshot:
        # Another process may have refreshed the row since the first read.
        cached = self._store.get(municipality_code, year)
        if self.is_fresh(cached):
            return _snapshot(cached, RefreshState.SERVING_CACHED)

        logger.info(
            "Refreshing financials municipality=%s year=%s cached=%s",
            municipality_code,
            year,
            cached is not None,
        )
        started = self._clock()
        try:
            metrics = self._aggregator.aggregate(municipality_code, year)
        except GatewayError as exc:
            return self._fall_back(cached, municipality_code, year, exc)

        scores = self._scorer(metrics, population)
        stored = self._write_through(municipality_code, metrics, scores, started)
        return _snapshot(stored, RefreshState.SERVING_CACHED)

    def _write_through(
        self,
        municipality_code: str,
        metrics: MetricSet,
        scores: ScoreResult,
        fetched_at: datetime,
    ) -> CachedFinancials:
        try:
            return self._store.upsert(municipality_code, metrics, scores, fetched_at)
        except CacheConflictError:
            logger.info(
                "Retrying cache write as update municipality=%s year=%s",
                municipality_code,
                metrics.year,
            )
            return self._store.upsert(municipality_code, metrics, scores, fetched_at)

    def _fall_back(
        self,
        cached: CachedFinancials | None,
        municipality_code: str,
        year: int,
        exc: GatewayError,
    ) -> FinancialSnapshot:
        reason = f"{exc.__class__.__name__}: {exc}"
        if cached is None:
            logger.error(
                "Refresh failed with no cached data municipality=%s year=%s error=%s",
                municipality_code,
                year,
                reason,
            )
            raise RefreshFailedNoDataError(municipality_code, year, reason) from exc

        logger.warning(
            "Refresh failed, serving stale municipality=%s year=%s fetched_at=%s error=%s",
            municipality_code,
            year,
            cached.fetched_at.isoformat(),
            reason,
        )
        return _snapshot(
            cached,
            RefreshState.REFRESH_FAILED_SERVE_STALE,
            stale=True,
            failure_reason=reason,
        )
