"""
app/services/metric_aggregator.py

Builds one MetricSet for a municipality-year from Municipal Money cubes.

Every distinct cube query and the audit opinion query are fetched
concurrently, one worker per query. Each fetch carries its own retry
budget, so a retryable failure on one cube never refetches the others.

Failure contract
----------------
- Cube returns no matching facts  → that metric is ``None``
- Cube body has the wrong shape   → logged with the raw payload; every
                                    metric fed by that cube is ``None``
- Retryable gateway error         → that fetch alone is retried with
                                    exponential backoff
- Gateway error after retries     → ``GatewayError`` propagates to the
                                    refresh controller

Metrics are independent: one missing metric never blocks the others.
Missing values are kept as ``None``; zero-substitution is the scoring
engine's concern.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from decimal import Decimal
from typing import Sequence, TypeVar

from app.connectors.base import GatewayError
from app.connectors.municipal_money_connector import MunicipalMoneyConnector
from app.domain.cubes import AUDIT_QUERY, METRIC_QUERIES, AuditQuery, CubeQuery
from app.domain.financials import AuditOutcome, FactParseFailure, FactParseResult, MetricSet
from app.mappers.fact_mapper import MappedAmount, map_audit_opinion, map_facts

logger = logging.getLogger(__name__)

_RAW_PAYLOAD_LOG_CHARS = 2000

T = TypeVar("T")
CubeKey = tuple[str, str]


class MetricAggregator:
    """
    Coordinates one gateway call per distinct cube and one mapper call per metric.

    Parameters
    ----------
    gateway:
        Municipal Money connector (or any object with ``fetch_cube`` and
        ``fetch_audit_opinions``).
    max_attempts:
        Upper bound on attempts per fetch for retryable gateway errors.
    backoff_initial_seconds, backoff_multiplier:
        Exponential backoff between attempts of one fetch.
    sleep:
        Injected for tests.
    """

    def __init__(
        self,
        gateway: MunicipalMoneyConnector,
        *,
        metric_queries: Sequence[CubeQuery] = METRIC_QUERIES,
        audit_query: AuditQuery = AUDIT_QUERY,
        max_attempts: int = 2,
        backoff_initial_seconds: float = 0.5,
        backoff_multiplier: float = 2.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._gateway = gateway
        self._metric_queries = tuple(metric_queries)
        self._audit_query = audit_query
        self._max_attempts = max_attempts
        self._backoff_initial_seconds = backoff_initial_seconds
        self._backoff_multiplier = backoff_multiplier
        self._sleep = sleep

    def aggregate(self, municipality_code: str, year: int) -> MetricSet:
        """
        Fetch and map every metric for ``municipality_code`` in ``year``.

        Raises
        ------
        GatewayError
            A fetch still failed after its retries. When several fail, the
            first in query order is raised.
        """

        distinct: dict[CubeKey, CubeQuery] = {}
        for query in self._metric_queries:
            distinct.setdefault((query.cube, query.year_dimension), query)

        with ThreadPoolExecutor(
            max_workers=len(distinct) + 1,
            thread_name_prefix="muni-money",
        ) as executor:
            cube_futures: dict[CubeKey, Future[FactParseResult]] = {
                key: executor.submit(
                    self._fetch_with_retry,
                    query.cube,
                    municipality_code,
                    year,
                    self._gateway.fetch_cube,
                    query,
                )
                for key, query in distinct.items()
            }
            audit_future = executor.submit(
                self._fetch_with_retry,
                self._audit_query.cube,
                municipality_code,
                year,
                self._gateway.fetch_audit_opinions,
                self._audit_query,
            )

        # The executor has joined every worker; collect in query order.
        responses: dict[CubeKey, FactParseResult] = {}
        for key, future in cube_futures.items():
            parsed = future.result()
            if isinstance(parsed, FactParseFailure):
                _log_parse_failure(parsed, municipality_code, year)
            responses[key] = parsed
        audit_parsed = audit_future.result()

        values: dict[str, Decimal | None] = {
            query.metric: self._map_metric(
                responses[(query.cube, query.year_dimension)], query, municipality_code, year
            )
            for query in self._metric_queries
        }
        audit_outcome = self._map_audit(audit_parsed, municipality_code, year)

        metrics = MetricSet(
            year=year,
            revenue=values.get("revenue"),
            expenditure=values.get("expenditure"),
            capital_expenditure=values.get("capital_expenditure"),
            debt=values.get("debt"),
            audit_outcome=audit_outcome,
        )
        logger.info(
            "Aggregated metrics municipality=%s year=%s available=%s",
            municipality_code,
            year,
            ",".join(name for name in ("revenue", "expenditure", "capital_expenditure", "debt")
                     if getattr(metrics, name) is not None) or "<none>",
        )
        return metrics

    def _fetch_with_retry(
        self,
        cube: str,
        municipality_code: str,
        year: int,
        fetch: Callable[[T, str, int], FactParseResult],
        query: T,
    ) -> FactParseResult:
        delay = self._backoff_initial_seconds
        for attempt in range(1, self._max_attempts + 1):
            try:
                return fetch(query, municipality_code, year)
            except GatewayError as exc:
                if not exc.retryable or attempt >= self._max_attempts:
                    raise
                logger.warning(
                    "Gateway error cube=%s municipality=%s year=%s attempt=%s/%s retry_in=%.2fs error=%s",
                    cube,
                    municipality_code,
                    year,
                    attempt,
                    self._max_attempts,
                    delay,
                    exc,
                )
                self._sleep(delay)
                delay *= self._backoff_multiplier
        raise AssertionError("unreachable")

    def _map_metric(
        self,
        parsed: FactParseResult,
        query: CubeQuery,
        municipality_code: str,
        year: int,
    ) -> Decimal | None:
        if isinstance(parsed, FactParseFailure):
            return None
        mapped = map_facts(parsed.records, query)
        if isinstance(mapped, MappedAmount):
            logger.debug(
                "Mapped metric=%s municipality=%s year=%s amount_type=%s records=%s",
                query.metric,
                municipality_code,
                year,
                mapped.amount_type,
                mapped.record_count,
            )
            return mapped.amount
        logger.info(
            "No data metric=%s municipality=%s year=%s reason=%s",
            query.metric,
            municipality_code,
            year,
            mapped.reason,
        )
        return None

    def _map_audit(
        self,
        parsed: FactParseResult,
        municipality_code: str,
        year: int,
    ) -> AuditOutcome | None:
        if isinstance(parsed, FactParseFailure):
            _log_parse_failure(parsed, municipality_code, year)
            return None
        outcome = map_audit_opinion(parsed.records)
        if outcome is AuditOutcome.UNAVAILABLE:
            labels = [record.label for record in parsed.records]
            logger.info(
                "Audit opinion unavailable municipality=%s year=%s labels=%s",
                municipality_code,
                year,
                labels,
            )
        return outcome


def _log_parse_failure(failure: FactParseFailure, municipality_code: str, year: int) -> None:
    raw = repr(failure.raw_payload)
    logger.error(
        "Unexpected cube payload cube=%s municipality=%s year=%s reason=%s raw=%s",
        failure.cube,
        municipality_code,
        year,
        failure.reason,
        raw[:_RAW_PAYLOAD_LOG_CHARS],
    )
