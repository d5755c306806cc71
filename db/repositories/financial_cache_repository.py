"""
db/repositories/financial_cache_repository.py

Persistence for cached ``financial_data`` rows keyed by
``(municipality_code, year)``.

Unlike the request-scoped repositories, the store owns its sessions:
every public method runs in one short transaction obtained from the
injected session factory, so it can be shared across threads by the
refresh controller and the scheduler.

Error contract
--------------
- Driver / connection failure → ``CacheUnavailableError``
- Unique-key collision on insert → ``CacheConflictError``
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.orm import Session

from app.domain.financials import AuditOutcome, CachedFinancials, MetricSet, ScoreResult
from db.models.financial_data import FinancialData
from db.repositories.errors import CacheConflictError, CacheUnavailableError

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], Session]


def _as_utc(value: datetime) -> datetime:
    # SQLite drops tzinfo on round-trip; stored values are always UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _to_cached(row: FinancialData) -> CachedFinancials:
    audit = AuditOutcome(row.audit_outcome) if row.audit_outcome else None
    return CachedFinancials(
        municipality_code=row.municipality_code,
        metrics=MetricSet(
            year=row.year,
            revenue=row.revenue,
            expenditure=row.expenditure,
            capital_expenditure=row.capital_expenditure,
            debt=row.debt,
            audit_outcome=audit,
        ),
        scores=ScoreResult(
            overall_score=float(row.overall_score),
            financial_health_score=float(row.financial_health_score),
            infrastructure_score=float(row.infrastructure_score),
            efficiency_score=float(row.efficiency_score),
            accountability_score=float(row.accountability_score),
        ),
        fetched_at=_as_utc(row.fetched_at),
    )


def _apply(row: FinancialData, metrics: MetricSet, scores: ScoreResult, fetched_at: datetime) -> None:
    row.revenue = metrics.revenue
    row.expenditure = metrics.expenditure
    row.capital_expenditure = metrics.capital_expenditure
    row.debt = metrics.debt
    row.audit_outcome = metrics.audit_outcome.value if metrics.audit_outcome else None
    row.overall_score = scores.overall_score
    row.financial_health_score = scores.financial_health_score
    row.infrastructure_score = scores.infrastructure_score
    row.efficiency_score = scores.efficiency_score
    row.accountability_score = scores.accountability_score
    row.fetched_at = fetched_at


class FinancialCacheStore:
    """
    Read/write access to cached financial rows.
    """

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    @contextmanager
    def _transaction(self) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except IntegrityError:
            session.rollback()
            raise
        except (OperationalError, DBAPIError) as exc:
            session.rollback()
            logger.error("Cache store unavailable error=%s", exc.__class__.__name__)
            raise CacheUnavailableError(str(exc)) from exc
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get(self, municipality_code: str, year: int) -> CachedFinancials | None:
        """
        Return the cached row for ``(municipality_code, year)`` or None.
        """
        with self._transaction() as session:
            row = session.scalars(
                select(FinancialData).where(
                    FinancialData.municipality_code == municipality_code,
                    FinancialData.year == year,
                )
            ).one_or_none()
            return _to_cached(row) if row is not None else None

    def list_for_municipality(self, municipality_code: str) -> list[CachedFinancials]:
        """
        Return every cached year for a municipality, newest year first.
        """
        with self._transaction() as session:
            rows = session.scalars(
                select(FinancialData)
                .where(FinancialData.municipality_code == municipality_code)
                .order_by(FinancialData.year.desc())
            ).all()
            return [_to_cached(row) for row in rows]

    def list_stale_keys(self, fetched_before: datetime, *, limit: int | None = None) -> list[tuple[str, int]]:
        """
        Return ``(municipality_code, year)`` keys fetched before the cutoff,
        oldest first.
        """
        stmt = (
            select(FinancialData.municipality_code, FinancialData.year)
            .where(FinancialData.fetched_at < fetched_before)
            .order_by(FinancialData.fetched_at.asc())
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        with self._transaction() as session:
            return [(code, year) for code, year in session.execute(stmt).all()]

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def upsert(
        self,
        municipality_code: str,
        metrics: MetricSet,
        scores: ScoreResult,
        fetched_at: datetime,
    ) -> CachedFinancials:
        """
        Insert or replace the row for ``(municipality_code, metrics.year)``.

        The existing row is overwritten in full; nothing is merged. A
        concurrent insert of the same key raises ``CacheConflictError`` and
        leaves the table unchanged; calling again takes the update path.
        """
        try:
            return self._write(municipality_code, metrics, scores, _as_utc(fetched_at))
        except IntegrityError as exc:
            logger.warning(
                "Cache insert collided municipality=%s year=%s",
                municipality_code,
                metrics.year,
            )
            raise CacheConflictError(
                f"Concurrent write to financial_data for {municipality_code}/{metrics.year}"
            ) from exc

    def _write(
        self,
        municipality_code: str,
        metrics: MetricSet,
        scores: ScoreResult,
        fetched_at: datetime,
    ) -> CachedFinancials:
        with self._transaction() as session:
            row = session.scalars(
                select(FinancialData).where(
                    FinancialData.municipality_code == municipality_code,
                    FinancialData.year == metrics.year,
                )
            ).one_or_none()
            if row is None:
                row = FinancialData(municipality_code=municipality_code, year=metrics.year)
                session.add(row)
            _apply(row, metrics, scores, fetched_at)
            session.flush()
            cached = _to_cached(row)
        logger.info(
            "Cached financials municipality=%s year=%s overall=%s",
            municipality_code,
            metrics.year,
            scores.overall_score,
        )
        return cached
