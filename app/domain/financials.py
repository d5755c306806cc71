"""
app/domain/financials.py

Domain models shared by the fact mapper, metric aggregator, scoring
engine, cache store and refresh controller.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any


class AuditOutcome(str, Enum):
    """
    Canonical audit opinion categories.
    """

    CLEAN = "Clean"
    UNQUALIFIED = "Unqualified"
    QUALIFIED = "Qualified"
    ADVERSE = "Adverse"
    DISCLAIMER = "Disclaimer"
    UNAVAILABLE = "Unavailable"


# Keys are normalized with ``str.strip().lower()``. Anything not listed
# here is Unavailable; do not add guessed synonyms.
AUDIT_OUTCOME_LOOKUP: dict[str, AuditOutcome] = {
    "unqualified - no findings": AuditOutcome.CLEAN,
    "unqualified - emphasis of matter items": AuditOutcome.UNQUALIFIED,
    "qualified": AuditOutcome.QUALIFIED,
    "adverse": AuditOutcome.ADVERSE,
    "disclaimer": AuditOutcome.DISCLAIMER,
    "outstanding": AuditOutcome.UNAVAILABLE,
}


def parse_audit_outcome(label: str | None) -> AuditOutcome:
    """
    Map an upstream audit opinion label onto :class:`AuditOutcome`.

    Never raises; unrecognized or empty labels map to ``UNAVAILABLE``.
    """

    if not isinstance(label, str):
        return AuditOutcome.UNAVAILABLE
    return AUDIT_OUTCOME_LOOKUP.get(label.strip().lower(), AuditOutcome.UNAVAILABLE)


@dataclass(frozen=True)
class FactRecord:
    """
    One fact row returned by a Municipal Money cube.
    """

    item_code: str | None
    amount_type: str | None
    amount: Decimal | None
    label: str | None = None


@dataclass(frozen=True)
class FactParseSuccess:
    """
    Cube response whose shape matched expectations.
    """

    cube: str
    records: tuple[FactRecord, ...]

    ok: bool = field(default=True, init=False)


@dataclass(frozen=True)
class FactParseFailure:
    """
    Cube response whose shape did not match expectations.

    ``raw_payload`` is kept for diagnosis and logged by the aggregator.
    """

    cube: str
    reason: str
    raw_payload: Any = None

    ok: bool = field(default=False, init=False)


FactParseResult = FactParseSuccess | FactParseFailure


@dataclass(frozen=True)
class MetricSet:
    """
    Financial facts for one municipality and one financial year.

    ``None`` means the metric was unavailable; it is never replaced by
    zero before scoring.
    """

    year: int
    revenue: Decimal | None = None
    expenditure: Decimal | None = None
    capital_expenditure: Decimal | None = None
    debt: Decimal | None = None
    audit_outcome: AuditOutcome | None = None


@dataclass(frozen=True)
class ScoreResult:
    """
    Overall score and the four pillar scores, each in [0, 100].
    """

    overall_score: float
    financial_health_score: float
    infrastructure_score: float
    efficiency_score: float
    accountability_score: float


@dataclass(frozen=True)
class CachedFinancials:
    """
    One cached ``financial_data`` row as read from the cache store.
    """

    municipality_code: str
    metrics: MetricSet
    scores: ScoreResult
    fetched_at: datetime


class RefreshState(str, Enum):
    """
    Refresh controller states for one (municipality, year) request.

    ``REFRESHING`` is never carried by a snapshot; it is reported by
    ``RefreshController.in_flight_state`` while a refresh is running.
    """

    SERVING_CACHED = "serving_cached"
    REFRESHING = "refreshing"
    REFRESH_FAILED_SERVE_STALE = "refresh_failed_serve_stale"
    REFRESH_FAILED_NO_DATA = "refresh_failed_no_data"


@dataclass(frozen=True)
class FinancialSnapshot:
    """
    Result handed back by the refresh controller.

    ``stale`` is True only when a refresh failed and an older cached row
    was served instead.
    """

    municipality_code: str
    metrics: MetricSet
    scores: ScoreResult
    fetched_at: datetime
    state: RefreshState
    stale: bool = False
    failure_reason: str | None = None
