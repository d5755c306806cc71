"""
app/mappers/fact_mapper.py

Reduces cube fact rows into a single typed metric value.

The mapper is a pure transform over an already-fetched response: it
filters rows by the query's item-code whitelist, picks the single
highest-priority amount type present, and sums only rows of that
amount type. Empty results are reported as ``NO_DATA``, never raised.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Sequence

from app.domain.cubes import CubeQuery
from app.domain.financials import AuditOutcome, FactRecord, parse_audit_outcome


@dataclass(frozen=True)
class MappedAmount:
    """
    Summed measure for one metric.
    """

    amount: Decimal
    amount_type: str
    record_count: int


@dataclass(frozen=True)
class NoData:
    """
    Explicit marker for "no matching facts".
    """

    reason: str = "no matching facts"


NO_DATA = NoData()

MappedResult = MappedAmount | NoData


def _matches_item(record: FactRecord, item_codes: frozenset[str] | None) -> bool:
    if item_codes is None:
        return True
    if record.item_code is None:
        return False
    return record.item_code.strip() in item_codes


def select_amount_type(
    records: Sequence[FactRecord],
    preference: Sequence[str],
) -> str | None:
    """
    Return the highest-priority amount type present in ``records``.

    Amount types missing from ``preference`` are never selected.
    """

    present = {
        record.amount_type.strip().upper()
        for record in records
        if record.amount_type
    }
    for amount_type in preference:
        if amount_type.upper() in present:
            return amount_type.upper()
    return None


def map_facts(records: Sequence[FactRecord], query: CubeQuery) -> MappedResult:
    """
    Sum the whitelisted measures of one amount type.

    Records with no amount are ignored. Records of any amount type other
    than the selected one are excluded from the sum, so figures from
    audited actuals and budgets are never mixed.
    """

    candidates = [
        record
        for record in records
        if record.amount is not None and _matches_item(record, query.item_codes)
    ]
    if not candidates:
        return NO_DATA

    amount_type = select_amount_type(candidates, query.amount_types)
    if amount_type is None:
        return NoData(reason="no preferred amount type present")

    selected = [
        record
        for record in candidates
        if record.amount_type and record.amount_type.strip().upper() == amount_type
    ]
    total = sum((record.amount for record in selected), Decimal("0"))
    return MappedAmount(amount=total, amount_type=amount_type, record_count=len(selected))


def map_audit_opinion(records: Sequence[FactRecord]) -> AuditOutcome | None:
    """
    Map the audit opinion of a municipality-year.

    Returns ``None`` when the cube holds no opinion rows; any label not in
    the canonical lookup maps to ``AuditOutcome.UNAVAILABLE``.
    """

    for record in records:
        if record.label is not None:
            return parse_audit_outcome(record.label)
    if records:
        return AuditOutcome.UNAVAILABLE
    return None
