"""
app/domain package marker.
"""

from app.domain.cubes import AUDIT_QUERY, METRIC_QUERIES, AuditQuery, CubeQuery
from app.domain.financials import (
    AuditOutcome,
    CachedFinancials,
    FactParseFailure,
    FactParseSuccess,
    FactRecord,
    FinancialSnapshot,
    MetricSet,
    RefreshState,
    ScoreResult,
    parse_audit_outcome,
)
from app.domain.municipalities import MunicipalityProfile, MunicipalitySummary

__all__ = [
    "AUDIT_QUERY",
    "METRIC_QUERIES",
    "AuditOutcome",
    "AuditQuery",
    "CachedFinancials",
    "CubeQuery",
    "FactParseFailure",
    "FactParseSuccess",
    "FactRecord",
    "FinancialSnapshot",
    "MetricSet",
    "MunicipalityProfile",
    "MunicipalitySummary",
    "RefreshState",
    "ScoreResult",
    "parse_audit_outcome",
]
