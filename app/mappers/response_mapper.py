"""
app/mappers/response_mapper.py

Turns refresh-controller snapshots and repository read models into API
response schemas. No I/O.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from decimal import Decimal

from app.domain.financials import CachedFinancials, FinancialSnapshot, MetricSet, ScoreResult
from app.domain.municipalities import MunicipalityProfile, MunicipalitySummary
from app.schemas.municipalities import (
    ApiWarning,
    ErrorDetail,
    ErrorResponse,
    FinancialYearResponse,
    MunicipalityDetailResponse,
    MunicipalityFeature,
    MunicipalityFeatureCollection,
    MunicipalityFeatureProperties,
)

STALE_DATA_WARNING_CODE = "stale_data_served"


def _amount(value: Decimal | None) -> float | None:
    return float(value) if value is not None else None


def _financial_year(metrics: MetricSet, scores: ScoreResult, fetched_at: datetime) -> FinancialYearResponse:
    return FinancialYearResponse(
        year=metrics.year,
        revenue=_amount(metrics.revenue),
        expenditure=_amount(metrics.expenditure),
        capital_expenditure=_amount(metrics.capital_expenditure),
        debt=_amount(metrics.debt),
        audit_outcome=metrics.audit_outcome.value if metrics.audit_outcome else None,
        overall_score=scores.overall_score,
        financial_health_score=scores.financial_health_score,
        infrastructure_score=scores.infrastructure_score,
        efficiency_score=scores.efficiency_score,
        accountability_score=scores.accountability_score,
        fetched_at=fetched_at,
    )


def to_feature_collection(summaries: Sequence[MunicipalitySummary]) -> MunicipalityFeatureCollection:
    return MunicipalityFeatureCollection(
        features=[
            MunicipalityFeature(
                geometry=summary.geometry,
                properties=MunicipalityFeatureProperties(
                    id=summary.code,
                    name=summary.name,
                    province=summary.province,
                    population=summary.population,
                    classification=summary.classification,
                    latest_score=summary.latest_score,
                ),
            )
            for summary in summaries
        ]
    )


def to_detail_response(
    profile: MunicipalityProfile,
    snapshot: FinancialSnapshot,
    history: Sequence[CachedFinancials] = (),
) -> MunicipalityDetailResponse:
    """
    Build the detail payload.

    The requested year comes first; other cached years follow, newest
    first. ``history`` entries for the requested year are skipped since
    the snapshot is authoritative for it.
    """

    financials = [_financial_year(snapshot.metrics, snapshot.scores, snapshot.fetched_at)]
    for cached in history:
        if cached.metrics.year == snapshot.metrics.year:
            continue
        financials.append(_financial_year(cached.metrics, cached.scores, cached.fetched_at))

    warning = None
    if snapshot.stale:
        warning = ApiWarning(
            code=STALE_DATA_WARNING_CODE,
            message=(
                f"Showing data fetched at {snapshot.fetched_at.isoformat()}; "
                "the latest refresh from Municipal Money failed."
            ),
        )

    return MunicipalityDetailResponse(
        id=profile.code,
        name=profile.name,
        province=profile.province,
        population=profile.population,
        classification=profile.classification,
        website=profile.website,
        address=profile.address,
        phone=profile.phone,
        district_name=profile.district_name,
        data_status="stale" if snapshot.stale else "fresh",
        warning=warning,
        financials=financials,
        geometry=profile.geometry,
    )


def to_error_response(code: str, message: str) -> ErrorResponse:
    return ErrorResponse(error=ErrorDetail(code=code, message=message))
