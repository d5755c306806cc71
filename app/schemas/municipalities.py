"""
app/schemas/municipalities.py

Response schemas for the municipality endpoints.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


class MunicipalityFeatureProperties(BaseModel):
    id: str
    name: str
    province: str
    population: float | None = None
    classification: str | None = None
    latest_score: float | None = Field(default=None, ge=0, le=100)


class MunicipalityFeature(BaseModel):
    type: Literal["Feature"] = "Feature"
    geometry: dict[str, Any] | None = None
    properties: MunicipalityFeatureProperties


class MunicipalityFeatureCollection(BaseModel):
    """
    GeoJSON FeatureCollection of municipalities for the map view.
    """

    type: Literal["FeatureCollection"] = "FeatureCollection"
    features: list[MunicipalityFeature]


class FinancialYearResponse(BaseModel):
    """
    Raw metrics and scores for one financial year.

    Metric amounts are in rand; ``None`` means the metric was unavailable
    upstream.
    """

    year: int
    revenue: float | None = None
    expenditure: float | None = None
    capital_expenditure: float | None = None
    debt: float | None = None
    audit_outcome: str | None = None
    overall_score: float = Field(..., ge=0, le=100)
    financial_health_score: float = Field(..., ge=0, le=100)
    infrastructure_score: float = Field(..., ge=0, le=100)
    efficiency_score: float = Field(..., ge=0, le=100)
    accountability_score: float = Field(..., ge=0, le=100)
    fetched_at: datetime


class ApiWarning(BaseModel):
    code: str
    message: str


class MunicipalityDetailResponse(BaseModel):
    """
    Detail view for one municipality.

    ``data_status`` is ``"stale"`` when a refresh failed and an older
    cached row is being served; ``warning`` then explains why.
    """

    id: str
    name: str
    province: str
    population: float | None = None
    classification: str | None = None
    website: str | None = None
    address: str | None = None
    phone: str | None = None
    district_name: str | None = None
    data_status: Literal["fresh", "stale"]
    warning: ApiWarning | None = None
    financials: list[FinancialYearResponse]
    geometry: dict[str, Any] | None = None


class ErrorDetail(BaseModel):
    code: str
    message: str


class ErrorResponse(BaseModel):
    error: ErrorDetail
