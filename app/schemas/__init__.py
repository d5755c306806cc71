"""
app/schemas package marker.
"""

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

__all__ = [
    "ApiWarning",
    "ErrorDetail",
    "ErrorResponse",
    "FinancialYearResponse",
    "MunicipalityDetailResponse",
    "MunicipalityFeature",
    "MunicipalityFeatureCollection",
    "MunicipalityFeatureProperties",
]
