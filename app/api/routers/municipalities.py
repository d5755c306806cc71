"""
app/api/routers/municipalities.py

Municipality list and detail endpoints.

Endpoints are sync so FastAPI runs them on its worker threadpool; the
refresh controller blocks on gateway and database I/O.

Error bodies are ``{"error": {"code", "message"}}``:
    municipality_not_found → 404
    no_data_available      → 503
    storage_unavailable    → 503 (any other cache store failure)
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse

from app.api.dependencies import (
    get_cache_store,
    get_default_year,
    get_municipality_repository,
    get_refresh_controller,
)
from app.mappers.response_mapper import to_detail_response, to_error_response, to_feature_collection
from app.schemas.municipalities import (
    ErrorResponse,
    MunicipalityDetailResponse,
    MunicipalityFeatureCollection,
)
from app.services.refresh_controller import RefreshController, RefreshFailedNoDataError
from db.repositories.errors import CacheStoreError, CacheUnavailableError, MunicipalityNotFoundError
from db.repositories.financial_cache_repository import FinancialCacheStore
from db.repositories.municipality_repository import DEFAULT_LIST_LIMIT, MunicipalityRepository

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/municipalities", tags=["municipalities"])

_STORAGE_UNAVAILABLE_MESSAGE = "Financial data storage is temporarily unavailable."


def _error(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=to_error_response(code, message).model_dump(),
    )


@router.get(
    "",
    response_model=MunicipalityFeatureCollection,
    responses={503: {"model": ErrorResponse}},
)
def list_municipalities(
    limit: int = Query(DEFAULT_LIST_LIMIT, ge=1, le=1000),
    repository: MunicipalityRepository = Depends(get_municipality_repository),
) -> MunicipalityFeatureCollection | JSONResponse:
    """
    Return municipalities as a GeoJSON FeatureCollection with latest scores.
    """
    try:
        summaries = repository.list_summaries(limit)
    except CacheUnavailableError:
        logger.exception("Municipality list failed: storage unavailable")
        return _error(status.HTTP_503_SERVICE_UNAVAILABLE, "storage_unavailable", _STORAGE_UNAVAILABLE_MESSAGE)
    return to_feature_collection(summaries)


@router.get(
    "/{municipality_code}",
    response_model=MunicipalityDetailResponse,
    responses={404: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
)
def get_municipality(
    municipality_code: str,
    year: int | None = Query(None, ge=2000, le=2100),
    repository: MunicipalityRepository = Depends(get_municipality_repository),
    controller: RefreshController = Depends(get_refresh_controller),
    store: FinancialCacheStore = Depends(get_cache_store),
    default_year: int = Depends(get_default_year),
) -> MunicipalityDetailResponse | JSONResponse:
    """
    Return one municipality with financials for ``year``.

    Missing or stale financials are refreshed from Municipal Money before
    responding. If that refresh fails but an older row exists, the older
    row is returned with ``data_status="stale"``.
    """
    code = municipality_code.strip().upper()
    target_year = year if year is not None else default_year

    try:
        profile = repository.get(code)
        snapshot = controller.get_financials(code, target_year, profile.population)
        history = store.list_for_municipality(code)
    except MunicipalityNotFoundError:
        return _error(
            status.HTTP_404_NOT_FOUND,
            "municipality_not_found",
            f"No municipality with code {code!r}.",
        )
    except RefreshFailedNoDataError:
        return _error(
            status.HTTP_503_SERVICE_UNAVAILABLE,
            "no_data_available",
            f"Financial data for {code} in {target_year} is not available yet. Try again later.",
        )
    except CacheStoreError as exc:
        logger.exception(
            "Municipality detail failed: storage error municipality=%s error=%s",
            code,
            exc.__class__.__name__,
        )
        return _error(status.HTTP_503_SERVICE_UNAVAILABLE, "storage_unavailable", _STORAGE_UNAVAILABLE_MESSAGE)

    return to_detail_response(profile, snapshot, history)
