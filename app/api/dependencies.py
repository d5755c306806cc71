"""
app/api/dependencies.py

Shared FastAPI dependency providers.

Providers build their objects on first use and cache them for the
process lifetime. The refresh controller in particular must be a single
instance so that concurrent requests share its in-flight refresh map.
Tests replace these providers through ``app.dependency_overrides``.
"""

from __future__ import annotations

from datetime import timedelta
from functools import lru_cache

from app.config import (
    get_cache_settings,
    get_external_http_settings,
    get_municipal_money_settings,
)
from app.connectors.municipal_money_connector import MunicipalMoneyConnector
from app.services.metric_aggregator import MetricAggregator
from app.services.refresh_controller import RefreshController
from db.repositories.financial_cache_repository import FinancialCacheStore
from db.repositories.municipality_repository import MunicipalityRepository
from db.session import get_session_factory


@lru_cache(maxsize=1)
def get_cache_store() -> FinancialCacheStore:
    return FinancialCacheStore(get_session_factory())


@lru_cache(maxsize=1)
def get_municipality_repository() -> MunicipalityRepository:
    return MunicipalityRepository(get_session_factory())


@lru_cache(maxsize=1)
def get_refresh_controller() -> RefreshController:
    """
    Wire gateway, aggregator, scorer and store into the shared controller.
    """

    http_settings = get_external_http_settings()
    cache_settings = get_cache_settings()
    connector = MunicipalMoneyConnector(
        settings=get_municipal_money_settings(),
        http_settings=http_settings,
    )
    aggregator = MetricAggregator(
        connector,
        max_attempts=http_settings.max_attempts,
        backoff_initial_seconds=http_settings.backoff_initial_seconds,
        backoff_multiplier=http_settings.backoff_multiplier,
    )
    return RefreshController(
        get_cache_store(),
        aggregator,
        ttl=timedelta(hours=cache_settings.ttl_hours),
    )


def get_default_year() -> int:
    return get_cache_settings().default_year
