"""
Repository layer exports.
"""

from db.repositories.errors import (
    CacheConflictError,
    CacheStoreError,
    CacheUnavailableError,
    MunicipalityNotFoundError,
)
from db.repositories.financial_cache_repository import FinancialCacheStore
from db.repositories.municipality_repository import MunicipalityRepository

__all__ = [
    "FinancialCacheStore",
    "MunicipalityRepository",
    "CacheStoreError",
    "CacheConflictError",
    "CacheUnavailableError",
    "MunicipalityNotFoundError",
]
