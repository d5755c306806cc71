"""
Repository-layer exceptions for the financial cache and municipality
reference data.
"""

from __future__ import annotations


class CacheStoreError(Exception):
    """Base exception for cache store failures."""


class CacheUnavailableError(CacheStoreError):
    """Raised when the database cannot be reached or a statement fails at the driver level."""


class CacheConflictError(CacheStoreError):
    """Raised when a write keeps colliding with a concurrent write for the same key."""


class MunicipalityNotFoundError(CacheStoreError):
    """Raised when a municipality code is not present in the reference table."""

    def __init__(self, municipality_code: str) -> None:
        super().__init__(f"Municipality not found: {municipality_code}")
        self.municipality_code = municipality_code
