"""
Model package exports.

Import all SQLAlchemy models here so metadata registration and Alembic
autogeneration work without extra imports.
"""

from db.models.financial_data import FinancialData
from db.models.municipal_geometry import MunicipalGeometry
from db.models.municipality import Municipality

__all__ = [
    "Municipality",
    "MunicipalGeometry",
    "FinancialData",
]
