"""
app/domain/municipalities.py

Read models for municipality reference data.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class MunicipalityProfile:
    code: str
    name: str
    province: str
    population: float | None
    classification: str | None
    website: str | None
    address: str | None
    phone: str | None
    district_id: str | None
    district_name: str | None
    geometry: dict[str, Any] | None


@dataclass(frozen=True)
class MunicipalitySummary:
    """
    One entry of the municipality list, with the overall score of the
    most recent cached year (None when nothing is cached yet).
    """

    code: str
    name: str
    province: str
    population: float | None
    classification: str | None
    latest_score: float | None
    geometry: dict[str, Any] | None
