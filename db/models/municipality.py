"""
db/models/municipality.py

Municipality reference model. Seeded ahead of time; never written by
the request path.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import Float, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db.base import Base, TimestampMixin

if TYPE_CHECKING:
    from db.models.financial_data import FinancialData
    from db.models.municipal_geometry import MunicipalGeometry


class Municipality(Base, TimestampMixin):
    __tablename__ = "municipalities"

    code: Mapped[str] = mapped_column(
        String(16),
        primary_key=True,
        comment="Demarcation code, e.g. CPT",
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    province: Mapped[str] = mapped_column(String(64), nullable=False)
    population: Mapped[float | None] = mapped_column(Float, nullable=True)
    classification: Mapped[str | None] = mapped_column(
        String(8),
        nullable=True,
        comment="A, B or C category",
    )
    address: Mapped[str | None] = mapped_column(String(512), nullable=True)
    website: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(64), nullable=True)
    district_id: Mapped[str | None] = mapped_column(String(16), nullable=True)
    district_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    geometry: Mapped["MunicipalGeometry | None"] = relationship(
        back_populates="municipality",
        uselist=False,
        cascade="all, delete-orphan",
    )
    financial_data: Mapped[list["FinancialData"]] = relationship(
        back_populates="municipality",
        cascade="all, delete-orphan",
    )
