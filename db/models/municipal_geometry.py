"""
db/models/municipal_geometry.py

Boundary geometry per municipality, stored as a GeoJSON geometry object.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy import ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db.base import Base, PortableJSON, TimestampMixin

if TYPE_CHECKING:
    from db.models.municipality import Municipality


class MunicipalGeometry(Base, TimestampMixin):
    __tablename__ = "municipal_geometries"

    municipality_code: Mapped[str] = mapped_column(
        String(16),
        ForeignKey("municipalities.code", ondelete="CASCADE"),
        primary_key=True,
    )
    geometry: Mapped[dict[str, Any]] = mapped_column(
        PortableJSON,
        nullable=False,
        comment="GeoJSON geometry (Polygon or MultiPolygon)",
    )

    municipality: Mapped["Municipality"] = relationship(back_populates="geometry")
