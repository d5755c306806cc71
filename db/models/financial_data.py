"""
db/models/financial_data.py

Cached metrics and scores for one municipality-year.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Index, Integer, Numeric, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db.base import Base, TimestampMixin

if TYPE_CHECKING:
    from db.models.municipality import Municipality


class FinancialData(Base, TimestampMixin):
    __tablename__ = "financial_data"
    __table_args__ = (
        UniqueConstraint(
            "municipality_code",
            "year",
            name="uq_financial_data_municipality_year",
        ),
        Index("ix_financial_data_fetched_at", "fetched_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    municipality_code: Mapped[str] = mapped_column(
        String(16),
        ForeignKey("municipalities.code", ondelete="CASCADE"),
        nullable=False,
    )
    year: Mapped[int] = mapped_column(Integer, nullable=False)

    revenue: Mapped[Decimal | None] = mapped_column(Numeric(20, 2), nullable=True)
    expenditure: Mapped[Decimal | None] = mapped_column(Numeric(20, 2), nullable=True)
    capital_expenditure: Mapped[Decimal | None] = mapped_column(Numeric(20, 2), nullable=True)
    debt: Mapped[Decimal | None] = mapped_column(Numeric(20, 2), nullable=True)
    audit_outcome: Mapped[str | None] = mapped_column(String(32), nullable=True)

    overall_score: Mapped[float] = mapped_column(Numeric(5, 2, asdecimal=False), nullable=False)
    financial_health_score: Mapped[float] = mapped_column(Numeric(5, 2, asdecimal=False), nullable=False)
    infrastructure_score: Mapped[float] = mapped_column(Numeric(5, 2, asdecimal=False), nullable=False)
    efficiency_score: Mapped[float] = mapped_column(Numeric(5, 2, asdecimal=False), nullable=False)
    accountability_score: Mapped[float] = mapped_column(Numeric(5, 2, asdecimal=False), nullable=False)

    fetched_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        comment="When the metrics were pulled from Municipal Money",
    )

    municipality: Mapped["Municipality"] = relationship(back_populates="financial_data")
