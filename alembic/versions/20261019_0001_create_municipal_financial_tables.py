"""create municipalities, municipal_geometries and financial_data tables

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 09:00:00
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "municipalities",
        sa.Column("code", sa.String(length=16), nullable=False, comment="Demarcation code, e.g. CPT"),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("province", sa.String(length=64), nullable=False),
        sa.Column("population", sa.Float(), nullable=True),
        sa.Column("classification", sa.String(length=8), nullable=True, comment="A, B or C category"),
        sa.Column("address", sa.String(length=512), nullable=True),
        sa.Column("website", sa.String(length=255), nullable=True),
        sa.Column("phone", sa.String(length=64), nullable=True),
        sa.Column("district_id", sa.String(length=16), nullable=True),
        sa.Column("district_name", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("code", name="pk_municipalities"),
    )

    op.create_table(
        "municipal_geometries",
        sa.Column("municipality_code", sa.String(length=16), nullable=False),
        sa.Column(
            "geometry",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            comment="GeoJSON geometry (Polygon or MultiPolygon)",
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(
            ["municipality_code"],
            ["municipalities.code"],
            name="fk_municipal_geometries_municipality_code_municipalities",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("municipality_code", name="pk_municipal_geometries"),
    )

    op.create_table(
        "financial_data",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("municipality_code", sa.String(length=16), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("revenue", sa.Numeric(precision=20, scale=2), nullable=True),
        sa.Column("expenditure", sa.Numeric(precision=20, scale=2), nullable=True),
        sa.Column("capital_expenditure", sa.Numeric(precision=20, scale=2), nullable=True),
        sa.Column("debt", sa.Numeric(precision=20, scale=2), nullable=True),
        sa.Column("audit_outcome", sa.String(length=32), nullable=True),
        sa.Column("overall_score", sa.Numeric(precision=5, scale=2), nullable=False),
        sa.Column("financial_health_score", sa.Numeric(precision=5, scale=2), nullable=False),
        sa.Column("infrastructure_score", sa.Numeric(precision=5, scale=2), nullable=False),
        sa.Column("efficiency_score", sa.Numeric(precision=5, scale=2), nullable=False),
        sa.Column("accountability_score", sa.Numeric(precision=5, scale=2), nullable=False),
        sa.Column(
            "fetched_at",
            sa.DateTime(timezone=True),
            nullable=False,
            comment="When the metrics were pulled from Municipal Money",
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(
            ["municipality_code"],
            ["municipalities.code"],
            name="fk_financial_data_municipality_code_municipalities",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_financial_data"),
        sa.UniqueConstraint("municipality_code", "year", name="uq_financial_data_municipality_year"),
    )
    op.create_index("ix_financial_data_fetched_at", "financial_data", ["fetched_at"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_financial_data_fetched_at", table_name="financial_data")
    op.drop_table("financial_data")
    op.drop_table("municipal_geometries")
    op.drop_table("municipalities")
