"""
tests/conftest.py

Shared fixtures: an in-memory SQLite database with the full ORM schema,
seeded municipalities, and fakes for the gateway side of the refresh
controller.
"""

from __future__ import annotations

from collections.abc import Iterator
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import db.models  # noqa: F401  registers all ORM models on Base.metadata
from app.domain.financials import AuditOutcome, MetricSet
from db.base import Base
from db.models.municipal_geometry import MunicipalGeometry
from db.models.municipality import Municipality
from tests.helpers import CPT_GEOMETRY, FakeClock


@pytest.fixture()
def session_factory() -> Iterator[sessionmaker[Session]]:
    """Fresh in-memory database per test."""
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, expire_on_commit=False)
    try:
        yield factory
    finally:
        engine.dispose()


@pytest.fixture()
def seeded_factory(session_factory: sessionmaker[Session]) -> sessionmaker[Session]:
    """Database with Cape Town (with boundary) and Buffalo City (without)."""
    with session_factory() as session:
        session.add_all(
            [
                Municipality(
                    code="CPT",
                    name="City of Cape Town",
                    province="Western Cape",
                    population=4_600_000,
                    classification="A",
                    website="https://www.capetown.gov.za",
                    geometry=MunicipalGeometry(geometry=CPT_GEOMETRY),
                ),
                Municipality(
                    code="BUF",
                    name="Buffalo City",
                    province="Eastern Cape",
                    population=None,
                    classification="A",
                ),
            ]
        )
        session.commit()
    return session_factory


@pytest.fixture()
def cpt_metrics() -> MetricSet:
    return MetricSet(
        year=2023,
        revenue=Decimal("500000000"),
        expenditure=Decimal("480000000"),
        capital_expenditure=Decimal("80000000"),
        debt=Decimal("120000000"),
        audit_outcome=AuditOutcome.CLEAN,
    )


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()
