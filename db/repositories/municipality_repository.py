"""
db/repositories/municipality_repository.py

Read-only access to seeded municipality reference data and boundaries.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from sqlalchemy import select
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session, selectinload

from app.domain.municipalities import MunicipalityProfile, MunicipalitySummary
from db.models.financial_data import FinancialData
from db.models.municipality import Municipality
from db.repositories.errors import CacheUnavailableError, MunicipalityNotFoundError

logger = logging.getLogger(__name__)

DEFAULT_LIST_LIMIT = 300


class MunicipalityRepository:
    """
    Queries over ``municipalities`` joined with geometry and latest score.
    """

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def get(self, municipality_code: str) -> MunicipalityProfile:
        """
        Return the profile for ``municipality_code``.

        Raises MunicipalityNotFoundError when the code is unknown.
        """
        session = self._session_factory()
        try:
            row = session.scalars(
                select(Municipality)
                .options(selectinload(Municipality.geometry))
                .where(Municipality.code == municipality_code)
            ).one_or_none()
        except DBAPIError as exc:
            raise CacheUnavailableError(str(exc)) from exc
        finally:
            session.close()

        if row is None:
            raise MunicipalityNotFoundError(municipality_code)

        return MunicipalityProfile(
            code=row.code,
            name=row.name,
            province=row.province,
            population=row.population,
            classification=row.classification,
            website=row.website,
            address=row.address,
            phone=row.phone,
            district_id=row.district_id,
            district_name=row.district_name,
            geometry=row.geometry.geometry if row.geometry is not None else None,
        )

    def list_summaries(self, limit: int = DEFAULT_LIST_LIMIT) -> list[MunicipalitySummary]:
        """
        Return up to ``limit`` municipalities ordered by name.
        """
        session = self._session_factory()
        try:
            municipalities = session.scalars(
                select(Municipality)
                .options(selectinload(Municipality.geometry))
                .order_by(Municipality.name.asc(), Municipality.code.asc())
                .limit(limit)
            ).all()
            codes = [m.code for m in municipalities]

            latest: dict[str, float] = {}
            if codes:
                score_rows = session.execute(
                    select(FinancialData.municipality_code, FinancialData.overall_score)
                    .where(FinancialData.municipality_code.in_(codes))
                    .order_by(FinancialData.municipality_code, FinancialData.year.desc())
                ).all()
                for code, overall in score_rows:
                    # First row per code is its newest year.
                    latest.setdefault(code, float(overall))
        except DBAPIError as exc:
            raise CacheUnavailableError(str(exc)) from exc
        finally:
            session.close()

        logger.debug("Listed municipalities count=%s limit=%s", len(municipalities), limit)
        return [
            MunicipalitySummary(
                code=m.code,
                name=m.name,
                province=m.province,
                population=m.population,
                classification=m.classification,
                latest_score=latest.get(m.code),
                geometry=m.geometry.geometry if m.geometry is not None else None,
            )
            for m in municipalities
        ]
