"""
app/connectors/municipal_money_connector.py

Municipal Money (National Treasury) cube API connector.

Each call issues one GET against a named cube and returns a tagged parse
result. Shape mismatches are returned as ``FactParseFailure`` rather than
raised, because missing or malformed upstream data is an expected
outcome for many municipality-years.
"""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Any

import requests

from app.config import ExternalHTTPSettings, MunicipalMoneySettings
from app.connectors.base import BaseConnector, InvalidJSONBody
from app.domain.cubes import AuditQuery, CubeQuery
from app.domain.financials import FactParseFailure, FactParseResult, FactParseSuccess, FactRecord

logger = logging.getLogger(__name__)

_AMOUNT_FIELD = "amount.sum"
_ITEM_FIELD = "item.code"
_AMOUNT_TYPE_FIELD = "amount_type.code"
_OPINION_LABEL_FIELD = "opinion.label"
_OPINION_CODE_FIELD = "opinion.code"


def build_cut(municipality_code: str, year_dimension: str, year: int) -> str:
    """
    Build the ``cut`` parameter for one municipality-year.
    """

    return f'demarcation.code:"{municipality_code}"|{year_dimension}:{year}'


def _parse_amount(value: Any) -> Decimal | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, str)):
        try:
            return Decimal(str(value).strip())
        except InvalidOperation:
            return None
    if isinstance(value, float):
        return Decimal(str(value))
    return None


def _parse_code(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_aggregate_payload(cube: str, payload: Any) -> FactParseResult:
    """
    Parse an ``/aggregate`` response body into fact records.
    """

    if not isinstance(payload, dict):
        return FactParseFailure(cube=cube, reason="aggregate body is not an object", raw_payload=payload)
    cells = payload.get("cells")
    if not isinstance(cells, list):
        return FactParseFailure(cube=cube, reason="aggregate body has no 'cells' list", raw_payload=payload)

    records: list[FactRecord] = []
    for index, cell in enumerate(cells):
        if not isinstance(cell, dict):
            return FactParseFailure(
                cube=cube,
                reason=f"aggregate cell {index} is not an object",
                raw_payload=payload,
            )
        records.append(
            FactRecord(
                item_code=_parse_code(cell.get(_ITEM_FIELD)),
                amount_type=_parse_code(cell.get(_AMOUNT_TYPE_FIELD)),
                amount=_parse_amount(cell.get(_AMOUNT_FIELD)),
            )
        )
    return FactParseSuccess(cube=cube, records=tuple(records))


def parse_audit_payload(cube: str, payload: Any) -> FactParseResult:
    """
    Parse a ``/facts`` response body from the audit opinions cube.
    """

    if not isinstance(payload, dict):
        return FactParseFailure(cube=cube, reason="facts body is not an object", raw_payload=payload)
    data = payload.get("data")
    if not isinstance(data, list):
        return FactParseFailure(cube=cube, reason="facts body has no 'data' list", raw_payload=payload)

    records: list[FactRecord] = []
    for index, row in enumerate(data):
        if not isinstance(row, dict):
            return FactParseFailure(
                cube=cube,
                reason=f"facts row {index} is not an object",
                raw_payload=payload,
            )
        label = row.get(_OPINION_LABEL_FIELD)
        records.append(
            FactRecord(
                item_code=_parse_code(row.get(_OPINION_CODE_FIELD)),
                amount_type=None,
                amount=None,
                label=label if isinstance(label, str) else None,
            )
        )
    return FactParseSuccess(cube=cube, records=tuple(records))


class MunicipalMoneyConnector(BaseConnector):
    """
    Connector for Municipal Money cube queries.
    """

    def __init__(
        self,
        *,
        settings: MunicipalMoneySettings,
        http_settings: ExternalHTTPSettings,
        session: requests.Session | None = None,
    ) -> None:
        super().__init__(source="municipal_money", http_settings=http_settings, session=session)
        self._base_url = settings.base_url.rstrip("/")

    def fetch_cube(self, query: CubeQuery, municipality_code: str, year: int) -> FactParseResult:
        """
        Fetch item/amount-type aggregates for one municipality-year.

        Raises a ``GatewayError`` subclass on transport or HTTP failure.
        """

        url = f"{self._base_url}/cubes/{query.cube}/aggregate"
        params = {
            "drilldown": "|".join(query.drilldowns),
            "cut": build_cut(municipality_code, query.year_dimension, year),
            "aggregates": _AMOUNT_FIELD,
        }
        logger.debug(
            "Fetching cube=%s municipality=%s year=%s url=%s",
            query.cube,
            municipality_code,
            year,
            url,
        )
        try:
            payload = self._request_json(url=url, params=params)
        except InvalidJSONBody as exc:
            return FactParseFailure(cube=query.cube, reason=str(exc), raw_payload=exc.raw_body)
        return parse_aggregate_payload(query.cube, payload)

    def fetch_audit_opinions(self, query: AuditQuery, municipality_code: str, year: int) -> FactParseResult:
        """
        Fetch audit opinion facts for one municipality-year.

        Raises a ``GatewayError`` subclass on transport or HTTP failure.
        """

        url = f"{self._base_url}/cubes/{query.cube}/facts"
        params = {
            "cut": build_cut(municipality_code, query.year_dimension, year),
            "fields": ",".join(query.drilldowns),
        }
        logger.debug(
            "Fetching audit opinions municipality=%s year=%s url=%s",
            municipality_code,
            year,
            url,
        )
        try:
            payload = self._request_json(url=url, params=params)
        except InvalidJSONBody as exc:
            return FactParseFailure(cube=query.cube, reason=str(exc), raw_payload=exc.raw_body)
        return parse_audit_payload(query.cube, payload)
