"""
app/domain/cubes.py

Municipal Money cube catalogue: which cube, item codes and amount types
back each metric of a MetricSet.
"""

from __future__ import annotations

from dataclasses import dataclass

# Highest priority first.
AMOUNT_TYPE_PREFERENCE: tuple[str, ...] = ("AUDA", "ADJB", "ORGB")

INCOME_EXPENDITURE_CUBE = "incexp_v2"
FINANCIAL_POSITION_CUBE = "financial_position_v2"
CAPITAL_CUBE = "capital_v2"
AUDIT_OPINIONS_CUBE = "audit_opinions"

REVENUE_ITEM_CODES: frozenset[str] = frozenset(
    {
        "0200", "0300", "0400", "0500", "0600", "0800", "0900", "1000",
        "1100", "1200", "1300", "1400", "1500", "1600", "1700", "1800",
        "1900", "2000",
    }
)

EXPENDITURE_ITEM_CODES: frozenset[str] = frozenset(
    {
        "3000", "3100", "3200", "3300", "3400", "3500", "3600", "3700",
        "3800", "3900", "4000", "4100", "4200", "4300", "4400", "4500",
        "4600", "4700", "4800", "4900",
    }
)

# Total liabilities.
DEBT_ITEM_CODES: frozenset[str] = frozenset({"0500"})


@dataclass(frozen=True)
class CubeQuery:
    """
    Describes one fact query against a cube and how to reduce it.

    Attributes
    ----------
    metric:
        Name of the MetricSet field this query feeds.
    cube:
        Cube name, e.g. ``"incexp_v2"``.
    item_codes:
        Whitelist of ``item.code`` values to sum. ``None`` accepts every
        item of the cube.
    year_dimension:
        Cube dimension used to cut by financial year.
    amount_types:
        Ordered amount-type preference; only the first type present in
        the response is summed.
    """

    metric: str
    cube: str
    item_codes: frozenset[str] | None
    year_dimension: str = "financial_year_end.year"
    amount_types: tuple[str, ...] = AMOUNT_TYPE_PREFERENCE

    @property
    def drilldowns(self) -> tuple[str, ...]:
        return ("demarcation.code", "item.code", "amount_type.code")


@dataclass(frozen=True)
class AuditQuery:
    """
    Describes the audit opinion query for one municipality-year.
    """

    cube: str = AUDIT_OPINIONS_CUBE
    year_dimension: str = "financial_year_end.year"

    @property
    def drilldowns(self) -> tuple[str, ...]:
        return ("demarcation.code", "opinion.code", "opinion.label", "financial_year_end.year")


REVENUE_QUERY = CubeQuery(
    metric="revenue",
    cube=INCOME_EXPENDITURE_CUBE,
    item_codes=REVENUE_ITEM_CODES,
)
EXPENDITURE_QUERY = CubeQuery(
    metric="expenditure",
    cube=INCOME_EXPENDITURE_CUBE,
    item_codes=EXPENDITURE_ITEM_CODES,
)
CAPITAL_EXPENDITURE_QUERY = CubeQuery(
    metric="capital_expenditure",
    cube=CAPITAL_CUBE,
    item_codes=None,
    year_dimension="financial_period.period",
)
DEBT_QUERY = CubeQuery(
    metric="debt",
    cube=FINANCIAL_POSITION_CUBE,
    item_codes=DEBT_ITEM_CODES,
    year_dimension="financial_period.period",
)
AUDIT_QUERY = AuditQuery()

METRIC_QUERIES: tuple[CubeQuery, ...] = (
    REVENUE_QUERY,
    EXPENDITURE_QUERY,
    CAPITAL_EXPENDITURE_QUERY,
    DEBT_QUERY,
)
