"""
scoring/engine.py

Four-pillar municipal financial health model.
Turns a MetricSet plus population into a ScoreResult on a 0–100 scale.
"""

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Union

from app.domain.financials import AuditOutcome, MetricSet, ScoreResult
from scoring.normalizer import HUNDRED, ZERO, ScoreNormalizer

logger = logging.getLogger(__name__)

PopulationValue = Union[int, float, Decimal, None]

_DISPLAY_PRECISION = Decimal("0.01")


class MunicipalScoringModel:
    """Weighted four-pillar scoring model.

    Pillars and weights (must sum to 1.0):
        - Financial health (0.30): mean of debt-ratio and revenue-per-capita
          sub-scores.
        - Infrastructure (0.25): capital expenditure share of total spend.
        - Efficiency (0.25): operating expenditure over revenue.
        - Accountability (0.20): audit outcome.

    Missing-data policy: a pillar whose inputs are missing, or whose
    denominator is zero or missing, scores 0 and still takes part in the
    weighted sum. The model never raises on missing data.

    All arithmetic is Decimal; floats appear only in the returned
    ScoreResult, rounded to two decimal places.
    """

    FINANCIAL_HEALTH_WEIGHT = Decimal("0.30")
    INFRASTRUCTURE_WEIGHT = Decimal("0.25")
    EFFICIENCY_WEIGHT = Decimal("0.25")
    ACCOUNTABILITY_WEIGHT = Decimal("0.20")

    # Financial health sub-score bounds
    DEBT_RATIO_BEST = Decimal("0.1")
    DEBT_RATIO_WORST = Decimal("1.5")
    REVENUE_PER_CAPITA_FLOOR = Decimal("5000")
    REVENUE_PER_CAPITA_CEILING = Decimal("20000")
    SUB_SCORE_WEIGHT = Decimal("0.5")

    # (ratio, score) anchors, ascending by ratio
    INFRASTRUCTURE_ANCHORS = (
        (Decimal("0.05"), Decimal("0")),
        (Decimal("0.15"), Decimal("50")),
        (Decimal("0.30"), Decimal("100")),
    )
    EFFICIENCY_ANCHORS = (
        (Decimal("0.85"), Decimal("100")),
        (Decimal("1.00"), Decimal("50")),
        (Decimal("1.15"), Decimal("0")),
    )

    ACCOUNTABILITY_SCORES: dict[AuditOutcome, Decimal] = {
        AuditOutcome.CLEAN: Decimal("100"),
        AuditOutcome.UNQUALIFIED: Decimal("75"),
        AuditOutcome.QUALIFIED: Decimal("50"),
        AuditOutcome.ADVERSE: Decimal("25"),
        AuditOutcome.DISCLAIMER: Decimal("25"),
        AuditOutcome.UNAVAILABLE: Decimal("0"),
    }

    def __init__(self) -> None:
        self._normalizer = ScoreNormalizer()

    # ------------------------------------------------------------------
    # Pillars
    # ------------------------------------------------------------------

    def debt_sub_score(self, debt: Decimal | None, revenue: Decimal | None) -> Decimal | None:
        """Debt-to-revenue sub-score; ``None`` when it cannot be computed."""
        if debt is None or revenue is None or revenue <= ZERO:
            return None
        debt_ratio = debt / revenue
        position = self._normalizer.unit_position(debt_ratio, self.DEBT_RATIO_BEST, self.DEBT_RATIO_WORST)
        return HUNDRED * (Decimal("1") - position)

    def revenue_per_capita_sub_score(
        self,
        revenue: Decimal | None,
        population: Decimal | None,
    ) -> Decimal | None:
        """Revenue-per-capita sub-score; ``None`` when it cannot be computed."""
        if revenue is None or population is None or population <= ZERO:
            return None
        per_capita = revenue / population
        position = self._normalizer.unit_position(
            per_capita,
            self.REVENUE_PER_CAPITA_FLOOR,
            self.REVENUE_PER_CAPITA_CEILING,
        )
        return HUNDRED * position

    def financial_health_score(self, metrics: MetricSet, population: Decimal | None) -> Decimal:
        debt_score = self.debt_sub_score(metrics.debt, metrics.revenue)
        per_capita_score = self.revenue_per_capita_sub_score(metrics.revenue, population)
        if debt_score is None or per_capita_score is None:
            return ZERO
        combined = debt_score * self.SUB_SCORE_WEIGHT + per_capita_score * self.SUB_SCORE_WEIGHT
        return self._normalizer.clamp_score(combined)

    def infrastructure_score(self, metrics: MetricSet) -> Decimal:
        expenditure = metrics.expenditure
        capex = metrics.capital_expenditure
        if expenditure is None or capex is None:
            return ZERO
        total_spend = expenditure + capex
        if total_spend <= ZERO:
            return ZERO
        capex_ratio = max(capex, ZERO) / total_spend
        return self._normalizer.interpolate(capex_ratio, self.INFRASTRUCTURE_ANCHORS)

    def efficiency_score(self, metrics: MetricSet) -> Decimal:
        expenditure = metrics.expenditure
        revenue = metrics.revenue
        if expenditure is None or revenue is None or revenue <= ZERO:
            return ZERO
        opex_ratio = expenditure / revenue
        return self._normalizer.interpolate(opex_ratio, self.EFFICIENCY_ANCHORS)

    def accountability_score(self, metrics: MetricSet) -> Decimal:
        if metrics.audit_outcome is None:
            return ZERO
        return self.ACCOUNTABILITY_SCORES.get(metrics.audit_outcome, ZERO)

    # ------------------------------------------------------------------
    # Composite
    # ------------------------------------------------------------------

    def compute(self, metrics: MetricSet, population: PopulationValue = None) -> ScoreResult:
        """Score one municipality-year.

        Args:
            metrics: Financial facts; any field may be ``None``.
            population: Resident population; ``None`` or non-positive
                values zero the revenue-per-capita sub-score.

        Returns:
            ScoreResult with every field in [0.0, 100.0].
        """
        population_dec = _to_decimal(population)

        financial_health = self.financial_health_score(metrics, population_dec)
        infrastructure = self.infrastructure_score(metrics)
        efficiency = self.efficiency_score(metrics)
        accountability = self.accountability_score(metrics)

        overall = self._normalizer.clamp_score(
            financial_health * self.FINANCIAL_HEALTH_WEIGHT
            + infrastructure * self.INFRASTRUCTURE_WEIGHT
            + efficiency * self.EFFICIENCY_WEIGHT
            + accountability * self.ACCOUNTABILITY_WEIGHT
        )

        result = ScoreResult(
            overall_score=_to_display(overall),
            financial_health_score=_to_display(financial_health),
            infrastructure_score=_to_display(infrastructure),
            efficiency_score=_to_display(efficiency),
            accountability_score=_to_display(accountability),
        )
        logger.debug(
            "Scored year=%s overall=%.2f financial_health=%.2f infrastructure=%.2f "
            "efficiency=%.2f accountability=%.2f",
            metrics.year,
            result.overall_score,
            result.financial_health_score,
            result.infrastructure_score,
            result.efficiency_score,
            result.accountability_score,
        )
        return result


def _to_decimal(value: PopulationValue) -> Decimal | None:
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _to_display(value: Decimal) -> float:
    return float(value.quantize(_DISPLAY_PRECISION, rounding=ROUND_HALF_UP))


_DEFAULT_MODEL = MunicipalScoringModel()


def score(metrics: MetricSet, population: PopulationValue = None) -> ScoreResult:
    """Score ``metrics`` with the default model."""
    return _DEFAULT_MODEL.compute(metrics, population)
