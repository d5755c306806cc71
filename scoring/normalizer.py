"""
scoring/normalizer.py

Deterministic Decimal normalization utilities for pillar scoring.
"""

from decimal import Decimal
from typing import Sequence

ZERO = Decimal("0")
ONE = Decimal("1")
HUNDRED = Decimal("100")


class ScoreNormalizer:
    """Stateless normalization helpers working purely in Decimal.

    All methods are deterministic and produce bounded outputs. No
    floating point is involved, so identical inputs always produce
    bit-identical outputs.
    """

    def clamp(self, value: Decimal, min_value: Decimal, max_value: Decimal) -> Decimal:
        """Clamp a value to the [min_value, max_value] range."""
        return max(min_value, min(value, max_value))

    def clamp_score(self, value: Decimal) -> Decimal:
        """Clamp a score to [0, 100]."""
        return self.clamp(value, ZERO, HUNDRED)

    def unit_position(self, value: Decimal, lower: Decimal, upper: Decimal) -> Decimal:
        """Position of ``value`` between ``lower`` and ``upper``, clamped to [0, 1].

        Args:
            value: The raw input.
            lower: Input mapped to 0.
            upper: Input mapped to 1. Must differ from ``lower``.

        Raises:
            ValueError: If ``lower`` equals ``upper``.
        """
        if upper == lower:
            raise ValueError("upper and lower bounds must differ.")
        return self.clamp((value - lower) / (upper - lower), ZERO, ONE)

    def interpolate(self, value: Decimal, points: Sequence[tuple[Decimal, Decimal]]) -> Decimal:
        """Piecewise-linear interpolation through ``points``.

        ``points`` are ``(x, y)`` pairs sorted by ascending ``x``. Inputs
        outside the first/last ``x`` take the first/last ``y``; there is
        no extrapolation.

        Args:
            value: The raw input.
            points: At least two anchor points with strictly increasing x.

        Returns:
            The interpolated value, clamped to [0, 100].
        """
        if len(points) < 2:
            raise ValueError("interpolate() needs at least two anchor points.")

        first_x, first_y = points[0]
        last_x, last_y = points[-1]
        if value <= first_x:
            return self.clamp_score(first_y)
        if value >= last_x:
            return self.clamp_score(last_y)

        for (x0, y0), (x1, y1) in zip(points, points[1:]):
            if x0 <= value <= x1:
                position = (value - x0) / (x1 - x0)
                return self.clamp_score(y0 + (y1 - y0) * position)

        # Unreachable for sorted anchors.
        return ZERO
