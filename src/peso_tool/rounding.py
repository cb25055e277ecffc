"""Redondeo de pesos y diferencias a un decimal."""

from __future__ import annotations

import math


def round_half_up(value: float, digits: int = 1) -> float:
    """Round to ``digits`` decimals with halves going up (towards +inf).

    ``round()`` and ``pandas.Series.round`` round halves to even, so 70.25
    would become 70.2 there; here it becomes 70.3 and -0.25 becomes -0.2.
    """
    factor = 10**digits
    return math.floor(value * factor + 0.5) / factor
