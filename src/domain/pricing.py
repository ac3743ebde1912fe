"""
Mileage Cost Engine
===================

Formula
-------
Total_Cost = Distance_km x Cost_Per_KM

Both factors must be strictly positive.  A zero or negative input is an
error, never a zero-cost expense.

Complexity: O(1) per calculation.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional

from .entities import RouteResult
from .errors import InvalidCostInput


def derive_cost(distance_in_km: float, cost_per_km: float) -> float:
    """Return ``distance_in_km * cost_per_km``; both must be > 0."""
    for name, value in (("distance_in_km", distance_in_km), ("cost_per_km", cost_per_km)):
        if value is None or not math.isfinite(value) or value <= 0:
            raise InvalidCostInput(f"{name} must be greater than zero (got {value!r})")
    return distance_in_km * cost_per_km


@dataclass(frozen=True)
class CostQuote:
    distance_in_km: float
    cost_per_km: float
    total_cost: float


# ── Engine facade ─────────────────────────────────────────────────────


class CostEngine:
    """High-level API used by the wizard and the API layer."""

    def __init__(self, cost_per_km: float = 0.7):
        self.cost_per_km = cost_per_km

    def quote(self, result: RouteResult, cost_per_km: Optional[float] = None) -> CostQuote:
        rate = self.cost_per_km if cost_per_km is None else cost_per_km
        return CostQuote(
            distance_in_km=result.distance_value,
            cost_per_km=rate,
            total_cost=derive_cost(result.distance_value, rate),
        )
