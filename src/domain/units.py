"""
Distance unit normalisation and display formatting.

Upstream routing services report distances inconsistently: some responses
carry meters, others kilometers, usually without saying which.  When the
backend *does* send a unit tag it is honoured exactly; otherwise the
magnitude heuristic applies:

    raw > 1000   -> meters, divide by 1000
    raw <= 1000  -> already kilometers

The heuristic misreads a genuinely short route reported in meters (1500 m
becomes 1.5 km, but 900 m becomes 900 km), so every heuristic decision is
logged at WARNING level.
"""

from __future__ import annotations

import logging
import math
from typing import Optional

from .enums import DistanceUnit
from .errors import InvalidDistance

logger = logging.getLogger(__name__)

METERS_THRESHOLD = 1000.0

_UNIT_ALIASES = {
    "m": DistanceUnit.METERS,
    "meter": DistanceUnit.METERS,
    "meters": DistanceUnit.METERS,
    "metres": DistanceUnit.METERS,
    "km": DistanceUnit.KILOMETERS,
    "kilometer": DistanceUnit.KILOMETERS,
    "kilometers": DistanceUnit.KILOMETERS,
    "kilometres": DistanceUnit.KILOMETERS,
}


def parse_unit(tag: Optional[str]) -> Optional[DistanceUnit]:
    """Map a backend unit tag to a ``DistanceUnit``; unknown tags -> None."""
    if not tag:
        return None
    return _UNIT_ALIASES.get(str(tag).strip().lower())


def normalize_distance(
    raw_value: float,
    unit: Optional[DistanceUnit] = None,
    threshold: float = METERS_THRESHOLD,
) -> float:
    """Return *raw_value* in **km**, raising ``InvalidDistance`` if not > 0."""
    try:
        value = float(raw_value)
    except (TypeError, ValueError) as exc:
        raise InvalidDistance(f"Distance {raw_value!r} is not a number") from exc

    if unit is DistanceUnit.METERS:
        km = value / 1000
    elif unit is DistanceUnit.KILOMETERS:
        km = value
    elif value > threshold:
        logger.warning(
            "No distance unit reported; treating %s as meters (> %s)", value, threshold
        )
        km = value / 1000
    else:
        logger.warning(
            "No distance unit reported; treating %s as kilometers (<= %s)",
            value,
            threshold,
        )
        km = value

    if not math.isfinite(km) or km <= 0:
        raise InvalidDistance("Invalid distance: must be positive")
    return km


def format_distance(distance_in_km: Optional[float]) -> str:
    if distance_in_km is None or not math.isfinite(distance_in_km):
        return "0.00 km"
    return f"{distance_in_km:.2f} km"


def format_duration(duration_in_seconds: Optional[int]) -> str:
    if not duration_in_seconds:
        return "0 min"

    hours, rest = divmod(int(duration_in_seconds), 3600)
    minutes = rest // 60
    if hours > 0:
        return f"{hours} h {minutes} min"
    return f"{minutes} min"
