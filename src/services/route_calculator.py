"""
Route Calculator
================

Turns an origin, a destination and optional waypoints into a normalised
``RouteResult`` (distance in km).

Degradation tiers for ``calculate_with_waypoints``
--------------------------------------------------
1. ``route/optimize`` with all resolved waypoints (may return an
   optimizer permutation in ``optimizedWaypointOrder``).
2. ``distance`` between origin and destination only.  The result is
   annotated ``waypoints_optimized=False`` / ``degraded=True`` and carries
   no geometry.

Tier 1 failing is recovered, never raised.  A payload that cannot be
parsed counts as a failed tier.  Only when tier 2 also fails does the
caller see ``RouteUnavailable``.

An ``InvalidDistance`` from unit normalisation is fatal to the attempt
and never triggers the fallback.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Optional, Sequence

from src.domain.entities import (
    BoundingBox,
    Leg,
    Location,
    Place,
    Route,
    RouteRequest,
    RouteResult,
    Waypoint,
    WaypointOrder,
    degrade,
)
from src.domain.errors import NoValidWaypoints, RouteUnavailable, RoutingBackendError
from src.domain.fallback import Strategy, TerminalFailure, try_in_order
from src.domain.ports import RoutingBackend
from src.domain.units import (
    METERS_THRESHOLD,
    format_distance,
    format_duration,
    normalize_distance,
    parse_unit,
)

logger = logging.getLogger(__name__)

RETRY_MESSAGE = "Failed to calculate distance. Please try again."


def resolved_waypoints(waypoints: Sequence[Waypoint]) -> list[Waypoint]:
    """Drop waypoints without a place identifier; they are never sent."""
    return [wp for wp in waypoints if wp is not None and wp.place_id]


class RouteCalculator:
    def __init__(
        self,
        backend: RoutingBackend,
        meters_threshold: float = METERS_THRESHOLD,
    ):
        self.backend = backend
        self.meters_threshold = meters_threshold

    # ── Public API ────────────────────────────────────────────────────

    async def calculate(
        self,
        origin: Place,
        destination: Place,
        waypoints: Sequence[Waypoint] = (),
        optimize: bool = False,
    ) -> RouteResult:
        """Direct when no waypoint is resolved, otherwise with waypoints."""
        if resolved_waypoints(waypoints):
            return await self.calculate_with_waypoints(
                origin, destination, waypoints, optimize=optimize
            )
        return await self.calculate_direct(origin, destination)

    async def calculate_direct(self, origin: Place, destination: Place) -> RouteResult:
        result = await self._direct_result(origin, destination)
        logger.info(
            "Direct route %s -> %s: %.2f km",
            origin.place_id,
            destination.place_id,
            result.distance_value,
        )
        return result

    async def calculate_with_waypoints(
        self,
        origin: Place,
        destination: Place,
        waypoints: Sequence[Waypoint],
        optimize: bool = False,
    ) -> RouteResult:
        valid = resolved_waypoints(waypoints)
        if not valid:
            raise NoValidWaypoints("Please provide at least one waypoint")
        _require_place_ids(origin, destination)

        request = RouteRequest(
            origin_place_id=origin.place_id,
            destination_place_id=destination.place_id,
            waypoints=tuple(valid),
            optimize_waypoints=optimize,
        )

        async def _optimized(req: RouteRequest) -> RouteResult:
            payload = await self.backend.optimize_route(req)
            return self._parse(payload, waypoints=valid, optimize=optimize)

        async def _direct(req: RouteRequest) -> RouteResult:
            return degrade(await self._direct_result(origin, destination, valid), valid)

        outcome = await try_in_order(
            [Strategy("route/optimize", _optimized), Strategy("distance", _direct)],
            request,
            recover=(RoutingBackendError, RouteUnavailable),
        )
        if isinstance(outcome, TerminalFailure):
            logger.warning(
                "Route calculation exhausted: %s",
                [a.error for a in outcome.attempts],
            )
            raise RouteUnavailable(RETRY_MESSAGE) from outcome.last_error

        result = outcome.value
        if result.degraded:
            logger.warning(
                "Waypoint route failed; using direct distance %s -> %s",
                origin.place_id,
                destination.place_id,
            )
            return result

        if optimize and not result.waypoints_optimized:
            logger.info("Optimization requested but no order returned; keeping input order")
        return result

    # ── Internals ─────────────────────────────────────────────────────

    async def _direct_result(
        self,
        origin: Place,
        destination: Place,
        waypoints: Sequence[Waypoint] = (),
    ) -> RouteResult:
        _require_place_ids(origin, destination)
        try:
            payload = await self.backend.distance(origin.place_id, destination.place_id)
            return self._parse(payload, waypoints=waypoints)
        except RoutingBackendError as exc:
            raise RouteUnavailable(RETRY_MESSAGE) from exc

    def _parse(
        self,
        payload: Any,
        waypoints: Sequence[Waypoint],
        optimize: bool = False,
    ) -> RouteResult:
        """``_to_result`` with malformed payloads reported as backend errors.

        ``InvalidDistance`` is not a payload shape problem and propagates.
        """
        try:
            return self._to_result(payload, waypoints=waypoints, optimize=optimize)
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            raise RoutingBackendError(f"Malformed routing payload: {exc!r}") from exc

    def _to_result(
        self,
        payload: dict[str, Any],
        waypoints: Sequence[Waypoint],
        optimize: bool = False,
    ) -> RouteResult:
        km = normalize_distance(
            payload["distanceValue"],
            unit=parse_unit(payload.get("distanceUnit")),
            threshold=self.meters_threshold,
        )
        duration = int(payload.get("durationValue") or 0)
        order = _parse_order(payload.get("optimizedWaypointOrder"))
        return RouteResult(
            distance_value=km,
            distance_text=payload.get("distanceText") or format_distance(km),
            duration_value=duration,
            duration_text=payload.get("durationText") or format_duration(duration),
            optimized_waypoint_order=order,
            route=parse_route(payload.get("route")),
            waypoints=tuple(waypoints),
            waypoints_optimized=(
                optimize
                and bool(order)
                and payload.get("waypointsOptimized") is not False
            ),
        )


def _require_place_ids(origin: Place, destination: Place) -> None:
    if not origin.place_id or not destination.place_id:
        raise RouteUnavailable(
            "Please select both start and end locations", retryable=False
        )


def _parse_order(raw: Any) -> Optional[tuple[WaypointOrder, ...]]:
    if not raw:
        return None
    return tuple(WaypointOrder(int(item["originalIndex"])) for item in raw)


def _parse_location(raw: Any) -> Optional[Location]:
    if not isinstance(raw, dict) or "lat" not in raw or "lng" not in raw:
        return None
    try:
        return Location(lat=float(raw["lat"]), lng=float(raw["lng"]))
    except (TypeError, ValueError):
        return None


def _measure(raw: Any) -> tuple[float, str]:
    """``{"value", "text"}`` pair; a bare number is taken as the value."""
    if isinstance(raw, dict):
        value, text = raw.get("value"), raw.get("text") or ""
    else:
        value, text = raw, ""
    try:
        number = float(value or 0)
    except (TypeError, ValueError):
        number = 0.0
    return (number if math.isfinite(number) else 0.0), str(text)


def _parse_leg(leg: dict[str, Any]) -> Leg:
    distance, distance_text = _measure(leg.get("distance"))
    duration, duration_text = _measure(leg.get("duration"))
    return Leg(
        distance_value=distance,
        distance_text=distance_text,
        duration_value=int(duration),
        duration_text=duration_text,
        start_address=str(leg.get("start_address") or ""),
        end_address=str(leg.get("end_address") or ""),
    )


def parse_route(raw: Any) -> Optional[Route]:
    if not isinstance(raw, dict):
        return None

    bounds = None
    raw_bounds = raw.get("bounds")
    if isinstance(raw_bounds, dict):
        ne = _parse_location(raw_bounds.get("northeast"))
        sw = _parse_location(raw_bounds.get("southwest"))
        if ne and sw:
            bounds = BoundingBox(northeast=ne, southwest=sw)

    raw_legs = raw.get("legs")
    if not isinstance(raw_legs, list):
        raw_legs = []
    legs = tuple(_parse_leg(leg) for leg in raw_legs if isinstance(leg, dict))

    polyline = raw.get("polyline") or raw.get("overview_polyline")
    if isinstance(polyline, dict):  # {"points": "..."} shape
        polyline = polyline.get("points")
    if not isinstance(polyline, str):
        polyline = None
    return Route(polyline=polyline or None, bounds=bounds, legs=legs)
