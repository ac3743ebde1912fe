"""
Domain entities and value objects.

Patterns used
-------------
- **Value Objects** (frozen dataclasses): ``Place``, ``Waypoint``,
  ``RouteResult`` and ``RouteSnapshot`` never change once produced;
  recalculation builds new objects instead of mutating old ones.
- ``RouteResult.ordered_waypoints`` owns the optimizer projection
  ``optimized[i] = waypoints[order[i].original_index]``.
- ``ExpenseDraft`` is the only mutable entity and is written exclusively by
  the wizard controller.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field, replace
from datetime import date, datetime, timezone
from typing import Any, Optional, Sequence

logger = logging.getLogger(__name__)


# ── Geography ─────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Location:
    lat: float
    lng: float


@dataclass(frozen=True)
class BoundingBox:
    northeast: Location
    southwest: Location


@dataclass(frozen=True)
class Place:
    place_id: str = ""
    description: str = ""
    formatted_address: str = ""
    location: Optional[Location] = None

    @property
    def is_resolved(self) -> bool:
        return bool(self.place_id)

    @property
    def has_location(self) -> bool:
        return self.location is not None

    @property
    def label(self) -> str:
        return self.description or self.formatted_address


@dataclass(frozen=True)
class Waypoint:
    place: Place = field(default_factory=Place)
    stopover: bool = True

    @property
    def place_id(self) -> str:
        return self.place.place_id

    @property
    def location(self) -> Optional[Location]:
        return self.place.location


# ── Routing ───────────────────────────────────────────────────────────


@dataclass(frozen=True)
class RouteRequest:
    origin_place_id: str
    destination_place_id: str
    waypoints: tuple[Waypoint, ...] = ()
    optimize_waypoints: bool = False
    include_alternatives: bool = False


@dataclass(frozen=True)
class Leg:
    distance_value: float = 0.0
    distance_text: str = ""
    duration_value: int = 0
    duration_text: str = ""
    start_address: str = ""
    end_address: str = ""


@dataclass(frozen=True)
class Route:
    polyline: Optional[str] = None
    bounds: Optional[BoundingBox] = None
    legs: tuple[Leg, ...] = ()


@dataclass(frozen=True)
class WaypointOrder:
    original_index: int


@dataclass(frozen=True)
class RouteResult:
    """Normalised route; ``distance_value`` is always kilometers."""

    distance_value: float
    distance_text: str
    duration_value: int
    duration_text: str
    optimized_waypoint_order: Optional[tuple[WaypointOrder, ...]] = None
    route: Optional[Route] = None
    waypoints: tuple[Waypoint, ...] = ()
    waypoints_optimized: bool = False
    degraded: bool = False

    def ordered_waypoints(self) -> list[Waypoint]:
        """Waypoints in the order the route actually visits them."""
        if not self.waypoints_optimized or not self.optimized_waypoint_order:
            return list(self.waypoints)
        return apply_optimized_order(self.waypoints, self.optimized_waypoint_order)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RouteResult":
        order = data.get("optimized_waypoint_order")
        route = data.get("route")
        return cls(
            distance_value=float(data["distance_value"]),
            distance_text=data.get("distance_text", ""),
            duration_value=int(data.get("duration_value") or 0),
            duration_text=data.get("duration_text", ""),
            optimized_waypoint_order=(
                tuple(WaypointOrder(int(o["original_index"])) for o in order)
                if order is not None
                else None
            ),
            route=_route_from_dict(route) if route is not None else None,
            waypoints=tuple(_waypoint_from_dict(w) for w in data.get("waypoints", [])),
            waypoints_optimized=bool(data.get("waypoints_optimized", False)),
            degraded=bool(data.get("degraded", False)),
        )


def apply_optimized_order(
    waypoints: Sequence[Waypoint], order: Sequence[WaypointOrder]
) -> list[Waypoint]:
    """
    Project *waypoints* through the optimizer permutation.

    The order is only authoritative when it is a full permutation of the
    input indices; anything else keeps the submitted order.
    """
    indices = [o.original_index for o in order]
    if sorted(indices) != list(range(len(waypoints))):
        logger.warning(
            "Ignoring optimized order %s for %d waypoints", indices, len(waypoints)
        )
        return list(waypoints)
    return [waypoints[i] for i in indices]


# ── Snapshot ──────────────────────────────────────────────────────────


@dataclass(frozen=True)
class RouteSnapshot:
    """Denormalised copy of a calculation, stored with the expense."""

    result: RouteResult
    origin: Place
    destination: Place
    waypoints: tuple[Waypoint, ...] = ()
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def polyline(self) -> Optional[str]:
        return self.result.route.polyline if self.result.route else None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["created_at"] = self.created_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RouteSnapshot":
        created = data.get("created_at")
        return cls(
            result=RouteResult.from_dict(data["result"]),
            origin=_place_from_dict(data["origin"]),
            destination=_place_from_dict(data["destination"]),
            waypoints=tuple(_waypoint_from_dict(w) for w in data.get("waypoints", [])),
            created_at=(
                datetime.fromisoformat(created)
                if created
                else datetime.now(timezone.utc)
            ),
        )


# ── Draft ─────────────────────────────────────────────────────────────


@dataclass
class ExpenseDraft:
    start_location: Optional[Place] = None
    end_location: Optional[Place] = None
    waypoints: list[Waypoint] = field(default_factory=list)
    distance_in_km: float = 0.0
    cost_per_km: float = 0.7
    total_cost: float = 0.0
    route_snapshot: Optional[RouteSnapshot] = None
    optimize_waypoints: bool = False
    category_id: Optional[str] = None
    expense_date: Optional[date] = None
    notes: str = ""
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def route_result(self) -> Optional[RouteResult]:
        return self.route_snapshot.result if self.route_snapshot else None

    def clear_route(self) -> None:
        self.distance_in_km = 0.0
        self.total_cost = 0.0
        self.route_snapshot = None

    def to_record(self) -> dict[str, Any]:
        """Flat shape handed to the persistence collaborator."""
        return {
            "starting_point": self.start_location.label if self.start_location else "",
            "destination_point": self.end_location.label if self.end_location else "",
            "starting_point_place_id": (
                self.start_location.place_id if self.start_location else ""
            ),
            "destination_point_place_id": (
                self.end_location.place_id if self.end_location else ""
            ),
            "waypoints": [asdict(w) for w in self.waypoints],
            "optimize_waypoints": self.optimize_waypoints,
            "distance": self.distance_in_km,
            "cost_per_km": self.cost_per_km,
            "total_cost": self.total_cost,
            "category_id": self.category_id,
            "journey_date": self.expense_date,
            "notes": self.notes,
            "route_snapshot": (
                self.route_snapshot.to_dict() if self.route_snapshot else None
            ),
        }


# ── dict helpers ──────────────────────────────────────────────────────


def _location_from_dict(data: Optional[dict[str, Any]]) -> Optional[Location]:
    if not data:
        return None
    return Location(lat=float(data["lat"]), lng=float(data["lng"]))


def _place_from_dict(data: Optional[dict[str, Any]]) -> Place:
    if not data:
        return Place()
    return Place(
        place_id=data.get("place_id", ""),
        description=data.get("description", ""),
        formatted_address=data.get("formatted_address", ""),
        location=_location_from_dict(data.get("location")),
    )


def _waypoint_from_dict(data: dict[str, Any]) -> Waypoint:
    return Waypoint(
        place=_place_from_dict(data.get("place")),
        stopover=bool(data.get("stopover", True)),
    )


def _route_from_dict(data: dict[str, Any]) -> Route:
    bounds = data.get("bounds")
    return Route(
        polyline=data.get("polyline"),
        bounds=(
            BoundingBox(
                northeast=_location_from_dict(bounds["northeast"]),
                southwest=_location_from_dict(bounds["southwest"]),
            )
            if bounds
            else None
        ),
        legs=tuple(Leg(**leg) for leg in data.get("legs", [])),
    )


def degrade(result: RouteResult, waypoints: Sequence[Waypoint]) -> RouteResult:
    """Annotate a direct result as the waypoint-less fallback."""
    return replace(
        result,
        optimized_waypoint_order=None,
        route=Route(polyline=None, bounds=None, legs=()),
        waypoints=tuple(waypoints),
        waypoints_optimized=False,
        degraded=True,
    )
