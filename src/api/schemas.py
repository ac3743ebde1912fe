"""Pydantic request / response schemas for the REST API."""

from __future__ import annotations

import enum
from datetime import date
from typing import Any, Optional

from pydantic import BaseModel, Field

from src.domain.entities import (
    ExpenseDraft,
    Location,
    Place,
    RouteResult,
    Waypoint,
)


# ── Shared ────────────────────────────────────────────────────────────


class LocationSchema(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class PlaceSchema(BaseModel):
    place_id: str = ""
    description: str = ""
    formatted_address: str = ""
    location: Optional[LocationSchema] = None

    def to_domain(self) -> Place:
        return Place(
            place_id=self.place_id,
            description=self.description,
            formatted_address=self.formatted_address,
            location=(
                Location(lat=self.location.lat, lng=self.location.lng)
                if self.location
                else None
            ),
        )

    @classmethod
    def from_domain(cls, place: Optional[Place]) -> Optional["PlaceSchema"]:
        if place is None:
            return None
        return cls(
            place_id=place.place_id,
            description=place.description,
            formatted_address=place.formatted_address,
            location=(
                LocationSchema(lat=place.location.lat, lng=place.location.lng)
                if place.location
                else None
            ),
        )


class WaypointSchema(PlaceSchema):
    stopover: bool = True

    def to_waypoint(self) -> Waypoint:
        return Waypoint(place=self.to_domain(), stopover=self.stopover)

    @classmethod
    def from_waypoint(cls, waypoint: Waypoint) -> "WaypointSchema":
        place = PlaceSchema.from_domain(waypoint.place)
        return cls(**place.model_dump(), stopover=waypoint.stopover)


class RouteResultResponse(BaseModel):
    distance_value: float = Field(..., description="Kilometers")
    distance_text: str
    duration_value: int = Field(..., description="Seconds")
    duration_text: str
    optimized_waypoint_order: Optional[list[int]] = None
    polyline: Optional[str] = None
    bounds: Optional[dict[str, LocationSchema]] = None
    waypoints_optimized: bool = False
    degraded: bool = False
    ordered_waypoints: list[WaypointSchema] = []

    @classmethod
    def from_domain(cls, result: RouteResult) -> "RouteResultResponse":
        route = result.route
        bounds = None
        if route is not None and route.bounds is not None:
            bounds = {
                "northeast": LocationSchema(
                    lat=route.bounds.northeast.lat, lng=route.bounds.northeast.lng
                ),
                "southwest": LocationSchema(
                    lat=route.bounds.southwest.lat, lng=route.bounds.southwest.lng
                ),
            }
        return cls(
            distance_value=result.distance_value,
            distance_text=result.distance_text,
            duration_value=result.duration_value,
            duration_text=result.duration_text,
            optimized_waypoint_order=(
                [o.original_index for o in result.optimized_waypoint_order]
                if result.optimized_waypoint_order
                else None
            ),
            polyline=route.polyline if route else None,
            bounds=bounds,
            waypoints_optimized=result.waypoints_optimized,
            degraded=result.degraded,
            ordered_waypoints=[
                WaypointSchema.from_waypoint(w) for w in result.ordered_waypoints()
            ],
        )


# ── Routes ────────────────────────────────────────────────────────────


class RouteCalculateRequest(BaseModel):
    origin: PlaceSchema
    destination: PlaceSchema
    waypoints: list[WaypointSchema] = []
    optimize: bool = False
    cost_per_km: Optional[float] = Field(
        None, description="Defaults to the configured rate when omitted."
    )


class RouteCalculateResponse(BaseModel):
    route: RouteResultResponse
    cost_per_km: float
    total_cost: float


# ── Maps ──────────────────────────────────────────────────────────────


class MapRenderRequest(BaseModel):
    origin: Optional[PlaceSchema] = None
    destination: Optional[PlaceSchema] = None
    waypoints: list[WaypointSchema] = []
    polyline: Optional[str] = Field(
        None, description="Encoded polyline from a prior route calculation."
    )
    container: Optional[str] = None


class ImageAttemptSchema(BaseModel):
    provider: str
    url: str
    error: Optional[str] = None


class MapRenderResponse(BaseModel):
    state: str
    image_url: Optional[str] = None
    interactive: Optional[dict[str, Any]] = None
    provider: Optional[str] = None
    path_source: str
    attempts: list[ImageAttemptSchema] = []
    retryable: bool = False
    error: Optional[str] = None


# ── Wizard ────────────────────────────────────────────────────────────


class PlaceField(str, enum.Enum):
    START_LOCATION = "start_location"
    END_LOCATION = "end_location"


class WizardCreateRequest(BaseModel):
    cost_per_km: Optional[float] = None


class PlaceSelection(BaseModel):
    place_id: str = Field(..., min_length=1)
    description: str = ""


class WizardCalculateRequest(BaseModel):
    optimize: Optional[bool] = None


class WizardDetailsUpdate(BaseModel):
    category_id: Optional[str] = None
    expense_date: Optional[date] = None
    notes: Optional[str] = None
    cost_per_km: Optional[float] = None


class DraftSchema(BaseModel):
    start_location: Optional[PlaceSchema] = None
    end_location: Optional[PlaceSchema] = None
    waypoints: list[WaypointSchema] = []
    distance_in_km: float = 0.0
    cost_per_km: float
    total_cost: float = 0.0
    optimize_waypoints: bool = False
    category_id: Optional[str] = None
    expense_date: Optional[date] = None
    notes: str = ""
    errors: dict[str, str] = {}
    route: Optional[RouteResultResponse] = None

    @classmethod
    def from_domain(cls, draft: ExpenseDraft) -> "DraftSchema":
        return cls(
            start_location=PlaceSchema.from_domain(draft.start_location),
            end_location=PlaceSchema.from_domain(draft.end_location),
            waypoints=[WaypointSchema.from_waypoint(w) for w in draft.waypoints],
            distance_in_km=draft.distance_in_km,
            cost_per_km=draft.cost_per_km,
            total_cost=draft.total_cost,
            optimize_waypoints=draft.optimize_waypoints,
            category_id=draft.category_id,
            expense_date=draft.expense_date,
            notes=draft.notes,
            errors=dict(draft.errors),
            route=(
                RouteResultResponse.from_domain(draft.route_result)
                if draft.route_result
                else None
            ),
        )


class WizardStateResponse(BaseModel):
    id: str
    step: str
    mode: str
    expense_id: Optional[int] = None
    draft: DraftSchema


class SuggestionsResponse(BaseModel):
    field: str
    query: str
    superseded: bool = False
    suggestions: list[PlaceSchema] = []


class SubmitResponse(BaseModel):
    id: int


# ── Snapshots ─────────────────────────────────────────────────────────


class RouteSnapshotResponse(BaseModel):
    expense_id: int
    degraded: bool
    waypoints_optimized: bool
    snapshot: dict[str, Any]


# ── Misc ──────────────────────────────────────────────────────────────


class HealthResponse(BaseModel):
    status: str = "ok"


class ErrorResponse(BaseModel):
    detail: str
    retryable: bool = False
    errors: dict[str, str] = {}
