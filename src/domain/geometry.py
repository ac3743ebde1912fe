"""
Map geometry helpers: markers, centre point and path encoding.

Polyline encoding follows the Google "Encoded Polyline Algorithm Format"
(precision 5), which both static map providers accept.

Complexity: O(n) in the number of points.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

from .entities import Location, Place, Waypoint

ORIGIN_LABEL = "A"
DESTINATION_LABEL = "B"


@dataclass(frozen=True)
class Marker:
    location: Location
    label: str
    role: str  # "origin" | "destination" | "waypoint"


@dataclass(frozen=True)
class MapPath:
    """Either an encoded polyline or a list of points to join."""

    polyline: Optional[str] = None
    points: tuple[Location, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.polyline and len(self.points) < 2

    def encoded(self) -> Optional[str]:
        if self.polyline:
            return self.polyline
        if len(self.points) >= 2:
            return encode_polyline(self.points)
        return None


def build_markers(
    origin: Optional[Place],
    destination: Optional[Place],
    waypoints: Sequence[Waypoint],
) -> list[Marker]:
    """A/B endpoint markers plus 1..n waypoint markers, located places only."""
    markers: list[Marker] = []
    if origin is not None and origin.location is not None:
        markers.append(Marker(origin.location, ORIGIN_LABEL, "origin"))
    if destination is not None and destination.location is not None:
        markers.append(Marker(destination.location, DESTINATION_LABEL, "destination"))
    located = [wp for wp in waypoints if wp.location is not None]
    for index, wp in enumerate(located, start=1):
        markers.append(Marker(wp.location, str(index), "waypoint"))
    return markers


def straight_line_points(
    origin: Optional[Place],
    destination: Optional[Place],
    waypoints: Sequence[Waypoint],
) -> tuple[Location, ...]:
    """origin -> each waypoint in order -> destination, skipping gaps."""
    points: list[Location] = []
    if origin is not None and origin.location is not None:
        points.append(origin.location)
    points.extend(wp.location for wp in waypoints if wp.location is not None)
    if destination is not None and destination.location is not None:
        points.append(destination.location)
    return tuple(points)


def map_center(
    origin: Optional[Place],
    destination: Optional[Place],
    markers: Sequence[Marker],
) -> Optional[Location]:
    """Midpoint of A and B when both exist, else centroid of all markers."""
    if (
        origin is not None
        and destination is not None
        and origin.location is not None
        and destination.location is not None
    ):
        return Location(
            lat=(origin.location.lat + destination.location.lat) / 2,
            lng=(origin.location.lng + destination.location.lng) / 2,
        )
    if not markers:
        return None
    return Location(
        lat=sum(m.location.lat for m in markers) / len(markers),
        lng=sum(m.location.lng for m in markers) / len(markers),
    )


def encode_polyline(points: Sequence[Location], precision: int = 5) -> str:
    factor = 10**precision
    result: list[str] = []
    prev_lat = prev_lng = 0

    for point in points:
        lat = int(round(point.lat * factor))
        lng = int(round(point.lng * factor))
        result.append(_encode_value(lat - prev_lat))
        result.append(_encode_value(lng - prev_lng))
        prev_lat, prev_lng = lat, lng

    return "".join(result)


def _encode_value(value: int) -> str:
    value = ~(value << 1) if value < 0 else value << 1
    chunks: list[str] = []
    while value >= 0x20:
        chunks.append(chr((0x20 | (value & 0x1F)) + 63))
        value >>= 5
    chunks.append(chr(value + 63))
    return "".join(chunks)
