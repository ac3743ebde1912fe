"""
REST backend clients (routing + place resolution).

Both talk to the expense backend's ``/maps`` endpoints over a shared
``httpx.AsyncClient``.  Responses may be wrapped in ``{"data": ...}``;
both shapes are accepted.  Transport errors are wrapped at this boundary
so services only ever see domain exceptions.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from src.domain.entities import Location, Place, RouteRequest
from src.domain.errors import PlaceResolutionFailed, RoutingBackendError

logger = logging.getLogger(__name__)


def _unwrap(body: Any) -> Any:
    if isinstance(body, dict) and "data" in body:
        return body["data"]
    return body


def _waypoint_payload(request: RouteRequest) -> list[dict[str, Any]]:
    return [
        {
            "placeId": wp.place_id,
            "stopover": wp.stopover,
            "description": wp.place.description,
        }
        for wp in request.waypoints
    ]


def place_from_payload(data: dict[str, Any]) -> Place:
    loc = data.get("location") or None
    return Place(
        place_id=data.get("placeId", ""),
        description=data.get("description") or data.get("name") or "",
        formatted_address=data.get("formattedAddress", ""),
        location=(
            Location(lat=float(loc["lat"]), lng=float(loc["lng"]))
            if isinstance(loc, dict) and "lat" in loc and "lng" in loc
            else None
        ),
    )


class HttpRoutingBackend:
    """Routing Backend over HTTP: ``POST maps/route/optimize`` and ``maps/distance``."""

    def __init__(self, client: httpx.AsyncClient):
        self.client = client

    async def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        try:
            resp = await self.client.post(path, json=payload)
            resp.raise_for_status()
            body = resp.json()
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "Routing backend %s returned %s", path, exc.response.status_code
            )
            raise RoutingBackendError(
                f"{path}: HTTP {exc.response.status_code}"
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Routing backend %s unreachable: %s", path, exc)
            raise RoutingBackendError(f"{path}: {exc}") from exc

        result = _unwrap(body)
        if not isinstance(result, dict) or not isinstance(
            result.get("distanceValue"), (int, float)
        ):
            raise RoutingBackendError(f"{path}: response has no distanceValue")
        return result

    async def optimize_route(self, request: RouteRequest) -> dict[str, Any]:
        return await self._post(
            "maps/route/optimize",
            {
                "originPlaceId": request.origin_place_id,
                "destinationPlaceId": request.destination_place_id,
                "waypoints": _waypoint_payload(request),
                "optimizeWaypoints": request.optimize_waypoints,
                "includeAlternatives": request.include_alternatives,
            },
        )

    async def distance(
        self, origin_place_id: str, destination_place_id: str
    ) -> dict[str, Any]:
        return await self._post(
            "maps/distance",
            {
                "originPlaceId": origin_place_id,
                "destinationPlaceId": destination_place_id,
            },
        )


class HttpPlaceResolver:
    """Place Resolution Adapter over HTTP."""

    def __init__(self, client: httpx.AsyncClient):
        self.client = client

    async def _get(self, path: str, **params: Any) -> Any:
        try:
            resp = await self.client.get(path, params=params or None)
            resp.raise_for_status()
            return _unwrap(resp.json())
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Place lookup %s failed: %s", path, exc)
            raise PlaceResolutionFailed("Failed to get place details") from exc

    async def autocomplete(self, query: str) -> list[Place]:
        predictions = await self._get("maps/places/autocomplete", input=query)
        return [place_from_payload(p) for p in predictions or []]

    async def details(self, place_id: str) -> Place:
        data = await self._get(f"maps/places/details/{place_id}")
        if not isinstance(data, dict):
            raise PlaceResolutionFailed("Failed to get place details")
        place = place_from_payload(data)
        if not place.place_id:
            place = Place(
                place_id=place_id,
                description=place.description,
                formatted_address=place.formatted_address,
                location=place.location,
            )
        return place


def create_backend_client(
    base_url: str, token: str | None = None, timeout: float = 10.0
) -> httpx.AsyncClient:
    headers = {"Authorization": f"Bearer {token}"} if token else {}
    return httpx.AsyncClient(
        base_url=base_url.rstrip("/") + "/", headers=headers, timeout=timeout
    )
