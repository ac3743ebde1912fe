"""
Map provider adapters.

* ``GoogleStaticMapProvider``  -- primary static tier (Static Maps API).
* ``MapboxStaticMapProvider``  -- secondary static tier (Static Images API).
* ``DirectionsWidgetProvider`` -- interactive tier; emits the payload the
  browser map widget renders (markers + directions).
* ``HttpImageLoader``          -- proves a static URL actually yields an
  image before it is handed to the client.

URL builders are pure: same markers + path in, same URL out.  Each
provider speaks its own URL scheme for the same semantics (A/B endpoint
pins, numbered waypoint pins, one route path).
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Sequence
from urllib.parse import quote

import httpx

from src.domain.entities import Location
from src.domain.errors import MapImageLoadError, MapRenderFailed
from src.domain.geometry import MapPath, Marker

logger = logging.getLogger(__name__)

PATH_WEIGHT = 5
PATH_COLOR = "14213D"

_GOOGLE_COLORS = {"origin": "blue", "destination": "red", "waypoint": "green"}
_MAPBOX_COLORS = {"origin": "0000FF", "destination": "FF0000", "waypoint": "00FF00"}


# ── Static tiers ──────────────────────────────────────────────────────


class GoogleStaticMapProvider:
    name = "google"
    base_url = "https://maps.googleapis.com/maps/api/staticmap"

    def __init__(self, api_key: str = "", zoom: int = 10, scale: int = 2):
        self.api_key = api_key
        self.zoom = zoom
        self.scale = scale

    def build_image_url(
        self,
        center: Optional[Location],
        markers: Sequence[Marker],
        path: Optional[MapPath],
        size: tuple[int, int],
    ) -> str:
        params: list[tuple[str, str]] = [
            ("size", f"{size[0]}x{size[1]}"),
            ("scale", str(self.scale)),
        ]

        has_path = path is not None and not path.is_empty
        # With a path the API fits the viewport itself.
        if center is not None and not has_path:
            params.append(("center", f"{center.lat},{center.lng}"))
            params.append(("zoom", str(self.zoom)))

        if has_path:
            style = f"weight:{PATH_WEIGHT}|color:0x{PATH_COLOR}"
            if path.polyline:
                params.append(("path", f"{style}|enc:{path.polyline}"))
            else:
                coords = "|".join(f"{p.lat},{p.lng}" for p in path.points)
                params.append(("path", f"{style}|{coords}"))

        for m in markers:
            marker_style = f"color:{_GOOGLE_COLORS[m.role]}"
            # label: takes one character; waypoint 10+ gets a bare pin
            if len(m.label) == 1:
                marker_style += f"|label:{m.label}"
            params.append(("markers", f"{marker_style}|{m.location.lat},{m.location.lng}"))

        if self.api_key:
            params.append(("key", self.api_key))
        return str(httpx.URL(self.base_url, params=params))


class MapboxStaticMapProvider:
    name = "mapbox"
    base_url = "https://api.mapbox.com/styles/v1/mapbox/streets-v11/static"

    def __init__(self, access_token: str = "", zoom: int = 10, scale: int = 2):
        self.access_token = access_token
        self.zoom = zoom
        self.scale = scale

    def build_image_url(
        self,
        center: Optional[Location],
        markers: Sequence[Marker],
        path: Optional[MapPath],
        size: tuple[int, int],
    ) -> str:
        overlays: list[str] = []
        encoded = path.encoded() if path is not None else None
        if encoded:
            overlays.append(f"path-{PATH_WEIGHT}+{PATH_COLOR}({quote(encoded, safe='')})")
        for m in markers:
            # pin labels are a single letter or a number up to 99
            label = f"-{m.label.lower()}" if len(m.label) <= 2 else ""
            overlays.append(
                f"pin-s{label}+{_MAPBOX_COLORS[m.role]}"
                f"({m.location.lng},{m.location.lat})"
            )

        if encoded or center is None:
            position = "auto"
        else:
            position = f"{center.lng},{center.lat},{self.zoom}"

        dims = f"{size[0]}x{size[1]}" + ("@2x" if self.scale >= 2 else "")
        url = f"{self.base_url}/{','.join(overlays)}/{position}/{dims}"
        if self.access_token:
            url += f"?access_token={quote(self.access_token, safe='')}"
        return url


# ── Interactive tier ──────────────────────────────────────────────────


class DirectionsWidgetProvider:
    """Builds the render instructions for the client-side map widget."""

    name = "google-js"

    def render_interactive(
        self,
        container: Optional[str],
        markers: Sequence[Marker],
        directions: dict[str, Any],
    ) -> dict[str, Any]:
        if not directions.get("polyline"):
            raise MapRenderFailed("Interactive map needs route geometry")
        return {
            "provider": self.name,
            "container": container,
            "markers": [
                {
                    "lat": m.location.lat,
                    "lng": m.location.lng,
                    "label": m.label,
                    "role": m.role,
                }
                for m in markers
            ],
            "directions": directions,
        }


# ── Image probe ───────────────────────────────────────────────────────


class HttpImageLoader:
    def __init__(self, client: httpx.AsyncClient):
        self.client = client

    async def load(self, url: str) -> None:
        try:
            resp = await self.client.get(url)
        except httpx.HTTPError as exc:
            raise MapImageLoadError(f"Image request failed: {exc}") from exc

        content_type = resp.headers.get("content-type", "")
        if resp.status_code != 200 or not content_type.startswith("image/"):
            raise MapImageLoadError(
                f"Image load failed: HTTP {resp.status_code} ({content_type or 'no type'})"
            )
