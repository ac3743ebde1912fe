"""
Map Tile Resolver
=================

Produces a displayable map for an origin, a destination and waypoints,
tolerating missing coordinates and unreliable providers.

State machine per request (``MAP_RENDER_TRANSITIONS``)::

    IDLE -> RESOLVING -> RENDERED_INTERACTIVE
                      -> RENDERED_STATIC_PRIMARY -> RENDERED_STATIC_FALLBACK -> FAILED
    IDLE | RESOLVING -> EMPTY   (no coordinates at all; terminal, no retry)

Path selection
--------------
1. Polyline from the cost-bearing calculation, when the caller has one.
2. Best-effort display route from the routing backend.  Skipped when an
   endpoint has no coordinates or a located place has no place id (the
   request could only fail).  Any error here is swallowed; the billed
   distance is never touched.
3. Straight segments origin -> waypoints in order -> destination.

Static images are tried primary then secondary, one load each, in
sequence.  Two failed loads end in ``FAILED`` with ``retryable=True``; the
caller decides whether to start a fresh request.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

from src.domain.entities import Place, Route, RouteRequest, Waypoint
from src.domain.enums import MAP_RENDER_TRANSITIONS, MapRenderState, PathSource
from src.domain.errors import (
    InvalidStateTransition,
    MapImageLoadError,
    MapRenderFailed,
    RoutingBackendError,
)
from src.domain.fallback import Strategy, TerminalFailure, try_in_order
from src.domain.geometry import (
    MapPath,
    Marker,
    build_markers,
    map_center,
    straight_line_points,
)
from src.domain.ports import (
    ImageLoader,
    InteractiveMapProvider,
    RoutingBackend,
    StaticMapProvider,
)
from src.services.route_calculator import parse_route

logger = logging.getLogger(__name__)

FAILED_MESSAGE = "The map could not be loaded. Please try again."


@dataclass(frozen=True)
class ImageAttempt:
    provider: str
    url: str
    error: Optional[str] = None


@dataclass
class MapRender:
    state: MapRenderState = MapRenderState.IDLE
    image_url: Optional[str] = None
    interactive: Optional[dict[str, Any]] = None
    provider: Optional[str] = None
    path_source: PathSource = PathSource.NONE
    attempts: list[ImageAttempt] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def retryable(self) -> bool:
        return self.state is MapRenderState.FAILED

    def transition_to(self, new_state: MapRenderState) -> None:
        """Move to *new_state* if the transition is legal, else raise."""
        allowed = MAP_RENDER_TRANSITIONS.get(self.state, set())
        if new_state not in allowed:
            raise InvalidStateTransition(
                f"Cannot transition from {self.state} to {new_state}"
            )
        self.state = new_state


class MapTileResolver:
    def __init__(
        self,
        primary: StaticMapProvider,
        secondary: StaticMapProvider,
        image_loader: ImageLoader,
        interactive: Optional[InteractiveMapProvider] = None,
        route_backend: Optional[RoutingBackend] = None,
        size: tuple[int, int] = (600, 400),
    ):
        self.primary = primary
        self.secondary = secondary
        self.image_loader = image_loader
        self.interactive = interactive
        self.route_backend = route_backend
        self.size = size

    async def resolve(
        self,
        origin: Optional[Place],
        destination: Optional[Place],
        waypoints: Sequence[Waypoint] = (),
        polyline: Optional[str] = None,
        container: Optional[str] = None,
    ) -> MapRender:
        render = MapRender()
        markers = build_markers(origin, destination, waypoints)
        if not markers:
            render.transition_to(MapRenderState.EMPTY)
            return render

        render.transition_to(MapRenderState.RESOLVING)
        map_path, render.path_source, route = await self._resolve_path(
            origin, destination, waypoints, polyline
        )

        if self.interactive is not None and map_path.polyline:
            if self._render_interactive(render, container, markers, map_path, route):
                return render

        await self._render_static(render, origin, destination, markers, map_path)
        return render

    # ── Path ──────────────────────────────────────────────────────────

    async def _resolve_path(
        self,
        origin: Optional[Place],
        destination: Optional[Place],
        waypoints: Sequence[Waypoint],
        polyline: Optional[str],
    ) -> tuple[MapPath, PathSource, Optional[Route]]:
        if polyline:
            return MapPath(polyline=polyline), PathSource.POLYLINE, None

        route = await self._display_route(origin, destination, waypoints)
        if route is not None and route.polyline:
            return MapPath(polyline=route.polyline), PathSource.DISPLAY_ROUTE, route

        points = straight_line_points(origin, destination, waypoints)
        if len(points) >= 2:
            return MapPath(points=points), PathSource.STRAIGHT_LINE, None
        return MapPath(), PathSource.NONE, None

    async def _display_route(
        self,
        origin: Optional[Place],
        destination: Optional[Place],
        waypoints: Sequence[Waypoint],
    ) -> Optional[Route]:
        if self.route_backend is None:
            return None
        if origin is None or destination is None:
            return None
        if origin.location is None or destination.location is None:
            return None

        located = [wp for wp in waypoints if wp.location is not None]
        if not origin.place_id or not destination.place_id or any(
            not wp.place_id for wp in located
        ):
            logger.info("Skipping display route: place ids missing")
            return None

        request = RouteRequest(
            origin_place_id=origin.place_id,
            destination_place_id=destination.place_id,
            waypoints=tuple(located),
            optimize_waypoints=False,
        )
        try:
            payload = await self.route_backend.optimize_route(request)
        except RoutingBackendError as exc:
            logger.info("Display route unavailable, drawing straight lines: %s", exc)
            return None
        try:
            return parse_route(payload.get("route"))
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            logger.info("Display route unreadable, drawing straight lines: %r", exc)
            return None

    # ── Tiers ─────────────────────────────────────────────────────────

    def _render_interactive(
        self,
        render: MapRender,
        container: Optional[str],
        markers: Sequence[Marker],
        path: MapPath,
        route: Optional[Route],
    ) -> bool:
        directions: dict[str, Any] = {"polyline": path.polyline}
        if route is not None and route.bounds is not None:
            ne, sw = route.bounds.northeast, route.bounds.southwest
            directions["bounds"] = {
                "northeast": {"lat": ne.lat, "lng": ne.lng},
                "southwest": {"lat": sw.lat, "lng": sw.lng},
            }
        try:
            payload = self.interactive.render_interactive(container, markers, directions)
        except MapRenderFailed as exc:
            logger.warning("Interactive map failed, using static image: %s", exc)
            return False

        render.interactive = payload
        render.provider = self.interactive.name
        render.transition_to(MapRenderState.RENDERED_INTERACTIVE)
        return True

    async def _render_static(
        self,
        render: MapRender,
        origin: Optional[Place],
        destination: Optional[Place],
        markers: Sequence[Marker],
        path: MapPath,
    ) -> None:
        center = map_center(origin, destination, markers)
        path_arg = None if path.is_empty else path

        def _tier(provider: StaticMapProvider, state: MapRenderState) -> Strategy[str]:
            async def _run(_: Any) -> str:
                if render.state is not state:
                    render.transition_to(state)
                url = provider.build_image_url(center, markers, path_arg, self.size)
                render.image_url = url
                render.provider = provider.name
                render.attempts.append(ImageAttempt(provider.name, url))
                await self.image_loader.load(url)
                return url

            return Strategy(provider.name, _run)

        def _on_failure(strategy: Strategy[str], exc: BaseException) -> None:
            last = render.attempts[-1]
            render.attempts[-1] = ImageAttempt(last.provider, last.url, str(exc))
            if render.state is MapRenderState.RENDERED_STATIC_PRIMARY:
                render.transition_to(MapRenderState.RENDERED_STATIC_FALLBACK)
            elif render.state is MapRenderState.RENDERED_STATIC_FALLBACK:
                render.transition_to(MapRenderState.FAILED)

        outcome = await try_in_order(
            [
                _tier(self.primary, MapRenderState.RENDERED_STATIC_PRIMARY),
                _tier(self.secondary, MapRenderState.RENDERED_STATIC_FALLBACK),
            ],
            None,
            recover=(MapImageLoadError,),
            on_failure=_on_failure,
        )
        if isinstance(outcome, TerminalFailure):
            logger.warning(
                "Map providers exhausted after %d attempts", len(outcome.attempts)
            )
            render.image_url = None
            render.error = FAILED_MESSAGE
