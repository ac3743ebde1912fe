"""Tests for the map tile resolver state machine and provider chain."""

from unittest.mock import AsyncMock

import pytest

from src.domain.entities import Location, Place, Waypoint
from src.domain.enums import MapRenderState, PathSource
from src.domain.errors import (
    InvalidStateTransition,
    MapImageLoadError,
    MapRenderFailed,
    RoutingBackendError,
)
from src.domain.geometry import (
    build_markers,
    encode_polyline,
    map_center,
    straight_line_points,
)
from src.infrastructure.map_providers import DirectionsWidgetProvider
from src.services.map_resolver import FAILED_MESSAGE, MapRender, MapTileResolver
from tests.conftest import BASEL, BERN, GENEVA, ZURICH, place, waypoint

ORIGIN = place("zurich", "Zurich HB", ZURICH)
DESTINATION = place("bern", "Bern", BERN)


class StubProvider:
    """Static provider that records what it was asked to draw."""

    def __init__(self, name: str):
        self.name = name
        self.calls = []

    def build_image_url(self, center, markers, path, size):
        self.calls.append({"center": center, "markers": markers, "path": path, "size": size})
        return f"https://{self.name}.test/map.png"


class FailingInteractive:
    name = "broken-js"

    def render_interactive(self, container, markers, directions):
        raise MapRenderFailed("script failed to load")


@pytest.fixture
def primary():
    return StubProvider("google")


@pytest.fixture
def secondary():
    return StubProvider("mapbox")


@pytest.fixture
def loader():
    return AsyncMock()


@pytest.fixture
def backend():
    return AsyncMock()


@pytest.fixture
def resolver(primary, secondary, loader, backend):
    return MapTileResolver(primary, secondary, loader, route_backend=backend)


# ── Empty ─────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_no_coordinates_is_empty_without_any_call(resolver, primary, loader, backend):
    render = await resolver.resolve(
        place("zurich", "Zurich HB"), place("bern", "Bern"), [waypoint("basel")]
    )

    assert render.state is MapRenderState.EMPTY
    assert render.retryable is False
    assert primary.calls == []
    loader.load.assert_not_awaited()
    backend.optimize_route.assert_not_awaited()


@pytest.mark.asyncio
async def test_missing_places_are_empty(resolver):
    render = await resolver.resolve(None, None)
    assert render.state is MapRenderState.EMPTY


# ── Static chain ──────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_primary_success(resolver, primary, secondary, loader):
    render = await resolver.resolve(ORIGIN, DESTINATION, polyline="_p~iF~ps|U")

    assert render.state is MapRenderState.RENDERED_STATIC_PRIMARY
    assert render.image_url == "https://google.test/map.png"
    assert render.provider == "google"
    assert len(render.attempts) == 1
    assert secondary.calls == []
    loader.load.assert_awaited_once_with("https://google.test/map.png")


@pytest.mark.asyncio
async def test_primary_failure_uses_secondary_with_same_overlays(
    resolver, primary, secondary, loader
):
    loader.load.side_effect = [MapImageLoadError("HTTP 403"), None]

    render = await resolver.resolve(ORIGIN, DESTINATION, polyline="_p~iF~ps|U")

    assert render.state is MapRenderState.RENDERED_STATIC_FALLBACK
    assert render.image_url == "https://mapbox.test/map.png"
    assert render.provider == "mapbox"
    assert render.attempts[0].error == "HTTP 403"
    assert render.attempts[1].error is None
    assert secondary.calls[0]["markers"] == primary.calls[0]["markers"]
    assert secondary.calls[0]["path"] == primary.calls[0]["path"]


@pytest.mark.asyncio
async def test_both_failing_is_terminal_after_two_loads(resolver, loader):
    loader.load.side_effect = MapImageLoadError("HTTP 500")

    render = await resolver.resolve(ORIGIN, DESTINATION, polyline="_p~iF~ps|U")

    assert render.state is MapRenderState.FAILED
    assert render.retryable is True
    assert render.image_url is None
    assert render.error == FAILED_MESSAGE
    assert loader.load.await_count == 2
    assert [a.provider for a in render.attempts] == ["google", "mapbox"]


@pytest.mark.asyncio
async def test_size_is_forwarded(primary, secondary, loader):
    resolver = MapTileResolver(primary, secondary, loader, size=(800, 300))
    await resolver.resolve(ORIGIN, DESTINATION)
    assert primary.calls[0]["size"] == (800, 300)


# ── Path selection ────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_given_polyline_skips_display_route(resolver, backend, primary):
    render = await resolver.resolve(ORIGIN, DESTINATION, polyline="abc")

    assert render.path_source is PathSource.POLYLINE
    assert primary.calls[0]["path"].polyline == "abc"
    backend.optimize_route.assert_not_awaited()


@pytest.mark.asyncio
async def test_display_route_polyline_is_used(resolver, backend, primary):
    backend.optimize_route.return_value = {
        "distanceValue": 125000,
        "route": {"polyline": "display"},
    }

    render = await resolver.resolve(ORIGIN, DESTINATION, [waypoint("basel", BASEL)])

    assert render.path_source is PathSource.DISPLAY_ROUTE
    assert primary.calls[0]["path"].polyline == "display"
    request = backend.optimize_route.await_args.args[0]
    assert request.optimize_waypoints is False
    assert [w.place_id for w in request.waypoints] == ["basel"]


@pytest.mark.asyncio
async def test_display_route_failure_draws_straight_lines(resolver, backend, primary):
    backend.optimize_route.side_effect = RoutingBackendError("HTTP 500")

    render = await resolver.resolve(ORIGIN, DESTINATION, [waypoint("basel", BASEL)])

    assert render.state is MapRenderState.RENDERED_STATIC_PRIMARY
    assert render.path_source is PathSource.STRAIGHT_LINE
    assert primary.calls[0]["path"].points == (ZURICH, BASEL, BERN)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("route", "source"),
    [
        (
            {"polyline": "display", "legs": [{"distance": 1200, "duration": 60}]},
            PathSource.DISPLAY_ROUTE,
        ),
        ({"polyline": 42}, PathSource.STRAIGHT_LINE),
    ],
)
async def test_odd_display_route_payload_still_renders(
    resolver, backend, primary, route, source
):
    backend.optimize_route.return_value = {"distanceValue": 125000, "route": route}

    render = await resolver.resolve(ORIGIN, DESTINATION, [waypoint("basel", BASEL)])

    assert render.state is MapRenderState.RENDERED_STATIC_PRIMARY
    assert render.path_source is source


@pytest.mark.asyncio
async def test_non_dict_display_payload_draws_straight_lines(resolver, backend, primary):
    backend.optimize_route.return_value = ["not", "a", "route"]

    render = await resolver.resolve(ORIGIN, DESTINATION, [waypoint("basel", BASEL)])

    assert render.state is MapRenderState.RENDERED_STATIC_PRIMARY
    assert render.path_source is PathSource.STRAIGHT_LINE
    assert primary.calls[0]["path"].points == (ZURICH, BASEL, BERN)


@pytest.mark.asyncio
async def test_display_route_skipped_when_located_place_lacks_id(resolver, backend):
    stray = Waypoint(place=Place(description="Somewhere", location=BASEL))

    render = await resolver.resolve(ORIGIN, DESTINATION, [stray])

    backend.optimize_route.assert_not_awaited()
    assert render.path_source is PathSource.STRAIGHT_LINE


@pytest.mark.asyncio
async def test_display_route_skipped_when_endpoint_unlocated(resolver, backend, primary):
    render = await resolver.resolve(ORIGIN, place("bern", "Bern"))

    backend.optimize_route.assert_not_awaited()
    assert render.path_source is PathSource.NONE
    assert primary.calls[0]["path"] is None
    assert len(primary.calls[0]["markers"]) == 1


# ── Interactive tier ──────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_interactive_render_with_route(primary, secondary, loader):
    resolver = MapTileResolver(
        primary, secondary, loader, interactive=DirectionsWidgetProvider()
    )

    render = await resolver.resolve(ORIGIN, DESTINATION, polyline="abc", container="map")

    assert render.state is MapRenderState.RENDERED_INTERACTIVE
    assert render.provider == "google-js"
    assert render.interactive["container"] == "map"
    assert render.interactive["directions"]["polyline"] == "abc"
    assert [m["label"] for m in render.interactive["markers"]] == ["A", "B"]
    loader.load.assert_not_awaited()


@pytest.mark.asyncio
async def test_interactive_without_route_uses_static(primary, secondary, loader):
    resolver = MapTileResolver(
        primary, secondary, loader, interactive=DirectionsWidgetProvider()
    )
    render = await resolver.resolve(ORIGIN, DESTINATION)
    assert render.state is MapRenderState.RENDERED_STATIC_PRIMARY


@pytest.mark.asyncio
async def test_interactive_failure_uses_static(primary, secondary, loader):
    resolver = MapTileResolver(primary, secondary, loader, interactive=FailingInteractive())

    render = await resolver.resolve(ORIGIN, DESTINATION, polyline="abc")

    assert render.state is MapRenderState.RENDERED_STATIC_PRIMARY
    assert render.provider == "google"


# ── State machine ─────────────────────────────────────────────────────


def test_terminal_states_reject_transitions():
    render = MapRender(state=MapRenderState.EMPTY)
    with pytest.raises(InvalidStateTransition):
        render.transition_to(MapRenderState.RESOLVING)


def test_cannot_skip_to_fallback():
    render = MapRender()
    render.transition_to(MapRenderState.RESOLVING)
    with pytest.raises(InvalidStateTransition):
        render.transition_to(MapRenderState.RENDERED_STATIC_FALLBACK)


# ── Geometry helpers ──────────────────────────────────────────────────


class TestGeometry:
    def test_marker_labels(self):
        markers = build_markers(
            ORIGIN,
            DESTINATION,
            [waypoint("basel", BASEL), waypoint("nowhere"), waypoint("geneva", GENEVA)],
        )
        assert [m.label for m in markers] == ["A", "B", "1", "2"]
        assert [m.role for m in markers] == ["origin", "destination", "waypoint", "waypoint"]

    def test_unlocated_first_waypoint_leaves_no_gap(self):
        markers = build_markers(
            ORIGIN, DESTINATION, [waypoint("nowhere"), waypoint("basel", BASEL)]
        )
        assert [m.label for m in markers] == ["A", "B", "1"]
        assert markers[2].location == BASEL

    def test_center_is_midpoint_of_endpoints(self):
        center = map_center(ORIGIN, DESTINATION, build_markers(ORIGIN, DESTINATION, []))
        assert center.lat == pytest.approx((ZURICH.lat + BERN.lat) / 2)
        assert center.lng == pytest.approx((ZURICH.lng + BERN.lng) / 2)

    def test_center_falls_back_to_centroid(self):
        markers = build_markers(ORIGIN, None, [waypoint("basel", BASEL)])
        center = map_center(ORIGIN, None, markers)
        assert center.lat == pytest.approx((ZURICH.lat + BASEL.lat) / 2)

    def test_straight_line_skips_unlocated(self):
        points = straight_line_points(ORIGIN, DESTINATION, [waypoint("nowhere")])
        assert points == (ZURICH, BERN)

    def test_encode_polyline_reference_vector(self):
        points = [Location(38.5, -120.2), Location(40.7, -120.95), Location(43.252, -126.453)]
        assert encode_polyline(points) == "_p~iF~ps|U_ulLnnqC_mqNvxq`@"
