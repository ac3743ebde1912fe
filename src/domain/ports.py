"""
Boundary contracts consumed by the services.

Infrastructure adapters implement these; tests substitute ``AsyncMock``
objects with the same shape.
"""

from __future__ import annotations

from typing import Any, Optional, Protocol, Sequence

from .entities import ExpenseDraft, Location, Place, RouteRequest
from .geometry import MapPath, Marker


class PlaceResolver(Protocol):
    async def autocomplete(self, query: str) -> list[Place]: ...

    async def details(self, place_id: str) -> Place: ...


class RoutingBackend(Protocol):
    async def optimize_route(self, request: RouteRequest) -> dict[str, Any]:
        """``POST route/optimize``; raw payload, distance unit unresolved."""
        ...

    async def distance(
        self, origin_place_id: str, destination_place_id: str
    ) -> dict[str, Any]:
        """``POST distance``; raw payload, distance unit unresolved."""
        ...


class StaticMapProvider(Protocol):
    name: str

    def build_image_url(
        self,
        center: Optional[Location],
        markers: Sequence[Marker],
        path: Optional[MapPath],
        size: tuple[int, int],
    ) -> str: ...


class InteractiveMapProvider(Protocol):
    name: str

    def render_interactive(
        self,
        container: Optional[str],
        markers: Sequence[Marker],
        directions: dict[str, Any],
    ) -> dict[str, Any]: ...


class ImageLoader(Protocol):
    async def load(self, url: str) -> None:
        """Return when the image is loadable; raise ``MapImageLoadError`` if not."""
        ...


class ExpensePersistence(Protocol):
    async def create_expense(self, draft: ExpenseDraft) -> dict[str, Any]: ...

    async def update_expense(self, expense_id: int, draft: ExpenseDraft) -> dict[str, Any]: ...
