"""
Map endpoints
=============

POST /api/v1/maps/render -- resolve a displayable map for a journey

A failed render is still a 200: the body carries ``state=FAILED`` and
``retryable=true`` so the client can show its retry action.
"""

from fastapi import APIRouter, Depends, Request

from src.api.dependencies import get_map_resolver
from src.api.middleware import limiter
from src.api.schemas import ImageAttemptSchema, MapRenderRequest, MapRenderResponse
from src.config import settings
from src.services.map_resolver import MapTileResolver

router = APIRouter(prefix="/maps", tags=["maps"])


@router.post("/render", response_model=MapRenderResponse, summary="Render a journey map")
@limiter.limit(settings.rate_limit)
async def render_map(
    request: Request,
    body: MapRenderRequest,
    resolver: MapTileResolver = Depends(get_map_resolver),
):
    render = await resolver.resolve(
        body.origin.to_domain() if body.origin else None,
        body.destination.to_domain() if body.destination else None,
        [w.to_waypoint() for w in body.waypoints],
        polyline=body.polyline,
        container=body.container,
    )
    return MapRenderResponse(
        state=render.state.value,
        image_url=render.image_url,
        interactive=render.interactive,
        provider=render.provider,
        path_source=render.path_source.value,
        attempts=[
            ImageAttemptSchema(provider=a.provider, url=a.url, error=a.error)
            for a in render.attempts
        ],
        retryable=render.retryable,
        error=render.error,
    )
