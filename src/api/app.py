"""
FastAPI application factory.

* Registers routes for route calculation, maps, the expense wizard,
  route snapshots and admin.
* Builds the outbound httpx clients, the Redis-backed place cache and the
  route / map services via lifespan events, and closes them on shutdown.
* Translates domain errors into JSON responses carrying ``retryable``.
* Applies rate-limiting middleware.
* Swagger / OpenAPI UI available at ``/docs``.
"""

from contextlib import asynccontextmanager
import logging

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from src.api.middleware import limiter
from src.api.routes import admin, expenses, maps, routes, wizard
from src.config import settings
from src.domain.errors import InvalidStateTransition, RouteServiceError, ValidationFailed
from src.domain.pricing import CostEngine
from src.infrastructure.backend_client import (
    HttpPlaceResolver,
    HttpRoutingBackend,
    create_backend_client,
)
from src.infrastructure.map_providers import (
    DirectionsWidgetProvider,
    GoogleStaticMapProvider,
    HttpImageLoader,
    MapboxStaticMapProvider,
)
from src.infrastructure.place_cache import CachedPlaceResolver
from src.infrastructure.redis_client import close_redis, get_redis
from src.infrastructure.repositories import ExpenseNotFound
from src.services.map_resolver import MapTileResolver
from src.services.route_calculator import RouteCalculator
from src.services.wizard_sessions import SessionNotFound, WizardSessionStore

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open outbound clients on startup; close them on shutdown."""
    backend_client = create_backend_client(
        settings.backend_api_url,
        token=settings.backend_api_token,
        timeout=settings.backend_timeout_seconds,
    )
    image_client = httpx.AsyncClient(timeout=settings.image_probe_timeout_seconds)

    routing = HttpRoutingBackend(backend_client)
    app.state.route_calculator = RouteCalculator(routing, settings.meters_threshold)
    app.state.place_resolver = CachedPlaceResolver(
        HttpPlaceResolver(backend_client),
        get_redis(),
        ttl_seconds=settings.place_cache_ttl_seconds,
    )
    app.state.map_resolver = MapTileResolver(
        primary=GoogleStaticMapProvider(
            settings.google_maps_api_key, settings.map_zoom, settings.map_scale
        ),
        secondary=MapboxStaticMapProvider(
            settings.mapbox_access_token, settings.map_zoom, settings.map_scale
        ),
        image_loader=HttpImageLoader(image_client),
        interactive=DirectionsWidgetProvider(),
        route_backend=routing,
        size=(settings.map_width, settings.map_height),
    )
    logger.info("Routing backend at %s", settings.backend_api_url)
    yield

    await backend_client.aclose()
    await image_client.aclose()
    await close_redis()


# ── Error translation ─────────────────────────────────────────────────


async def _route_service_error(request: Request, exc: RouteServiceError) -> JSONResponse:
    # Retryable errors come from upstream services; the rest are bad input.
    status = 502 if exc.retryable else 422
    content = {"detail": exc.message, "retryable": exc.retryable}
    if isinstance(exc, ValidationFailed):
        content["errors"] = exc.errors
    return JSONResponse(status_code=status, content=content)


async def _invalid_transition(request: Request, exc: InvalidStateTransition) -> JSONResponse:
    return JSONResponse(status_code=409, content={"detail": str(exc), "retryable": False})


async def _not_found(request: Request, exc: LookupError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": str(exc), "retryable": False})


def create_app() -> FastAPI:
    app = FastAPI(
        title="Mileage Expense Routing API",
        description=(
            "Computes driving routes and mileage costs for expense claims, "
            "walks users through a guided expense wizard, and renders "
            "journey maps with provider fallback."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    # Stateless / in-memory collaborators; I/O-bound ones live in lifespan
    app.state.cost_engine = CostEngine(settings.cost_per_km)
    app.state.sessions = WizardSessionStore(ttl_seconds=settings.wizard_session_ttl_seconds)

    # Rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # Domain errors
    app.add_exception_handler(RouteServiceError, _route_service_error)
    app.add_exception_handler(InvalidStateTransition, _invalid_transition)
    app.add_exception_handler(SessionNotFound, _not_found)
    app.add_exception_handler(ExpenseNotFound, _not_found)

    # Routers
    app.include_router(routes.router, prefix="/api/v1")
    app.include_router(maps.router, prefix="/api/v1")
    app.include_router(wizard.router, prefix="/api/v1")
    app.include_router(expenses.router, prefix="/api/v1")
    app.include_router(admin.router, prefix="/api/v1")

    return app
