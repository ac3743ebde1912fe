"""FastAPI dependency injection helpers."""

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.domain.ports import PlaceResolver
from src.domain.pricing import CostEngine
from src.infrastructure.database import async_session_factory
from src.services.map_resolver import MapTileResolver
from src.services.route_calculator import RouteCalculator
from src.services.wizard_sessions import WizardSessionStore


async def get_db() -> AsyncSession:  # type: ignore[misc]
    """Yield an async DB session; commit on success, rollback on error."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


# Services are built once in the app lifespan and parked on ``app.state``.


def get_route_calculator(request: Request) -> RouteCalculator:
    return request.app.state.route_calculator


def get_place_resolver(request: Request) -> PlaceResolver:
    return request.app.state.place_resolver


def get_map_resolver(request: Request) -> MapTileResolver:
    return request.app.state.map_resolver


def get_cost_engine(request: Request) -> CostEngine:
    return request.app.state.cost_engine


def get_sessions(request: Request) -> WizardSessionStore:
    return request.app.state.sessions
