"""
Shared test fixtures.

Uses an in-memory SQLite database (via aiosqlite) so tests run without
Docker / PostgreSQL / Redis.  The production models carry no
PostgreSQL-only column types, so the real schema is created as-is.
"""

from typing import AsyncGenerator, Optional

import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from src.domain.entities import Location, Place, RouteResult, Waypoint
from src.infrastructure.database import (
    create_schema,
    drop_schema,
    make_engine,
    make_session_factory,
)


# ── Test DB (SQLite in-memory) ────────────────────────────────────────

TEST_DB_URL = "sqlite+aiosqlite:///:memory:"


# ── Sample places (Swiss cities) ──────────────────────────────────────

ZURICH = Location(lat=47.3769, lng=8.5417)
BERN = Location(lat=46.948, lng=7.4474)
BASEL = Location(lat=47.5596, lng=7.5886)
LUCERNE = Location(lat=47.0502, lng=8.3093)
GENEVA = Location(lat=46.2044, lng=6.1432)


def place(place_id: str, description: str = "", location: Optional[Location] = None) -> Place:
    return Place(
        place_id=place_id,
        description=description or place_id,
        formatted_address=f"{description or place_id}, Switzerland",
        location=location,
    )


def waypoint(place_id: str, location: Optional[Location] = None) -> Waypoint:
    return Waypoint(place=place(place_id, location=location))


def direct_payload(distance_value: float = 390000, **extra) -> dict:
    """Body of a ``maps/distance`` response."""
    body = {
        "distanceValue": distance_value,
        "distanceText": "390 km",
        "durationValue": 14400,
        "durationText": "4 hours",
    }
    body.update(extra)
    return body


def route_result(distance_km: float = 390.0, **extra) -> RouteResult:
    fields = dict(
        distance_value=distance_km,
        distance_text=f"{distance_km:.2f} km",
        duration_value=14400,
        duration_text="4 h 0 min",
    )
    fields.update(extra)
    return RouteResult(**fields)


# ── Fixtures ──────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create tables on a fresh in-memory DB, then drop everything."""
    test_engine = make_engine(TEST_DB_URL)
    await create_schema(test_engine)
    yield test_engine
    await drop_schema(test_engine)
    await test_engine.dispose()


@pytest_asyncio.fixture
async def db_session(engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    async with make_session_factory(engine)() as session:
        yield session
