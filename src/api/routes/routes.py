"""
Route endpoints
===============

POST /api/v1/routes/calculate -- distance, duration and cost for a journey
"""

from fastapi import APIRouter, Depends, Request

from src.api.dependencies import get_cost_engine, get_route_calculator
from src.api.middleware import limiter
from src.api.schemas import (
    ErrorResponse,
    RouteCalculateRequest,
    RouteCalculateResponse,
    RouteResultResponse,
)
from src.config import settings
from src.domain.pricing import CostEngine
from src.services.route_calculator import RouteCalculator

router = APIRouter(prefix="/routes", tags=["routes"])


@router.post(
    "/calculate",
    response_model=RouteCalculateResponse,
    summary="Calculate a route and its mileage cost",
    responses={
        422: {"model": ErrorResponse, "description": "Invalid places, distance or rate."},
        502: {"model": ErrorResponse, "description": "Routing backend unavailable."},
    },
)
@limiter.limit(settings.rate_limit)
async def calculate_route(
    request: Request,
    body: RouteCalculateRequest,
    calculator: RouteCalculator = Depends(get_route_calculator),
    cost_engine: CostEngine = Depends(get_cost_engine),
):
    result = await calculator.calculate(
        body.origin.to_domain(),
        body.destination.to_domain(),
        [w.to_waypoint() for w in body.waypoints],
        optimize=body.optimize,
    )
    quote = cost_engine.quote(result, body.cost_per_km)
    return RouteCalculateResponse(
        route=RouteResultResponse.from_domain(result),
        cost_per_km=quote.cost_per_km,
        total_cost=quote.total_cost,
    )
