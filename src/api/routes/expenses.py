"""
Expense route-snapshot endpoints
================================

PUT /api/v1/expenses/{expense_id}/route-snapshot -- store a new snapshot
GET /api/v1/expenses/{expense_id}/route-snapshot -- latest stored snapshot

Snapshots are append-only; a PUT supersedes, it never overwrites.
"""

import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_db
from src.api.middleware import limiter
from src.api.schemas import ErrorResponse, RouteSnapshotResponse
from src.config import settings
from src.domain.entities import RouteSnapshot
from src.infrastructure.models import RouteSnapshotModel
from src.infrastructure.repositories import ExpenseRepository

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/expenses", tags=["expenses"])


def _to_response(row: RouteSnapshotModel) -> RouteSnapshotResponse:
    return RouteSnapshotResponse(
        expense_id=row.expense_id,
        degraded=row.degraded,
        waypoints_optimized=row.waypoints_optimized,
        snapshot=row.payload,
    )


@router.put(
    "/{expense_id}/route-snapshot",
    status_code=201,
    response_model=RouteSnapshotResponse,
    summary="Store a route snapshot for an expense",
    responses={
        404: {"model": ErrorResponse, "description": "Expense not found."},
        422: {"model": ErrorResponse, "description": "Malformed snapshot."},
    },
)
@limiter.limit(settings.rate_limit)
async def store_route_snapshot(
    request: Request,
    expense_id: int,
    payload: dict[str, Any] = Body(...),
    db: AsyncSession = Depends(get_db),
):
    repo = ExpenseRepository(db)
    if await repo.get_by_id(expense_id) is None:
        raise HTTPException(status_code=404, detail="Expense not found")

    try:
        snapshot = RouteSnapshot.from_dict(payload)
    except (KeyError, TypeError, ValueError) as exc:
        logger.info("Rejected snapshot for expense %d: %s", expense_id, exc)
        raise HTTPException(status_code=422, detail="Malformed route snapshot")

    row = await repo.snapshots.store(expense_id, snapshot)
    return _to_response(row)


@router.get(
    "/{expense_id}/route-snapshot",
    response_model=RouteSnapshotResponse,
    summary="Latest route snapshot for an expense",
    responses={404: {"model": ErrorResponse, "description": "No snapshot stored."}},
)
@limiter.limit(settings.rate_limit)
async def get_route_snapshot(
    request: Request,
    expense_id: int,
    db: AsyncSession = Depends(get_db),
):
    row = await ExpenseRepository(db).snapshots.latest_row(expense_id)
    if row is None:
        raise HTTPException(status_code=404, detail="Route snapshot not found")
    return _to_response(row)
