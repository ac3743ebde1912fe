"""
Repository Pattern -- abstracts DB access so domain logic stays DB-agnostic.

Each repository receives an ``AsyncSession`` (unit-of-work) and exposes
domain-relevant queries only.  ``ExpenseRepository`` is the persistence
collaborator the wizard submits to.
"""

from __future__ import annotations

from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import ExpenseModel, RouteSnapshotModel
from src.domain.entities import ExpenseDraft, Place, RouteSnapshot, Waypoint


class ExpenseNotFound(LookupError):
    pass


class RouteSnapshotRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def store(self, expense_id: int, snapshot: RouteSnapshot) -> RouteSnapshotModel:
        """Append a snapshot; earlier rows stay untouched."""
        row = RouteSnapshotModel(
            expense_id=expense_id,
            payload=snapshot.to_dict(),
            degraded=snapshot.result.degraded,
            waypoints_optimized=snapshot.result.waypoints_optimized,
        )
        self.session.add(row)
        await self.session.flush()
        return row

    async def latest_row(self, expense_id: int) -> Optional[RouteSnapshotModel]:
        result = await self.session.execute(
            select(RouteSnapshotModel)
            .where(RouteSnapshotModel.expense_id == expense_id)
            .order_by(RouteSnapshotModel.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def latest(self, expense_id: int) -> Optional[RouteSnapshot]:
        row = await self.latest_row(expense_id)
        return RouteSnapshot.from_dict(row.payload) if row else None


class ExpenseRepository:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.snapshots = RouteSnapshotRepository(session)

    async def get_by_id(self, expense_id: int) -> Optional[ExpenseModel]:
        return await self.session.get(ExpenseModel, expense_id)

    async def create_expense(self, draft: ExpenseDraft) -> dict[str, Any]:
        record = draft.to_record()
        record.pop("route_snapshot")
        expense = ExpenseModel(**record)
        self.session.add(expense)
        await self.session.flush()

        if draft.route_snapshot is not None:
            await self.snapshots.store(expense.id, draft.route_snapshot)
        return {"id": expense.id}

    async def update_expense(self, expense_id: int, draft: ExpenseDraft) -> dict[str, Any]:
        expense = await self.get_by_id(expense_id)
        if expense is None:
            raise ExpenseNotFound(f"Expense {expense_id} not found")

        record = draft.to_record()
        record.pop("route_snapshot")
        for key, value in record.items():
            setattr(expense, key, value)

        # Recalculation supersedes the stored snapshot with a new row.
        if draft.route_snapshot is not None:
            latest = await self.snapshots.latest_row(expense_id)
            stamp = draft.route_snapshot.created_at.isoformat()
            if latest is None or latest.payload.get("created_at") != stamp:
                await self.snapshots.store(expense_id, draft.route_snapshot)

        await self.session.flush()
        return {}

    async def load_draft(self, expense_id: int) -> Optional[ExpenseDraft]:
        """Rebuild a wizard draft from a persisted expense."""
        expense = await self.get_by_id(expense_id)
        if expense is None:
            return None

        snapshot = await self.snapshots.latest(expense_id)
        if snapshot is not None:
            start, end = snapshot.origin, snapshot.destination
            waypoints = list(snapshot.waypoints)
        else:
            start = Place(
                place_id=expense.starting_point_place_id or "",
                description=expense.starting_point,
            )
            end = Place(
                place_id=expense.destination_point_place_id or "",
                description=expense.destination_point,
            )
            waypoints = [
                Waypoint(
                    place=Place(
                        place_id=(w.get("place") or {}).get("place_id", ""),
                        description=(w.get("place") or {}).get("description", ""),
                    ),
                    stopover=w.get("stopover", True),
                )
                for w in expense.waypoints or []
            ]

        return ExpenseDraft(
            start_location=start,
            end_location=end,
            waypoints=waypoints,
            distance_in_km=expense.distance,
            cost_per_km=expense.cost_per_km,
            total_cost=expense.total_cost,
            route_snapshot=snapshot,
            optimize_waypoints=bool(expense.optimize_waypoints),
            category_id=expense.category_id,
            expense_date=expense.journey_date,
            notes=expense.notes or "",
        )
