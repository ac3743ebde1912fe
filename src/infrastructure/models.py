"""
SQLAlchemy ORM models  (maps to PostgreSQL).

Tables
------
* ``expenses``         -- committed mileage expense drafts
* ``route_snapshots``  -- append-only route copies per expense; the newest
  row supersedes older ones, rows are never updated

Indexes
-------
* **B-Tree** on ``route_snapshots(expense_id, created_at)`` for the
  "latest snapshot" look-up used when redisplaying a route.
"""

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)

from .database import Base


class ExpenseModel(Base):
    __tablename__ = "expenses"

    id = Column(Integer, primary_key=True, autoincrement=True)
    category_id = Column(String(64), nullable=True)
    journey_date = Column(Date, nullable=True)

    starting_point = Column(String(255), nullable=False)
    destination_point = Column(String(255), nullable=False)
    starting_point_place_id = Column(String(255), nullable=True)
    destination_point_place_id = Column(String(255), nullable=True)
    waypoints = Column(JSON, nullable=False, default=list)
    optimize_waypoints = Column(Boolean, default=False)

    # Always kilometers
    distance = Column(Float, nullable=False)
    cost_per_km = Column(Float, nullable=False)
    total_cost = Column(Float, nullable=False)
    notes = Column(Text, default="")

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("idx_expenses_category", "category_id"),
        Index("idx_expenses_journey_date", "journey_date"),
    )


class RouteSnapshotModel(Base):
    __tablename__ = "route_snapshots"

    id = Column(Integer, primary_key=True, autoincrement=True)
    expense_id = Column(Integer, ForeignKey("expenses.id"), nullable=False)
    payload = Column(JSON, nullable=False)

    # Copied out of the payload so degraded routes can be queried
    degraded = Column(Boolean, default=False, nullable=False)
    waypoints_optimized = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("idx_route_snapshots_expense", "expense_id", "created_at"),
    )
