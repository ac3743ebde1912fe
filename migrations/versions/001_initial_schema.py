"""Initial schema: mileage expenses and their route snapshots.

Revision ID: 001
Create Date: 2026-10-17
"""

from alembic import op
import sqlalchemy as sa


revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # ── expenses ──────────────────────────────────────────────────────
    op.create_table(
        "expenses",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("category_id", sa.String(64), nullable=True),
        sa.Column("journey_date", sa.Date, nullable=True),
        sa.Column("starting_point", sa.String(255), nullable=False),
        sa.Column("destination_point", sa.String(255), nullable=False),
        sa.Column("starting_point_place_id", sa.String(255), nullable=True),
        sa.Column("destination_point_place_id", sa.String(255), nullable=True),
        sa.Column("waypoints", sa.JSON, nullable=False),
        sa.Column("optimize_waypoints", sa.Boolean, default=False),
        sa.Column("distance", sa.Float, nullable=False),
        sa.Column("cost_per_km", sa.Float, nullable=False),
        sa.Column("total_cost", sa.Float, nullable=False),
        sa.Column("notes", sa.Text, default=""),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )
    op.create_index("idx_expenses_category", "expenses", ["category_id"])
    op.create_index("idx_expenses_journey_date", "expenses", ["journey_date"])

    # ── route_snapshots ───────────────────────────────────────────────
    op.create_table(
        "route_snapshots",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "expense_id",
            sa.Integer,
            sa.ForeignKey("expenses.id"),
            nullable=False,
        ),
        sa.Column("payload", sa.JSON, nullable=False),
        sa.Column("degraded", sa.Boolean, default=False, nullable=False),
        sa.Column("waypoints_optimized", sa.Boolean, default=False, nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )
    op.create_index(
        "idx_route_snapshots_expense",
        "route_snapshots",
        ["expense_id", "created_at"],
    )


def downgrade() -> None:
    op.drop_table("route_snapshots")
    op.drop_table("expenses")
