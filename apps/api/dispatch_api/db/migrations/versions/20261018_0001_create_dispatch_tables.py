"""create chefs, drivers, subscriptions, orders, driver_assignments, assignment_events

Revision ID: 20261018_0001
Revises:
Create Date: 2026-10-18 00:00:00
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "20261018_0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

order_status = sa.Enum(
    "PENDING",
    "CONFIRMED",
    "PREPARING",
    "QUALITY_CHECK",
    "READY",
    "OUT_FOR_DELIVERY",
    "DELIVERED",
    "CANCELLED",
    name="order_status",
)
driver_account_status = sa.Enum("pending", "approved", "suspended", name="driver_account_status")
subscription_status = sa.Enum(
    "pending", "active", "paused", "cancelled", name="subscription_status"
)
assignment_status = sa.Enum(
    "available", "assigned", "picked_up", "delivered", "cancelled", name="assignment_status"
)
assignment_priority = sa.Enum("low", "normal", "high", "urgent", name="assignment_priority")
assignment_cancelled_by = sa.Enum(
    "driver", "customer", "chef", "admin", name="assignment_cancelled_by"
)


def _timestamp(name: str, nullable: bool = True) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable)


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
    )


def upgrade() -> None:
    op.create_table(
        "chefs",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("phone", sa.String(length=50), nullable=False),
        sa.Column("street_address", sa.String(length=255), nullable=True),
        sa.Column("city", sa.String(length=100), nullable=True),
        sa.Column("state", sa.String(length=100), nullable=True),
        sa.Column("lat", sa.Float(), nullable=True),
        sa.Column("lng", sa.Float(), nullable=True),
        sa.Column("pickup_instructions", sa.String(length=500), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "drivers",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("driver_code", sa.String(length=32), nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("phone", sa.String(length=50), nullable=False),
        sa.Column("account_status", driver_account_status, nullable=False),
        sa.Column("is_online", sa.Boolean(), nullable=False),
        sa.Column("is_available", sa.Boolean(), nullable=False),
        sa.Column("rating", sa.Float(), nullable=False),
        sa.Column("total_deliveries", sa.Integer(), nullable=False),
        sa.Column("total_earnings", sa.Integer(), nullable=False),
        sa.Column("total_distance_km", sa.Float(), nullable=False),
        sa.Column("current_lat", sa.Float(), nullable=True),
        sa.Column("current_lng", sa.Float(), nullable=True),
        _timestamp("location_updated_at"),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("driver_code"),
    )

    op.create_table(
        "subscriptions",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("customer_id", sa.String(length=64), nullable=False),
        sa.Column("meal_plan_id", sa.String(length=64), nullable=True),
        sa.Column("status", subscription_status, nullable=False),
        _timestamp("activated_at"),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_subscriptions_customer_id", "subscriptions", ["customer_id"])

    op.create_table(
        "orders",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("order_number", sa.String(length=32), nullable=False),
        sa.Column("customer_id", sa.String(length=64), nullable=False),
        sa.Column("chef_id", sa.Uuid(), nullable=True),
        sa.Column("delivery_address", sa.String(length=500), nullable=False),
        sa.Column("delivery_lat", sa.Float(), nullable=False),
        sa.Column("delivery_lng", sa.Float(), nullable=False),
        sa.Column("delivery_area", sa.String(length=255), nullable=True),
        sa.Column("delivery_notes", sa.Text(), nullable=False),
        sa.Column("special_requests", sa.Text(), nullable=False),
        sa.Column("subscription_id", sa.Uuid(), nullable=True),
        sa.Column("meal_plan_id", sa.String(length=64), nullable=True),
        sa.Column("is_urgent", sa.Boolean(), nullable=False),
        sa.Column("is_priority", sa.Boolean(), nullable=False),
        sa.Column("status", order_status, nullable=False),
        _timestamp("delivered_at"),
        _created_at(),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.ForeignKeyConstraint(["chef_id"], ["chefs.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["subscription_id"], ["subscriptions.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_orders_order_number", "orders", ["order_number"], unique=True)
    op.create_index("ix_orders_customer_id", "orders", ["customer_id"])

    op.create_table(
        "driver_assignments",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("order_id", sa.Uuid(), nullable=False),
        sa.Column("driver_id", sa.Uuid(), nullable=True),
        sa.Column("confirmation_code", sa.String(length=16), nullable=False),
        sa.Column("pickup_address", sa.String(length=500), nullable=False),
        sa.Column("pickup_lat", sa.Float(), nullable=False),
        sa.Column("pickup_lng", sa.Float(), nullable=False),
        sa.Column("pickup_chef_id", sa.Uuid(), nullable=False),
        sa.Column("pickup_chef_name", sa.String(length=255), nullable=False),
        sa.Column("pickup_chef_phone", sa.String(length=50), nullable=False),
        sa.Column("pickup_instructions", sa.Text(), nullable=False),
        sa.Column("delivery_address", sa.String(length=500), nullable=False),
        sa.Column("delivery_lat", sa.Float(), nullable=False),
        sa.Column("delivery_lng", sa.Float(), nullable=False),
        sa.Column("delivery_area", sa.String(length=255), nullable=False),
        sa.Column("delivery_instructions", sa.Text(), nullable=False),
        sa.Column("status", assignment_status, nullable=False),
        sa.Column("priority", assignment_priority, nullable=False),
        _timestamp("assigned_at", nullable=False),
        _timestamp("accepted_at"),
        _timestamp("picked_up_at"),
        _timestamp("delivered_at"),
        _timestamp("cancelled_at"),
        _timestamp("reassigned_at"),
        _timestamp("estimated_pickup_time", nullable=False),
        _timestamp("estimated_delivery_time", nullable=False),
        sa.Column("total_distance_km", sa.Float(), nullable=False),
        sa.Column("estimated_duration_min", sa.Integer(), nullable=False),
        sa.Column("base_fee", sa.Integer(), nullable=False),
        sa.Column("distance_fee", sa.Integer(), nullable=False),
        sa.Column("total_earning", sa.Integer(), nullable=False),
        sa.Column("pickup_notes", sa.Text(), nullable=True),
        sa.Column("pickup_photo_url", sa.String(length=1024), nullable=True),
        sa.Column("delivery_method", sa.String(length=32), nullable=True),
        sa.Column("delivery_notes", sa.Text(), nullable=True),
        sa.Column("delivery_photo_url", sa.String(length=1024), nullable=True),
        sa.Column("cancelled_by", assignment_cancelled_by, nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("compensation_amount", sa.Integer(), nullable=False),
        sa.Column("special_instructions", sa.Text(), nullable=False),
        sa.Column("is_first_delivery", sa.Boolean(), nullable=False),
        sa.Column("subscription_id", sa.Uuid(), nullable=True),
        sa.Column("meal_plan_id", sa.String(length=64), nullable=True),
        sa.Column("delivery_day", sa.Integer(), nullable=True),
        sa.Column("driver_track", sa.JSON(), nullable=False),
        _created_at(),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["driver_id"], ["drivers.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("order_id"),
    )
    op.create_index("ix_driver_assignments_status", "driver_assignments", ["status"])
    op.create_index(
        "ix_driver_assignments_driver_status", "driver_assignments", ["driver_id", "status"]
    )
    op.create_index(
        "uq_driver_assignments_active_code",
        "driver_assignments",
        ["confirmation_code"],
        unique=True,
        sqlite_where=sa.text("status != 'cancelled'"),
        postgresql_where=sa.text("status != 'cancelled'"),
    )

    op.create_table(
        "assignment_events",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("assignment_id", sa.Uuid(), nullable=False),
        sa.Column("from_status", sa.String(length=32), nullable=True),
        sa.Column("to_status", sa.String(length=32), nullable=False),
        sa.Column("actor_role", sa.String(length=32), nullable=False),
        sa.Column("actor_id", sa.String(length=64), nullable=True),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        _created_at(),
        sa.ForeignKeyConstraint(["assignment_id"], ["driver_assignments.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_assignment_events_assignment_id", "assignment_events", ["assignment_id"]
    )


def downgrade() -> None:
    op.drop_index("ix_assignment_events_assignment_id", table_name="assignment_events")
    op.drop_table("assignment_events")

    op.drop_index("uq_driver_assignments_active_code", table_name="driver_assignments")
    op.drop_index("ix_driver_assignments_driver_status", table_name="driver_assignments")
    op.drop_index("ix_driver_assignments_status", table_name="driver_assignments")
    op.drop_table("driver_assignments")

    op.drop_index("ix_orders_customer_id", table_name="orders")
    op.drop_index("ix_orders_order_number", table_name="orders")
    op.drop_table("orders")

    op.drop_index("ix_subscriptions_customer_id", table_name="subscriptions")
    op.drop_table("subscriptions")
    op.drop_table("drivers")
    op.drop_table("chefs")

    bind = op.get_bind()
    for enum_type in (
        assignment_cancelled_by,
        assignment_priority,
        assignment_status,
        order_status,
        subscription_status,
        driver_account_status,
    ):
        enum_type.drop(bind, checkfirst=True)
