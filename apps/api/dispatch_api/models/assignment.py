import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from dispatch_api.db.base import Base


def _enum_values(members: type[enum.Enum]) -> list[str]:
    return [member.value for member in members]


class AssignmentStatus(str, enum.Enum):
    AVAILABLE = "available"
    ASSIGNED = "assigned"
    PICKED_UP = "picked_up"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset({AssignmentStatus.DELIVERED, AssignmentStatus.CANCELLED})
ACTIVE_DRIVER_STATUSES = (AssignmentStatus.ASSIGNED, AssignmentStatus.PICKED_UP)


class AssignmentPriority(str, enum.Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class CancelledBy(str, enum.Enum):
    DRIVER = "driver"
    CUSTOMER = "customer"
    CHEF = "chef"
    ADMIN = "admin"


class DriverAssignment(Base):
    __tablename__ = "driver_assignments"
    __table_args__ = (
        Index("ix_driver_assignments_driver_status", "driver_id", "status"),
        Index(
            "uq_driver_assignments_active_code",
            "confirmation_code",
            unique=True,
            sqlite_where=text("status != 'cancelled'"),
            postgresql_where=text("status != 'cancelled'"),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    driver_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("drivers.id", ondelete="SET NULL"), nullable=True
    )
    confirmation_code: Mapped[str] = mapped_column(String(16), nullable=False)

    pickup_address: Mapped[str] = mapped_column(String(500), nullable=False)
    pickup_lat: Mapped[float] = mapped_column(Float, nullable=False)
    pickup_lng: Mapped[float] = mapped_column(Float, nullable=False)
    pickup_chef_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    pickup_chef_name: Mapped[str] = mapped_column(String(255), nullable=False)
    pickup_chef_phone: Mapped[str] = mapped_column(String(50), nullable=False)
    pickup_instructions: Mapped[str] = mapped_column(Text, nullable=False, default="")

    # Customer identity is intentionally not stored here
    delivery_address: Mapped[str] = mapped_column(String(500), nullable=False)
    delivery_lat: Mapped[float] = mapped_column(Float, nullable=False)
    delivery_lng: Mapped[float] = mapped_column(Float, nullable=False)
    delivery_area: Mapped[str] = mapped_column(String(255), nullable=False)
    delivery_instructions: Mapped[str] = mapped_column(Text, nullable=False, default="")

    status: Mapped[AssignmentStatus] = mapped_column(
        Enum(AssignmentStatus, name="assignment_status", values_callable=_enum_values),
        nullable=False,
        default=AssignmentStatus.AVAILABLE,
        index=True,
    )
    priority: Mapped[AssignmentPriority] = mapped_column(
        Enum(AssignmentPriority, name="assignment_priority", values_callable=_enum_values),
        nullable=False,
        default=AssignmentPriority.NORMAL,
    )

    assigned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    accepted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    picked_up_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    reassigned_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    estimated_pickup_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    estimated_delivery_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )

    total_distance_km: Mapped[float] = mapped_column(Float, nullable=False)
    estimated_duration_min: Mapped[int] = mapped_column(Integer, nullable=False)
    base_fee: Mapped[int] = mapped_column(Integer, nullable=False)
    distance_fee: Mapped[int] = mapped_column(Integer, nullable=False)
    total_earning: Mapped[int] = mapped_column(Integer, nullable=False)

    pickup_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    pickup_photo_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    delivery_method: Mapped[str | None] = mapped_column(String(32), nullable=True)
    delivery_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    delivery_photo_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)

    cancelled_by: Mapped[CancelledBy | None] = mapped_column(
        Enum(CancelledBy, name="assignment_cancelled_by", values_callable=_enum_values),
        nullable=True,
    )
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    compensation_amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    special_instructions: Mapped[str] = mapped_column(Text, nullable=False, default="")
    is_first_delivery: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    subscription_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    meal_plan_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    delivery_day: Mapped[int | None] = mapped_column(Integer, nullable=True)

    driver_track: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES
