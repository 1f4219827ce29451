import enum
import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Enum, Float, Integer, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from dispatch_api.db.base import Base


class DriverAccountStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    SUSPENDED = "suspended"


class Driver(Base):
    __tablename__ = "drivers"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    driver_code: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str] = mapped_column(String(50), nullable=False)
    account_status: Mapped[DriverAccountStatus] = mapped_column(
        Enum(
            DriverAccountStatus,
            name="driver_account_status",
            values_callable=lambda members: [member.value for member in members],
        ),
        nullable=False,
        default=DriverAccountStatus.PENDING,
    )
    is_online: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_available: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    rating: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    total_deliveries: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_earnings: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_distance_km: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    current_lat: Mapped[float | None] = mapped_column(Float, nullable=True)
    current_lng: Mapped[float | None] = mapped_column(Float, nullable=True)
    location_updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    @property
    def has_location(self) -> bool:
        return self.current_lat is not None and self.current_lng is not None
