import uuid

from sqlalchemy import Float, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from dispatch_api.db.base import Base


class Chef(Base):
    __tablename__ = "chefs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str] = mapped_column(String(50), nullable=False)
    street_address: Mapped[str | None] = mapped_column(String(255), nullable=True)
    city: Mapped[str | None] = mapped_column(String(100), nullable=True)
    state: Mapped[str | None] = mapped_column(String(100), nullable=True)
    lat: Mapped[float | None] = mapped_column(Float, nullable=True)
    lng: Mapped[float | None] = mapped_column(Float, nullable=True)
    pickup_instructions: Mapped[str] = mapped_column(String(500), nullable=False, default="")

    @property
    def pickup_address(self) -> str:
        if self.street_address:
            parts = [self.street_address, self.city, self.state]
            return ", ".join(part for part in parts if part)
        return f"{self.full_name} Location"
