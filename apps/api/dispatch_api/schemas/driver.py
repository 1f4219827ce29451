import uuid
from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field

from dispatch_api.models.driver import DriverAccountStatus


class DriverResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    driver_code: str
    full_name: str
    phone: str
    account_status: DriverAccountStatus
    is_online: bool
    is_available: bool
    rating: float
    total_deliveries: int
    total_earnings: int
    total_distance_km: float
    current_lat: float | None
    current_lng: float | None
    location_updated_at: datetime | None


class LocationUpdate(BaseModel):
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)
    speed: float | None = Field(default=None, ge=0)
    heading: float | None = Field(default=None, ge=0, lt=360)


class LocationUpdateResponse(BaseModel):
    driver_id: uuid.UUID
    lat: float
    lng: float
    location_updated_at: datetime
    active_assignment_id: uuid.UUID | None = None


class AvailabilityUpdate(BaseModel):
    is_online: bool


class NearbyDriverResponse(BaseModel):
    driver: DriverResponse
    distance_km: float
    load: int


class NearbyDriverListResponse(BaseModel):
    items: list[NearbyDriverResponse]


class DriverDailyStatsResponse(BaseModel):
    day: date
    total_deliveries: int
    completed_deliveries: int
    earnings: int
    distance_km: float
