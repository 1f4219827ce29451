import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from dispatch_api.models.assignment import AssignmentPriority, AssignmentStatus, CancelledBy

CONFIRMATION_CODE_PATTERN = r"^\s*[A-Za-z0-9]+\s*$"


class AssignmentCreate(BaseModel):
    order_id: uuid.UUID
    driver_id: uuid.UUID | None = None
    priority: AssignmentPriority | None = None
    special_instructions: str = Field(default="", max_length=2000)
    is_first_delivery: bool = False
    delivery_day: int | None = Field(default=None, ge=0, le=6)
    auto_assign: bool = False


class TrackPoint(BaseModel):
    lat: float
    lng: float
    timestamp: str
    speed: float | None = None
    heading: float | None = None


class AssignmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    order_id: uuid.UUID
    driver_id: uuid.UUID | None
    status: AssignmentStatus
    priority: AssignmentPriority
    confirmation_code: str | None

    pickup_address: str
    pickup_lat: float
    pickup_lng: float
    pickup_chef_id: uuid.UUID
    pickup_chef_name: str
    pickup_chef_phone: str
    pickup_instructions: str

    delivery_address: str
    delivery_lat: float
    delivery_lng: float
    delivery_area: str
    delivery_instructions: str

    assigned_at: datetime
    accepted_at: datetime | None
    picked_up_at: datetime | None
    delivered_at: datetime | None
    cancelled_at: datetime | None
    reassigned_at: datetime | None
    estimated_pickup_time: datetime
    estimated_delivery_time: datetime

    total_distance_km: float
    estimated_duration_min: int
    base_fee: int
    distance_fee: int
    total_earning: int

    pickup_notes: str | None
    pickup_photo_url: str | None
    delivery_method: str | None
    delivery_notes: str | None
    delivery_photo_url: str | None

    cancelled_by: CancelledBy | None
    cancellation_reason: str | None
    compensation_amount: int

    special_instructions: str
    is_first_delivery: bool
    subscription_id: uuid.UUID | None
    meal_plan_id: str | None
    delivery_day: int | None
    driver_track: list[TrackPoint]


class AssignmentListResponse(BaseModel):
    items: list[AssignmentResponse]
    page: int
    page_size: int
    total: int


class PickupRequest(BaseModel):
    confirmed: bool = False
    lat: float | None = Field(default=None, ge=-90, le=90)
    lng: float | None = Field(default=None, ge=-180, le=180)
    notes: str = Field(default="", max_length=1000)
    photo_url: str | None = Field(default=None, max_length=1024)


class DeliverRequest(BaseModel):
    confirmation_code: str = Field(min_length=1, max_length=16, pattern=CONFIRMATION_CODE_PATTERN)
    notes: str = Field(default="", max_length=1000)
    photo_url: str | None = Field(default=None, max_length=1024)


class CancelRequest(BaseModel):
    reason: str = Field(default="", max_length=1000)
    compensation_amount: int = Field(default=0, ge=0)


class ReassignRequest(BaseModel):
    driver_id: uuid.UUID


class StatusUpdateRequest(BaseModel):
    status: AssignmentStatus
    driver_id: uuid.UUID | None = None
    confirmation_code: str | None = Field(
        default=None, max_length=16, pattern=CONFIRMATION_CODE_PATTERN
    )
    confirmed: bool = False
    lat: float | None = Field(default=None, ge=-90, le=90)
    lng: float | None = Field(default=None, ge=-180, le=180)
    notes: str = Field(default="", max_length=1000)
    photo_url: str | None = Field(default=None, max_length=1024)
    reason: str = Field(default="", max_length=1000)
    compensation_amount: int = Field(default=0, ge=0)


class AutoAssignResponse(BaseModel):
    status: str
    assignment: AssignmentResponse
    driver_id: uuid.UUID | None = None
    distance_km: float | None = None
    candidates: int = 0
