import uuid

from pydantic import BaseModel, Field


class DispatchRunRequest(BaseModel):
    max_assignments: int = Field(default=10, ge=1, le=200)


class DispatchRunResponseItem(BaseModel):
    assignment_id: uuid.UUID
    order_id: uuid.UUID
    driver_id: uuid.UUID
    distance_km: float | None


class DispatchRunResponse(BaseModel):
    assigned_count: int
    searching_count: int
    conflict_count: int
    assignments: list[DispatchRunResponseItem]
