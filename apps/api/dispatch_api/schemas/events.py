import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict


class AssignmentEventResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    assignment_id: uuid.UUID
    from_status: str | None
    to_status: str
    actor_role: str
    actor_id: str | None
    message: str
    payload: dict
    created_at: datetime


class AssignmentEventListResponse(BaseModel):
    items: list[AssignmentEventResponse]
