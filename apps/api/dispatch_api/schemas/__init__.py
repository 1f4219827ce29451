from dispatch_api.schemas.assignment import (
    AssignmentCreate,
    AssignmentListResponse,
    AssignmentResponse,
    AutoAssignResponse,
    CancelRequest,
    DeliverRequest,
    PickupRequest,
    ReassignRequest,
    StatusUpdateRequest,
)
from dispatch_api.schemas.dispatch import DispatchRunRequest, DispatchRunResponse
from dispatch_api.schemas.driver import (
    AvailabilityUpdate,
    DriverResponse,
    LocationUpdate,
    LocationUpdateResponse,
    NearbyDriverListResponse,
)
from dispatch_api.schemas.events import AssignmentEventListResponse, AssignmentEventResponse

__all__ = [
    "AssignmentCreate",
    "AssignmentResponse",
    "AssignmentListResponse",
    "AutoAssignResponse",
    "PickupRequest",
    "DeliverRequest",
    "CancelRequest",
    "ReassignRequest",
    "StatusUpdateRequest",
    "AssignmentEventResponse",
    "AssignmentEventListResponse",
    "DispatchRunRequest",
    "DispatchRunResponse",
    "DriverResponse",
    "LocationUpdate",
    "LocationUpdateResponse",
    "AvailabilityUpdate",
    "NearbyDriverListResponse",
]
