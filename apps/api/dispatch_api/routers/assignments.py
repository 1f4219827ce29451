import uuid

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from dispatch_api.auth.dependencies import AuthContext, driver_id_of, require_roles
from dispatch_api.db.session import get_db
from dispatch_api.dependencies import get_orchestrator
from dispatch_api.models.assignment import AssignmentStatus, DriverAssignment
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
from dispatch_api.schemas.events import AssignmentEventListResponse, AssignmentEventResponse
from dispatch_api.services.assignments_service import get_assignment, list_assignments, list_events
from dispatch_api.services.dispatch_service import (
    Actor,
    CreateAssignmentOptions,
    DispatchOrchestrator,
    StatusUpdate,
    cancelled_by_for_role,
)
from dispatch_api.services.orders_service import get_order
from dispatch_api.services.state_machine import PickupConfirmation

router = APIRouter(prefix="/api/v1/assignments", tags=["assignments"])

# Drivers stop seeing the code once the meal is in their hands
_DRIVER_CODE_VISIBLE = {AssignmentStatus.AVAILABLE, AssignmentStatus.ASSIGNED}


def _actor(auth: AuthContext) -> Actor:
    return Actor(role=auth.role, user_id=auth.user_id)


def _forbidden(detail: str = "Not allowed for this assignment") -> HTTPException:
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


def to_response(assignment: DriverAssignment, auth: AuthContext) -> AssignmentResponse:
    response = AssignmentResponse.model_validate(assignment)
    if auth.role == "DRIVER" and response.status not in _DRIVER_CODE_VISIBLE:
        response = response.model_copy(update={"confirmation_code": None})
    return response


def _ensure_order_party(db: Session, assignment: DriverAssignment, auth: AuthContext) -> None:
    """Chefs and customers may only act on assignments for their own orders."""
    if auth.role not in {"CHEF", "CUSTOMER"}:
        return
    order = get_order(db, assignment.order_id)
    if auth.role == "CHEF" and str(order.chef_id) != auth.user_id:
        raise _forbidden()
    if auth.role == "CUSTOMER" and order.customer_id != auth.user_id:
        raise _forbidden()


@router.post(
    "",
    response_model=AssignmentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a delivery assignment for an order",
)
def create_assignment_endpoint(
    payload: AssignmentCreate,
    db: Session = Depends(get_db),
    orchestrator: DispatchOrchestrator = Depends(get_orchestrator),
    auth: AuthContext = Depends(require_roles("ADMIN", "CHEF")),
) -> AssignmentResponse:
    if auth.role == "CHEF":
        order = get_order(db, payload.order_id)
        if str(order.chef_id) != auth.user_id:
            raise _forbidden("Order belongs to another chef")

    assignment = orchestrator.create_assignment(
        payload.order_id,
        CreateAssignmentOptions(
            driver_id=payload.driver_id,
            priority=payload.priority,
            special_instructions=payload.special_instructions,
            is_first_delivery=payload.is_first_delivery,
            delivery_day=payload.delivery_day,
            auto_assign=payload.auto_assign,
        ),
        actor=_actor(auth),
    )
    return to_response(assignment, auth)


@router.get("", response_model=AssignmentListResponse, summary="List assignments")
def list_assignments_endpoint(
    status_filter: AssignmentStatus | None = Query(default=None, alias="status"),
    driver_id: uuid.UUID | None = None,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=50, ge=1, le=200),
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_roles("ADMIN")),
) -> AssignmentListResponse:
    items, total = list_assignments(
        db, status_filter=status_filter, driver_id=driver_id, page=page, page_size=page_size
    )
    return AssignmentListResponse(
        items=[to_response(item, auth) for item in items],
        page=page,
        page_size=page_size,
        total=total,
    )


@router.get("/{assignment_id}", response_model=AssignmentResponse, summary="Get assignment")
def get_assignment_endpoint(
    assignment_id: uuid.UUID,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_roles("ADMIN", "DRIVER")),
) -> AssignmentResponse:
    assignment = get_assignment(db, assignment_id)
    if auth.role == "DRIVER":
        driver_id = driver_id_of(auth)
        if assignment.driver_id != driver_id and assignment.status != AssignmentStatus.AVAILABLE:
            raise _forbidden()
    return to_response(assignment, auth)


@router.get(
    "/{assignment_id}/events",
    response_model=AssignmentEventListResponse,
    summary="Assignment timeline",
)
def list_assignment_events_endpoint(
    assignment_id: uuid.UUID,
    db: Session = Depends(get_db),
    _auth: AuthContext = Depends(require_roles("ADMIN")),
) -> AssignmentEventListResponse:
    events = list_events(db, assignment_id)
    return AssignmentEventListResponse(
        items=[AssignmentEventResponse.model_validate(event) for event in events]
    )


@router.post(
    "/{assignment_id}/auto-assign",
    response_model=AutoAssignResponse,
    summary="Match the assignment to the best nearby driver",
)
def auto_assign_endpoint(
    assignment_id: uuid.UUID,
    orchestrator: DispatchOrchestrator = Depends(get_orchestrator),
    auth: AuthContext = Depends(require_roles("ADMIN")),
) -> AutoAssignResponse:
    result = orchestrator.auto_assign(assignment_id, actor=_actor(auth))
    return AutoAssignResponse(
        status=result.status,
        assignment=to_response(result.assignment, auth),
        driver_id=result.driver_id,
        distance_km=result.distance_km,
        candidates=result.candidates,
    )


@router.post(
    "/{assignment_id}/accept",
    response_model=AssignmentResponse,
    summary="Driver accepts an available assignment",
)
def accept_endpoint(
    assignment_id: uuid.UUID,
    orchestrator: DispatchOrchestrator = Depends(get_orchestrator),
    auth: AuthContext = Depends(require_roles("DRIVER")),
) -> AssignmentResponse:
    assignment = orchestrator.accept(assignment_id, driver_id_of(auth), actor=_actor(auth))
    return to_response(assignment, auth)


@router.post(
    "/{assignment_id}/pickup",
    response_model=AssignmentResponse,
    summary="Driver confirms pickup from the chef",
)
def pickup_endpoint(
    assignment_id: uuid.UUID,
    payload: PickupRequest,
    orchestrator: DispatchOrchestrator = Depends(get_orchestrator),
    auth: AuthContext = Depends(require_roles("DRIVER")),
) -> AssignmentResponse:
    assignment = orchestrator.confirm_pickup(
        assignment_id,
        PickupConfirmation(
            confirmed=payload.confirmed,
            lat=payload.lat,
            lng=payload.lng,
            notes=payload.notes,
            photo_url=payload.photo_url,
        ),
        driver_id=driver_id_of(auth),
        actor=_actor(auth),
    )
    return to_response(assignment, auth)


@router.post(
    "/{assignment_id}/deliver",
    response_model=AssignmentResponse,
    summary="Driver completes delivery with the customer's code",
)
def deliver_endpoint(
    assignment_id: uuid.UUID,
    payload: DeliverRequest,
    orchestrator: DispatchOrchestrator = Depends(get_orchestrator),
    auth: AuthContext = Depends(require_roles("DRIVER")),
) -> AssignmentResponse:
    assignment = orchestrator.confirm_delivery(
        assignment_id,
        payload.confirmation_code,
        driver_id=driver_id_of(auth),
        notes=payload.notes,
        photo_url=payload.photo_url,
        actor=_actor(auth),
    )
    return to_response(assignment, auth)


@router.post(
    "/{assignment_id}/cancel",
    response_model=AssignmentResponse,
    summary="Cancel an assignment",
)
def cancel_endpoint(
    assignment_id: uuid.UUID,
    payload: CancelRequest = Body(default_factory=CancelRequest),
    db: Session = Depends(get_db),
    orchestrator: DispatchOrchestrator = Depends(get_orchestrator),
    auth: AuthContext = Depends(require_roles("ADMIN", "CHEF", "CUSTOMER", "DRIVER")),
) -> AssignmentResponse:
    assignment = get_assignment(db, assignment_id)
    _ensure_order_party(db, assignment, auth)
    if auth.role == "DRIVER" and assignment.driver_id != driver_id_of(auth):
        raise _forbidden()

    assignment = orchestrator.cancel(
        assignment_id,
        cancelled_by=cancelled_by_for_role(auth.role),
        reason=payload.reason,
        compensation_amount=payload.compensation_amount,
        actor=_actor(auth),
    )
    return to_response(assignment, auth)


@router.post(
    "/{assignment_id}/reassign",
    response_model=AssignmentResponse,
    summary="Move an assigned delivery to another driver",
)
def reassign_endpoint(
    assignment_id: uuid.UUID,
    payload: ReassignRequest,
    orchestrator: DispatchOrchestrator = Depends(get_orchestrator),
    auth: AuthContext = Depends(require_roles("ADMIN")),
) -> AssignmentResponse:
    assignment = orchestrator.reassign(assignment_id, payload.driver_id, actor=_actor(auth))
    return to_response(assignment, auth)


@router.patch(
    "/{assignment_id}/status",
    response_model=AssignmentResponse,
    summary="Generic status update",
)
def update_status_endpoint(
    assignment_id: uuid.UUID,
    payload: StatusUpdateRequest,
    orchestrator: DispatchOrchestrator = Depends(get_orchestrator),
    auth: AuthContext = Depends(require_roles("ADMIN", "DRIVER")),
) -> AssignmentResponse:
    if auth.role == "DRIVER":
        driver_id_of(auth)

    assignment = orchestrator.update_status(
        assignment_id,
        payload.status,
        StatusUpdate(
            driver_id=payload.driver_id,
            confirmation_code=payload.confirmation_code,
            confirmed=payload.confirmed,
            lat=payload.lat,
            lng=payload.lng,
            notes=payload.notes,
            photo_url=payload.photo_url,
            reason=payload.reason,
            compensation_amount=payload.compensation_amount,
        ),
        actor=_actor(auth),
    )
    return to_response(assignment, auth)
