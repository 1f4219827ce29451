import uuid

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from dispatch_api.auth.dependencies import AuthContext, require_roles
from dispatch_api.db.session import get_db
from dispatch_api.errors import AssignmentNotFoundError
from dispatch_api.routers.assignments import to_response
from dispatch_api.schemas.assignment import AssignmentResponse
from dispatch_api.services.assignments_service import get_assignment_for_order
from dispatch_api.services.orders_service import get_order

router = APIRouter(prefix="/api/v1/orders", tags=["orders"])


@router.get(
    "/{order_id}/assignment",
    response_model=AssignmentResponse,
    summary="Delivery assignment for an order",
)
def get_order_assignment_endpoint(
    order_id: uuid.UUID,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_roles("ADMIN", "CUSTOMER")),
) -> AssignmentResponse:
    order = get_order(db, order_id)
    if auth.role == "CUSTOMER" and order.customer_id != auth.user_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Order not accessible")

    assignment = get_assignment_for_order(db, order_id)
    if assignment is None:
        raise AssignmentNotFoundError("No assignment for this order yet")
    return to_response(assignment, auth)
