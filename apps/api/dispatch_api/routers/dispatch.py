from fastapi import APIRouter, Body, Depends

from dispatch_api.auth.dependencies import AuthContext, require_roles
from dispatch_api.dependencies import get_orchestrator
from dispatch_api.schemas.dispatch import (
    DispatchRunRequest,
    DispatchRunResponse,
    DispatchRunResponseItem,
)
from dispatch_api.services.dispatch_service import DispatchOrchestrator

router = APIRouter(prefix="/api/v1/dispatch", tags=["dispatch"])


@router.post(
    "/run",
    response_model=DispatchRunResponse,
    summary="Retry auto-assignment for unclaimed deliveries",
)
def run_dispatch_endpoint(
    request: DispatchRunRequest = Body(default_factory=DispatchRunRequest),
    orchestrator: DispatchOrchestrator = Depends(get_orchestrator),
    _auth: AuthContext = Depends(require_roles("ADMIN")),
) -> DispatchRunResponse:
    result = orchestrator.run_dispatch(max_assignments=request.max_assignments)
    return DispatchRunResponse(
        assigned_count=result.assigned_count,
        searching_count=result.searching_count,
        conflict_count=result.conflict_count,
        assignments=[
            DispatchRunResponseItem(
                assignment_id=outcome.assignment.id,
                order_id=outcome.assignment.order_id,
                driver_id=outcome.driver_id,
                distance_km=outcome.distance_km,
            )
            for outcome in result.assigned
        ],
    )
