from fastapi import APIRouter, Depends

from dispatch_api.auth.dependencies import AuthContext, require_roles
from dispatch_api.dependencies import get_connection_registry, get_driver_index
from dispatch_api.observability import metrics_store
from dispatch_api.schemas.metrics import MetricsResponse
from dispatch_api.services.connection_registry import InMemoryConnectionRegistry
from dispatch_api.services.geo_index import DriverGeoIndex

router = APIRouter(prefix="/metrics", tags=["metrics"])


@router.get("", summary="Observability metrics", response_model=MetricsResponse)
def metrics_endpoint(
    index: DriverGeoIndex = Depends(get_driver_index),
    registry: InMemoryConnectionRegistry = Depends(get_connection_registry),
    _auth: AuthContext = Depends(require_roles("ADMIN")),
) -> MetricsResponse:
    snapshot = metrics_store.snapshot()

    return MetricsResponse(
        counters=snapshot.counters or {},
        timings=snapshot.timings or {},
        connected_drivers=registry.connection_count(),
        indexed_drivers=len(index),
    )
