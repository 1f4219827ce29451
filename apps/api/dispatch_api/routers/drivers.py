from datetime import date, datetime, timezone

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from dispatch_api.auth.dependencies import AuthContext, driver_id_of, require_roles
from dispatch_api.config import settings
from dispatch_api.db.session import get_db
from dispatch_api.dependencies import get_driver_index
from dispatch_api.routers.assignments import to_response
from dispatch_api.schemas.assignment import AssignmentListResponse
from dispatch_api.schemas.driver import (
    AvailabilityUpdate,
    DriverDailyStatsResponse,
    DriverResponse,
    LocationUpdate,
    LocationUpdateResponse,
    NearbyDriverListResponse,
    NearbyDriverResponse,
)
from dispatch_api.services.assignments_service import (
    driver_daily_stats,
    get_active_assignment_for_driver,
    list_driver_history,
    list_offers_near,
)
from dispatch_api.services.drivers_service import (
    find_nearby,
    get_driver,
    record_location,
    set_online,
)
from dispatch_api.services.geo_index import DriverGeoIndex

router = APIRouter(prefix="/api/v1/drivers", tags=["drivers"])


@router.put("/me/location", response_model=LocationUpdateResponse, summary="Location heartbeat")
def update_location_endpoint(
    payload: LocationUpdate,
    db: Session = Depends(get_db),
    index: DriverGeoIndex = Depends(get_driver_index),
    auth: AuthContext = Depends(require_roles("DRIVER")),
) -> LocationUpdateResponse:
    driver = get_driver(db, driver_id_of(auth))
    now = datetime.now(timezone.utc)
    active = record_location(
        db,
        index,
        driver,
        lat=payload.lat,
        lng=payload.lng,
        now=now,
        speed=payload.speed,
        heading=payload.heading,
        max_track_points=settings.driver_track_max_points,
    )
    return LocationUpdateResponse(
        driver_id=driver.id,
        lat=payload.lat,
        lng=payload.lng,
        location_updated_at=now,
        active_assignment_id=active.id if active is not None else None,
    )


@router.put("/me/availability", response_model=DriverResponse, summary="Go online or offline")
def update_availability_endpoint(
    payload: AvailabilityUpdate,
    db: Session = Depends(get_db),
    index: DriverGeoIndex = Depends(get_driver_index),
    auth: AuthContext = Depends(require_roles("DRIVER")),
) -> DriverResponse:
    driver = get_driver(db, driver_id_of(auth))
    driver = set_online(db, index, driver, payload.is_online)
    return DriverResponse.model_validate(driver)


@router.get(
    "/me/assignments",
    response_model=AssignmentListResponse,
    summary="Current delivery, or offers near the driver",
)
def my_assignments_endpoint(
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_roles("DRIVER")),
) -> AssignmentListResponse:
    driver = get_driver(db, driver_id_of(auth))
    active = get_active_assignment_for_driver(db, driver.id)
    if active is not None:
        items = [active]
    else:
        items = list_offers_near(
            db,
            driver.current_lat,
            driver.current_lng,
            radius_km=settings.driver_offer_radius_km,
        )
    return AssignmentListResponse(
        items=[to_response(item, auth) for item in items],
        page=1,
        page_size=len(items),
        total=len(items),
    )


@router.get(
    "/me/history",
    response_model=AssignmentListResponse,
    summary="Delivered and cancelled deliveries, newest first",
)
def my_history_endpoint(
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100),
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_roles("DRIVER")),
) -> AssignmentListResponse:
    driver = get_driver(db, driver_id_of(auth))
    items, total = list_driver_history(db, driver.id, page=page, page_size=page_size)
    return AssignmentListResponse(
        items=[to_response(item, auth) for item in items],
        page=page,
        page_size=page_size,
        total=total,
    )


@router.get("/me/stats", response_model=DriverDailyStatsResponse, summary="Daily totals")
def my_daily_stats_endpoint(
    day: date | None = Query(default=None, alias="date"),
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_roles("DRIVER")),
) -> DriverDailyStatsResponse:
    driver = get_driver(db, driver_id_of(auth))
    stats = driver_daily_stats(db, driver.id, day or datetime.now(timezone.utc).date())
    return DriverDailyStatsResponse(
        day=stats.day,
        total_deliveries=stats.total_deliveries,
        completed_deliveries=stats.completed_deliveries,
        earnings=stats.earnings,
        distance_km=stats.distance_km,
    )


@router.get("/nearby", response_model=NearbyDriverListResponse, summary="Dispatchable drivers")
def nearby_drivers_endpoint(
    lat: float = Query(ge=-90, le=90),
    lng: float = Query(ge=-180, le=180),
    radius_km: float = Query(default=10.0, gt=0, le=100),
    limit: int = Query(default=20, ge=1, le=200),
    db: Session = Depends(get_db),
    index: DriverGeoIndex = Depends(get_driver_index),
    _auth: AuthContext = Depends(require_roles("ADMIN")),
) -> NearbyDriverListResponse:
    candidates = find_nearby(db, index, lat, lng, radius_km, limit=limit)
    return NearbyDriverListResponse(
        items=[
            NearbyDriverResponse(
                driver=DriverResponse.model_validate(candidate.driver),
                distance_km=round(candidate.distance_km, 3),
                load=candidate.load,
            )
            for candidate in candidates
        ]
    )
