"""Persistence for assignments and their event timeline.

Status changes are written with compare-and-set: the UPDATE only matches
while the row still holds the status (and, for reassignment, the driver)
the transition was computed from.
"""

import uuid
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone

from sqlalchemy import and_, case, func, or_, select, update
from sqlalchemy.orm import Session

from dispatch_api.errors import AssignmentNotFoundError, ConflictError
from dispatch_api.models.assignment import (
    ACTIVE_DRIVER_STATUSES,
    AssignmentPriority,
    AssignmentStatus,
    DriverAssignment,
)
from dispatch_api.models.assignment_event import AssignmentEvent
from dispatch_api.services.geo_index import degree_spans
from dispatch_api.services.pricing import haversine_km
from dispatch_api.services.state_machine import Transition

_PRIORITY_RANK = case(
    {
        AssignmentPriority.URGENT: 3,
        AssignmentPriority.HIGH: 2,
        AssignmentPriority.NORMAL: 1,
        AssignmentPriority.LOW: 0,
    },
    value=DriverAssignment.priority,
    else_=0,
)

_FINISHED_STATUSES = (AssignmentStatus.DELIVERED, AssignmentStatus.CANCELLED)
_CLOSED_AT = func.coalesce(DriverAssignment.delivered_at, DriverAssignment.cancelled_at)


def get_assignment(db: Session, assignment_id: uuid.UUID) -> DriverAssignment:
    assignment = db.get(DriverAssignment, assignment_id)
    if not assignment:
        raise AssignmentNotFoundError()
    return assignment


def get_assignment_for_order(db: Session, order_id: uuid.UUID) -> DriverAssignment | None:
    return db.scalar(select(DriverAssignment).where(DriverAssignment.order_id == order_id))


def list_assignments(
    db: Session,
    *,
    status_filter: AssignmentStatus | None = None,
    driver_id: uuid.UUID | None = None,
    page: int = 1,
    page_size: int = 50,
) -> tuple[list[DriverAssignment], int]:
    query = select(DriverAssignment)
    if status_filter:
        query = query.where(DriverAssignment.status == status_filter)
    if driver_id:
        query = query.where(DriverAssignment.driver_id == driver_id)

    total = db.scalar(select(func.count()).select_from(query.subquery())) or 0
    items = db.scalars(
        query.order_by(DriverAssignment.assigned_at.desc(), DriverAssignment.id)
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    return list(items), total


def get_active_assignment_for_driver(
    db: Session, driver_id: uuid.UUID
) -> DriverAssignment | None:
    return db.scalar(
        select(DriverAssignment).where(
            DriverAssignment.driver_id == driver_id,
            DriverAssignment.status.in_(ACTIVE_DRIVER_STATUSES),
        )
    )


def list_driver_history(
    db: Session, driver_id: uuid.UUID, *, page: int = 1, page_size: int = 20
) -> tuple[list[DriverAssignment], int]:
    """Finished deliveries of one driver, most recently closed first."""
    query = select(DriverAssignment).where(
        DriverAssignment.driver_id == driver_id,
        DriverAssignment.status.in_(_FINISHED_STATUSES),
    )
    total = db.scalar(select(func.count()).select_from(query.subquery())) or 0
    items = db.scalars(
        query.order_by(_CLOSED_AT.desc(), DriverAssignment.id)
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    return list(items), total


@dataclass(frozen=True)
class DailyStats:
    day: date
    total_deliveries: int
    completed_deliveries: int
    earnings: int
    distance_km: float


def driver_daily_stats(db: Session, driver_id: uuid.UUID, day: date) -> DailyStats:
    """Deliveries a driver closed on ``day`` (UTC). Only completed ones count toward pay."""
    start = datetime.combine(day, time.min, tzinfo=timezone.utc)
    finished = list(
        db.scalars(
            select(DriverAssignment).where(
                DriverAssignment.driver_id == driver_id,
                DriverAssignment.status.in_(_FINISHED_STATUSES),
                _CLOSED_AT >= start,
                _CLOSED_AT < start + timedelta(days=1),
            )
        )
    )
    completed = [item for item in finished if item.status == AssignmentStatus.DELIVERED]
    return DailyStats(
        day=day,
        total_deliveries=len(finished),
        completed_deliveries=len(completed),
        earnings=sum(item.total_earning for item in completed),
        distance_km=round(sum(item.total_distance_km for item in completed), 1),
    )


def list_available_assignments(db: Session, *, limit: int) -> list[DriverAssignment]:
    """Unclaimed assignments, highest priority first, then oldest first."""
    return list(
        db.scalars(
            select(DriverAssignment)
            .where(DriverAssignment.status == AssignmentStatus.AVAILABLE)
            .order_by(_PRIORITY_RANK.desc(), DriverAssignment.assigned_at.asc())
            .limit(limit)
        )
    )


def append_event(
    db: Session,
    assignment_id: uuid.UUID,
    *,
    from_status: AssignmentStatus | None,
    to_status: AssignmentStatus,
    actor_role: str,
    actor_id: str | None,
    message: str,
    payload: dict | None = None,
) -> AssignmentEvent:
    event = AssignmentEvent(
        assignment_id=assignment_id,
        from_status=from_status.value if from_status else None,
        to_status=to_status.value,
        actor_role=actor_role,
        actor_id=actor_id,
        message=message,
        payload=payload or {},
    )
    db.add(event)
    return event


def list_events(db: Session, assignment_id: uuid.UUID) -> list[AssignmentEvent]:
    get_assignment(db, assignment_id)
    events = db.scalars(
        select(AssignmentEvent)
        .where(AssignmentEvent.assignment_id == assignment_id)
        .order_by(AssignmentEvent.created_at.asc(), AssignmentEvent.id)
    )
    return list(events)


def apply_transition(
    db: Session,
    transition: Transition,
    *,
    actor_role: str,
    actor_id: str | None,
) -> None:
    """Write the transition's field changes if the row is still in ``from_status``.

    Raises ``ConflictError`` when another writer got there first. The caller
    owns the surrounding transaction and must roll it back on failure.
    """
    criteria = [
        DriverAssignment.id == transition.assignment_id,
        DriverAssignment.status == transition.from_status,
    ]
    if transition.expected_driver_id is not None:
        criteria.append(DriverAssignment.driver_id == transition.expected_driver_id)

    result = db.execute(
        update(DriverAssignment)
        .where(*criteria)
        .values(status=transition.to_status, updated_at=func.now(), **transition.changes)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise ConflictError(
            code="CONCURRENT_UPDATE",
            message=(
                "Assignment was modified concurrently; "
                f"expected status {transition.from_status.value}"
            ),
        )

    payload = {
        key: str(value) if isinstance(value, uuid.UUID) else value
        for key, value in transition.changes.items()
        if key in {"driver_id", "cancellation_reason", "compensation_amount"}
    }
    append_event(
        db,
        transition.assignment_id,
        from_status=transition.from_status,
        to_status=transition.to_status,
        actor_role=actor_role,
        actor_id=actor_id,
        message=transition.message,
        payload=payload,
    )


def _pickup_within_box(lat: float, lng: float, radius_km: float):
    lat_span, lng_span = degree_spans(lat, radius_km)
    conditions = [DriverAssignment.pickup_lat.between(lat - lat_span, lat + lat_span)]
    if lng_span >= 180:
        return and_(*conditions)

    west, east = lng - lng_span, lng + lng_span
    pickup_lng = DriverAssignment.pickup_lng
    if west < -180:
        conditions.append(or_(pickup_lng >= west + 360, pickup_lng <= east))
    elif east > 180:
        conditions.append(or_(pickup_lng >= west, pickup_lng <= east - 360))
    else:
        conditions.append(pickup_lng.between(west, east))
    return and_(*conditions)


def list_offers_near(
    db: Session,
    lat: float | None,
    lng: float | None,
    *,
    radius_km: float,
    limit: int = 50,
) -> list[DriverAssignment]:
    """Available assignments whose pickup lies within ``radius_km`` of the point.

    Without a point every available assignment is an offer.
    """
    if lat is None or lng is None:
        return list_available_assignments(db, limit=limit)

    candidates = db.scalars(
        select(DriverAssignment).where(
            DriverAssignment.status == AssignmentStatus.AVAILABLE,
            _pickup_within_box(lat, lng, radius_km),
        )
    )

    nearby = [
        (haversine_km(lat, lng, assignment.pickup_lat, assignment.pickup_lng), assignment)
        for assignment in candidates
    ]
    nearby = [item for item in nearby if item[0] <= radius_km]
    nearby.sort(key=lambda item: (item[0], item[1].assigned_at))
    return [assignment for _, assignment in nearby[:limit]]
